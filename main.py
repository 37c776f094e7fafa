"""Terminal driver: import decks and study them from the command line."""

import argparse
import logging
from pathlib import Path

from flashdeck.card_state import ANSWERS
from flashdeck.config import load_settings
from flashdeck.file_store import DEFAULT_USER_ID, JsonFileStore
from flashdeck.importer import import_deck
from flashdeck.review_service import LearningSession

KEYS = {"w": "wrong", "h": "hard", "g": "good", "e": "easy"}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Flashcard study engine.")
    parser.add_argument("--settings", type=Path, help="JSON settings file.")
    parser.add_argument("--data", type=Path, help="Store directory (defaults to the settings data root).")
    parser.add_argument("--user", default=DEFAULT_USER_ID, help="Learner id.")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging.")
    commands = parser.add_subparsers(dest="command", required=True)

    importer = commands.add_parser("import", help="Import a CSV/TSV/XLSX file as a deck.")
    importer.add_argument("path", type=Path)
    importer.add_argument("--deck", help="Deck id (defaults to the file name).")
    importer.add_argument("--title")
    importer.add_argument("--sep", default=",", help="Separator: ',', 'tab', 'space' or any string.")
    importer.add_argument("--no-header", action="store_true", help="The first row is a card.")

    study = commands.add_parser("study", help="Study a deck.")
    study.add_argument("deck")

    commands.add_parser("decks", help="List decks in the store.")
    return parser.parse_args()


def _print_progress(session: LearningSession) -> None:
    progress = session.progress
    print(
        f"[{progress.all - progress.todo}/{progress.all}] "
        f"easy {progress.easy}  good {progress.good}  hard {progress.hard}  wrong {progress.wrong}"
    )


def study(session: LearningSession) -> None:
    if session.build() is None:
        print(f"Error: {session.error}")
        return
    if session.progress.all == 0:
        print("Nothing to learn right now.")
        return

    while session.current_card is not None:
        card = session.current_card
        print()
        print(card.card_data.get("front", card.card_id))
        if input("(enter to reveal, q to quit) ").strip().lower() == "q":
            break
        print(card.card_data.get("back", ""))
        choice = input("[w]rong [h]ard [g]ood [e]asy: ").strip().lower()
        answer = KEYS.get(choice, choice)
        if answer not in ANSWERS:
            print("Unknown answer.")
            continue
        if session.answer(answer) is None:
            print(f"Error: {session.error}")
            continue
        _print_progress(session)

    if session.progress.todo == 0:
        print("Session complete!")
        _print_progress(session)


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose > 1 else logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = load_settings(args.settings)
    store = JsonFileStore(args.data or settings.data_root, user_id=args.user)

    if args.command == "import":
        output = import_deck(
            store,
            args.path,
            deck_id=args.deck,
            title=args.title,
            separator=args.sep,
            header=not args.no_header,
        )
        print(f"Created {output}")
    elif args.command == "decks":
        decks = store.list_decks()
        if not decks:
            print("No decks found.")
        for deck_id in decks:
            print(deck_id)
    else:
        with LearningSession(args.deck, args.user, store, settings=settings) as session:
            study(session)


if __name__ == "__main__":
    main()
