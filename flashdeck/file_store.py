"""JSON file backed implementation of the study collaborator.

Layout under the store root::

    decks/<deck_id>.json        deck metadata and card content
    settings.json               per-user daily limits
    state/card_state.jsonl      scheduling records per user, deck and card
    log/review_log.jsonl        append-only log of every save
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence, Tuple

from flashdeck.card_state import Card, State, format_datetime, parse_datetime, utc_now
from flashdeck.collaborator import DailyLimits

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "default"
DECKS_DIR = "decks"
SETTINGS_FILE = "settings.json"
STATE_FILE = Path("state") / "card_state.jsonl"
LOG_FILE = Path("log") / "review_log.jsonl"

StateKey = Tuple[str, str, str]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _user_key(user_id: Optional[str]) -> str:
    return DEFAULT_USER_ID if user_id in (None, "") else str(user_id)


def _state_key(record: Mapping[str, Any]) -> StateKey:
    deck_id = record.get("deck_id")
    card_id = record.get("card_id")
    if not deck_id or not card_id:
        raise ValueError("State records must define a deck_id and card_id")
    return _user_key(record.get("user_id")), str(deck_id), str(card_id)


def _phase_due(state: Mapping[str, Any]) -> Optional[datetime]:
    first = state.get("firstLearn")
    if isinstance(first, Mapping) and first.get("isNew"):
        return parse_datetime(first.get("due"))
    algo = state.get("cardAlgo")
    if isinstance(algo, Mapping):
        return parse_datetime(algo.get("due"))
    return None


def settle_graduation(card: Card, now: datetime) -> Card:
    """Schedule the first FSRS review of a card graduated by its good streak.

    Such a card still carries the FSRS record it was normalised with (state
    New, due at build time). It becomes a Review card due ``interval`` days
    from *now*. Cards already scheduled by the engine are returned unchanged.
    """

    algo = card.algo
    if card.is_new or algo is None or algo.state != State.NEW:
        return card
    days = card.interval()
    return card.replace(
        algo=replace(
            algo,
            due=now + timedelta(days=days),
            state=int(State.REVIEW),
            last_review=now,
            reps=algo.reps + 1,
            scheduled_days=days,
        )
    )


class JsonFileStore:
    """Deck, settings and progress storage in plain JSON files.

    Fetch methods read on behalf of the bound *user_id*; persistence methods
    take the user explicitly as the collaborator contract requires.
    """

    def __init__(
        self,
        root: Path,
        *,
        user_id: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.root = Path(root)
        self.user_id = _user_key(user_id)
        self.clock = clock
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Paths and raw files
    # ------------------------------------------------------------------
    @property
    def state_path(self) -> Path:
        return self.root / STATE_FILE

    @property
    def log_path(self) -> Path:
        return self.root / LOG_FILE

    @property
    def settings_path(self) -> Path:
        return self.root / SETTINGS_FILE

    def deck_path(self, deck_id: str) -> Path:
        return self.root / DECKS_DIR / f"{deck_id}.json"

    @staticmethod
    def _read_document(path: Path) -> MutableMapping[str, Any]:
        return json.loads(path.read_text(encoding="utf-8"))

    @staticmethod
    def _write_document(path: Path, payload: Mapping[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=4, ensure_ascii=False), encoding="utf-8")

    @staticmethod
    def _read_lines(path: Path) -> List[Dict[str, Any]]:
        if not path.exists():
            return []
        with path.open("r", encoding="utf-8") as handle:
            return [json.loads(line) for line in handle if line.strip()]

    def _rewrite_states(self, records: Iterable[Mapping[str, Any]]) -> None:
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(record, ensure_ascii=False) for record in records]
        self.state_path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")

    # ------------------------------------------------------------------
    # Decks
    # ------------------------------------------------------------------
    def write_deck(
        self,
        deck_id: str,
        cards: Sequence[Mapping[str, Any]],
        *,
        title: Optional[str] = None,
    ) -> Path:
        entries: List[Dict[str, Any]] = []
        for index, card in enumerate(cards, start=1):
            card_id = card.get("id") or f"{deck_id}-{index}"
            content = card.get("cardData")
            if not isinstance(content, Mapping):
                content = {k: v for k, v in card.items() if k != "id"}
            entries.append({"id": str(card_id), "cardData": dict(content)})
        payload = {
            "deck": {"id": deck_id, "title": title or deck_id, "cardCount": len(entries)},
            "cards": entries,
        }
        path = self.deck_path(deck_id)
        self._write_document(path, payload)
        logger.info("Wrote deck %s with %d cards to %s", deck_id, len(entries), path)
        return path

    def list_decks(self) -> List[str]:
        decks_dir = self.root / DECKS_DIR
        if not decks_dir.exists():
            return []
        return sorted(path.stem for path in decks_dir.glob("*.json") if path.is_file())

    def _load_deck(self, deck_id: str) -> MutableMapping[str, Any]:
        path = self.deck_path(deck_id)
        if not path.exists():
            raise FileNotFoundError(f"Deck '{deck_id}' not found in {path.parent}")
        return self._read_document(path)

    def fetch_deck_meta(self, deck_id: str) -> Mapping[str, Any]:
        return dict(self._load_deck(deck_id).get("deck", {"id": deck_id}))

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    def fetch_user_daily_limits(self, user_id: str) -> DailyLimits:
        if not self.settings_path.exists():
            return DailyLimits()
        users = self._read_document(self.settings_path).get("users", {})
        return DailyLimits.from_mapping(users.get(_user_key(user_id), {}))

    def save_user_daily_limits(self, user_id: str, limits: DailyLimits) -> None:
        payload = self._read_document(self.settings_path) if self.settings_path.exists() else {}
        payload.setdefault("users", {})[_user_key(user_id)] = {
            "dailyGoal": limits.daily_goal,
            "dailyNew": limits.daily_new,
        }
        self._write_document(self.settings_path, payload)

    # ------------------------------------------------------------------
    # Candidate pools
    # ------------------------------------------------------------------
    def _stored_states(self, deck_id: str) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            records = self._read_lines(self.state_path)
        states: Dict[str, Dict[str, Any]] = {}
        for record in records:
            user_id, record_deck, card_id = _state_key(record)
            if user_id == self.user_id and record_deck == str(deck_id):
                states[card_id] = dict(record.get("state", {}))
        return states

    def fetch_due_cards(self, deck_id: str, limit: int) -> List[Dict[str, Any]]:
        now = self.clock()
        states = self._stored_states(deck_id)
        due: List[Tuple[datetime, int, Dict[str, Any]]] = []
        for index, entry in enumerate(self._load_deck(deck_id).get("cards", [])):
            state = states.get(str(entry.get("id")))
            if state is None:
                continue
            due_at = _phase_due(state) or now
            if due_at <= now:
                due.append((due_at, index, {**state, "id": entry["id"], "cardData": entry.get("cardData", {})}))
        due.sort(key=lambda item: (item[0], item[1]))
        return [record for _, _, record in due[: max(limit, 0)]]

    def fetch_new_candidate_cards(self, deck_id: str, limit: int) -> List[Dict[str, Any]]:
        states = self._stored_states(deck_id)
        fresh: List[Dict[str, Any]] = []
        for entry in self._load_deck(deck_id).get("cards", []):
            if str(entry.get("id")) in states:
                continue
            fresh.append({"id": entry["id"], "cardData": entry.get("cardData", {})})
            if len(fresh) >= limit:
                break
        return fresh

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def _upsert(self, user_id: str, deck_id: str, cards: Iterable[Card]) -> List[Dict[str, Any]]:
        user = _user_key(user_id)
        now = self.clock()
        logged: List[Dict[str, Any]] = []
        with self._lock:
            records = {_state_key(record): record for record in self._read_lines(self.state_path)}
            for card in cards:
                card = settle_graduation(card, now)
                record = records.setdefault(
                    (user, str(deck_id), card.card_id),
                    {"user_id": user, "deck_id": str(deck_id), "card_id": card.card_id, "state": {}},
                )
                payload = card.persistence_payload()
                record["state"].update(payload)
                logged.append(
                    {
                        "user_id": user,
                        "deck_id": str(deck_id),
                        "card_id": card.card_id,
                        "answer": card.prev_answer,
                        "grade": card.grade,
                        "payload": payload,
                        "logged_at": format_datetime(now),
                    }
                )
            self._rewrite_states(records.values())
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with self.log_path.open("a", encoding="utf-8") as handle:
                for entry in logged:
                    handle.write(json.dumps(entry, ensure_ascii=False) + "\n")
        return logged

    def persist_card_update(self, user_id: str, deck_id: str, card: Card) -> None:
        self._upsert(user_id, deck_id, [card])
        logger.debug("Saved card %s in deck %s for %s", card.card_id, deck_id, user_id)

    def persist_batch(self, user_id: str, deck_id: str, done_cards: Sequence[Card]) -> None:
        if not done_cards:
            return
        self._upsert(user_id, deck_id, done_cards)
        logger.info("Saved %d done cards in deck %s for %s", len(done_cards), deck_id, user_id)

    def read_review_log(self) -> List[Dict[str, Any]]:
        with self._lock:
            return self._read_lines(self.log_path)


__all__ = ["DEFAULT_USER_ID", "JsonFileStore", "settle_graduation"]
