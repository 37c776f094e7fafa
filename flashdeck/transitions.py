"""Phase transition rules applied to the card at the head of the working set.

A card in first learning cycles through fixed cooldowns until it collects
enough consecutive ``good`` answers to graduate. ``easy`` graduates it at
once through the FSRS path. Graduated cards are scheduled by the FSRS engine:
``wrong`` requeues them for a short in-session cooldown, any other answer
completes them for the session.

Every function here is pure: it returns a new :class:`Transition` and leaves
the input card untouched, so a failure half way through cannot leak partial
state into the session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from flashdeck.card_state import ANSWERS, EASY, GOOD, HARD, WRONG, Card, FsrsMemory, State
from flashdeck.config import StudySettings
from flashdeck.fsrs_engine import FSRSEngine, Rating

logger = logging.getLogger(__name__)

FSRS_PATH = "fsrs"
FIRST_LEARNING_PATH = "first_learning"
GRADUATION_PATH = "graduation"


@dataclass(frozen=True)
class Transition:
    """Outcome of one answer.

    ``resolved`` is ``True`` when the card leaves the working set and joins
    the done cards.
    """

    card: Card
    answer: str
    previous_answer: Optional[str]
    resolved: bool
    path: str
    rating: Optional[Rating] = None


def takes_fsrs_path(card: Card, answer: str, threshold: int) -> bool:
    if not card.is_new or answer == EASY:
        return True
    if card.consecutive_good >= threshold:
        # Graduation should already have happened on the previous answer.
        logger.warning(
            "Card %s is still new with %d consecutive good answers; scheduling with FSRS",
            card.card_id,
            card.consecutive_good,
        )
        return True
    return False


def _fsrs_transition(
    card: Card, answer: str, now: datetime, engine: FSRSEngine, settings: StudySettings
) -> Transition:
    memory = card.algo if card.algo is not None else FsrsMemory.initial(now)
    rating, candidate = engine.next_for_answer(memory, answer, now)
    if answer == WRONG:
        candidate = replace(candidate, due=now + settings.fsrs_wrong_cooldown)
    updated = card.graduate(0).replace(
        algo=candidate,
        seen_in_session=True,
        prev_answer=answer if answer in ANSWERS else card.prev_answer,
        grade=int(rating),
    )
    logger.debug(
        "FSRS %s -> card %s rating=%s due=%s", answer, card.card_id, rating.name, candidate.due
    )
    return Transition(
        card=updated,
        answer=answer,
        previous_answer=card.prev_answer,
        resolved=answer != WRONG,
        path=FSRS_PATH,
        rating=rating,
    )


def _first_learning_transition(
    card: Card, answer: str, now: datetime, settings: StudySettings
) -> Transition:
    previous = card.prev_answer
    if answer == GOOD:
        streak = card.consecutive_good + 1
        if streak >= settings.graduation_threshold:
            graduated = card.graduate(streak).replace(prev_answer=GOOD, seen_in_session=True)
            logger.info("Card %s graduated after %d good answers", card.card_id, streak)
            return Transition(
                card=graduated,
                answer=answer,
                previous_answer=previous,
                resolved=True,
                path=GRADUATION_PATH,
            )
        updated = card.with_first_learning(
            due=now + settings.first_learn_cooldown(GOOD),
            state=int(State.LEARNING),
            consecutive_good=streak,
        )
    elif answer in (HARD, WRONG):
        updated = card.with_first_learning(
            due=now + settings.first_learn_cooldown(answer),
            state=int(State.NEW),
            consecutive_good=0,
        )
    else:
        updated = card

    updated = updated.replace(
        seen_in_session=True,
        prev_answer=answer if answer in ANSWERS else previous,
    )
    return Transition(
        card=updated,
        answer=answer,
        previous_answer=previous,
        resolved=False,
        path=FIRST_LEARNING_PATH,
    )


def apply_answer(
    card: Card,
    answer: str,
    now: datetime,
    engine: FSRSEngine,
    settings: Optional[StudySettings] = None,
) -> Transition:
    """Compute the transition of *card* for *answer* at *now*."""

    settings = settings or StudySettings()
    if takes_fsrs_path(card, answer, settings.graduation_threshold):
        return _fsrs_transition(card, answer, now, engine, settings)
    return _first_learning_transition(card, answer, now, settings)


__all__ = [
    "FIRST_LEARNING_PATH",
    "FSRS_PATH",
    "GRADUATION_PATH",
    "Transition",
    "apply_answer",
    "takes_fsrs_path",
]
