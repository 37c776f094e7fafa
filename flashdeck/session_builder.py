"""Assemble the initial working set of a study session."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from flashdeck.card_state import Card, ensure_utc, normalize_card
from flashdeck.collaborator import DailyLimits, StudyCollaborator
from flashdeck.config import StudySettings
from flashdeck.errors import FetchError
from flashdeck.ordering import sort_working_set
from flashdeck.progress import ProgressState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionBuckets:
    fsrs_due: Tuple[Card, ...]
    first_learning_due: Tuple[Card, ...]
    introductions: Tuple[Card, ...]


@dataclass(frozen=True)
class SessionBuild:
    deck: Mapping[str, Any]
    limits: DailyLimits
    cards: Tuple[Card, ...]
    progress: ProgressState
    buckets: Optional[SessionBuckets] = field(default=None, compare=False)

    @property
    def is_empty(self) -> bool:
        return self.progress.all == 0


def normalize_cards(raw_cards: Iterable[Mapping[str, Any]], now: datetime) -> List[Card]:
    cards: List[Card] = []
    for raw in raw_cards:
        try:
            cards.append(normalize_card(raw, now))
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping malformed card record: %s", exc)
    return cards


def partition(cards: Sequence[Card], now: datetime, daily_new: int) -> SessionBuckets:
    """Split normalised cards into FSRS-due, first-learning-due and new buckets."""

    fsrs_due = tuple(
        card for card in cards if not card.is_new and card.algo is not None and card.algo.due <= now
    )
    first_learning_due = tuple(
        card
        for card in cards
        if card.is_new and card.phase.due is not None and card.phase.due <= now
    )
    candidates = [
        card
        for card in cards
        if card.is_new
        and (card.phase.due is None or card.phase.due <= now)
        and card.consecutive_good == 0
        and card.prev_answer is None
    ]
    return SessionBuckets(
        fsrs_due=fsrs_due,
        first_learning_due=first_learning_due,
        introductions=tuple(candidates[: max(daily_new, 0)]),
    )


def merge_buckets(buckets: SessionBuckets, now: datetime) -> Tuple[Card, ...]:
    """Union the buckets by card id (later buckets win) in presentation order."""

    by_id: Dict[str, Card] = {}
    for bucket in (buckets.fsrs_due, buckets.first_learning_due, buckets.introductions):
        for card in bucket:
            by_id[card.card_id] = card
    return sort_working_set(by_id.values(), now)


def assemble(
    raw_cards: Iterable[Mapping[str, Any]],
    now: datetime,
    daily_new: int,
) -> Tuple[Tuple[Card, ...], SessionBuckets]:
    buckets = partition(normalize_cards(raw_cards, now), now, daily_new)
    return merge_buckets(buckets, now), buckets


def build_session(
    collaborator: StudyCollaborator,
    deck_id: str,
    user_id: str,
    now: datetime,
    settings: Optional[StudySettings] = None,
) -> SessionBuild:
    """Fetch candidate pools and build the working set for *deck_id*.

    Any collaborator failure is raised as :class:`FetchError`.
    """

    settings = settings or StudySettings()
    now = ensure_utc(now)
    try:
        deck = collaborator.fetch_deck_meta(deck_id)
        limits = collaborator.fetch_user_daily_limits(user_id)
        due_raw = collaborator.fetch_due_cards(
            deck_id, settings.due_pool_size(limits.daily_goal, limits.daily_new)
        )
        new_raw = collaborator.fetch_new_candidate_cards(
            deck_id, settings.new_pool_size(limits.daily_new)
        )
    except Exception as exc:
        logger.exception("Error fetching cards for deck %s", deck_id)
        raise FetchError() from exc

    cards, buckets = assemble(list(due_raw or []) + list(new_raw or []), now, limits.daily_new)
    logger.info(
        "Built session for deck %s: %d cards (%d due, %d learning, %d new)",
        deck_id,
        len(cards),
        len(buckets.fsrs_due),
        len(buckets.first_learning_due),
        len(buckets.introductions),
    )
    return SessionBuild(
        deck=deck or {},
        limits=limits,
        cards=cards,
        progress=ProgressState.for_session(len(cards)),
        buckets=buckets,
    )


__all__ = [
    "SessionBuckets",
    "SessionBuild",
    "assemble",
    "build_session",
    "merge_buckets",
    "normalize_cards",
    "partition",
]
