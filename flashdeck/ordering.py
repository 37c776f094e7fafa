"""Presentation order of the working set."""

from __future__ import annotations

from datetime import datetime
from functools import cmp_to_key
from typing import Iterable, Tuple

from flashdeck.card_state import Card


def effective_due(card: Card, now: datetime) -> datetime:
    """Due time of *card* in its current phase, ``now`` when unknown."""

    if card.is_new:
        due = card.phase.due
    else:
        due = card.algo.due if card.algo is not None else None
    return due if due is not None else now


def compare_cards(a: Card, b: Card, now: datetime) -> int:
    """Order two cards by due time.

    When both are already due, a card seen in this session goes first so an
    in-progress card cycles back before fresh introductions.
    """

    a_due = effective_due(a, now)
    b_due = effective_due(b, now)
    if a_due <= now and b_due <= now:
        if a.seen_in_session and not b.seen_in_session:
            return -1
        if b.seen_in_session and not a.seen_in_session:
            return 1
    if a_due < b_due:
        return -1
    if a_due > b_due:
        return 1
    return 0


def sort_working_set(cards: Iterable[Card], now: datetime) -> Tuple[Card, ...]:
    return tuple(sorted(cards, key=cmp_to_key(lambda a, b: compare_cards(a, b, now))))


__all__ = ["compare_cards", "effective_due", "sort_working_set"]
