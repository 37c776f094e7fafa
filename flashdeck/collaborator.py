"""Interface of the external services a study session depends on."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Protocol, Sequence

from flashdeck.card_state import Card
from flashdeck.config import DEFAULT_DAILY_GOAL, DEFAULT_DAILY_NEW


@dataclass(frozen=True)
class DailyLimits:
    daily_goal: int = DEFAULT_DAILY_GOAL
    daily_new: int = DEFAULT_DAILY_NEW

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "DailyLimits":
        goal = payload.get("dailyGoal", payload.get("daily_goal"))
        new = payload.get("dailyNew", payload.get("daily_new"))
        return cls(
            daily_goal=int(goal) if goal is not None else DEFAULT_DAILY_GOAL,
            daily_new=int(new) if new is not None else DEFAULT_DAILY_NEW,
        )


class StudyCollaborator(Protocol):
    """Deck storage and user settings as seen by the scheduler.

    Fetch methods return raw card records; they are normalised by the
    session builder. Persistence methods raise on failure.
    """

    def fetch_deck_meta(self, deck_id: str) -> Mapping[str, Any]:
        ...

    def fetch_user_daily_limits(self, user_id: str) -> DailyLimits:
        ...

    def fetch_due_cards(self, deck_id: str, limit: int) -> List[Mapping[str, Any]]:
        ...

    def fetch_new_candidate_cards(self, deck_id: str, limit: int) -> List[Mapping[str, Any]]:
        ...

    def persist_card_update(self, user_id: str, deck_id: str, card: Card) -> None:
        ...

    def persist_batch(self, user_id: str, deck_id: str, done_cards: Sequence[Card]) -> None:
        ...


__all__ = ["DailyLimits", "StudyCollaborator"]
