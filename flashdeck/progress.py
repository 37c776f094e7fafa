"""Session progress counters.

The four grade buckets hold the most recent answer classification of every
card answered this session, so re-answering a card moves it between buckets
instead of counting it twice. ``todo`` only drops when a card leaves the
working set for good.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Dict, Optional

from flashdeck.card_state import ANSWERS


@dataclass(frozen=True)
class ProgressState:
    easy: int = 0
    hard: int = 0
    good: int = 0
    wrong: int = 0
    todo: int = 0
    all: int = 0

    @classmethod
    def for_session(cls, size: int) -> "ProgressState":
        return cls(todo=size, all=size)

    @property
    def answered(self) -> int:
        return self.easy + self.hard + self.good + self.wrong

    @property
    def completion_ratio(self) -> float:
        if self.all == 0:
            return 1.0
        return (self.all - self.todo) / self.all

    def reclassify(self, previous: Optional[str], answer: str) -> "ProgressState":
        """Count *answer* for a card whose last answer was *previous*."""

        if answer not in ANSWERS or previous == answer:
            return self
        counts = self.to_dict()
        counts[answer] += 1
        if previous in ANSWERS:
            counts[previous] = max(counts[previous] - 1, 0)
        return replace(self, **{key: counts[key] for key in ANSWERS})

    def resolve(self) -> "ProgressState":
        """Record that one card left the working set."""

        return replace(self, todo=max(self.todo - 1, 0))

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def apply_answer(
    progress: ProgressState,
    previous: Optional[str],
    answer: str,
    *,
    resolved: bool,
) -> ProgressState:
    updated = progress.reclassify(previous, answer)
    if resolved:
        updated = updated.resolve()
    return updated


__all__ = ["ProgressState", "apply_answer"]
