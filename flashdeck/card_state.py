"""Domain model for flashcard scheduling state.

A :class:`Card` pairs opaque study content with two scheduling records: the
FSRS memory state (:class:`FsrsMemory`) and the learning phase. The phase is a
tagged union, :class:`FirstLearning` while the card is still being introduced
with fixed cooldowns and :class:`Graduated` once it has moved to FSRS. Only
:meth:`Card.graduate` converts the former into the latter, so the transition
can never run backwards.

The module also provides :func:`normalize_card`, the single place where raw
collaborator records are coerced into cards with every missing field
defaulted, and the helpers that serialise cards back to storage payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional, Union

WRONG = "wrong"
HARD = "hard"
GOOD = "good"
EASY = "easy"
ANSWERS = (WRONG, HARD, GOOD, EASY)

DEFAULT_DIFFICULTY = 2.5

_SCHEDULING_KEYS = {
    "id",
    "cardAlgo",
    "firstLearn",
    "seenInSession",
    "prevAns",
    "grade",
    "difficulty",
    "stability",
    "reps",
    "lapses",
    "scheduled_days",
    "elapsed_days",
    "state",
    "interval",
    "nextReviewDate",
    "nextReviewInterval",
    "lastReviewDate",
}


class State(IntEnum):
    """FSRS card states as stored in ``cardAlgo.state``."""

    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Normalise *value* to a UTC timezone aware datetime."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Convert a stored timestamp into a UTC :class:`datetime` if possible.

    Numbers are epoch milliseconds. Mappings may carry ``seconds`` /
    ``nanoseconds`` pairs, with or without a leading underscore, as document
    stores emit them.
    """

    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, Mapping):
        for prefix in ("", "_"):
            seconds = value.get(f"{prefix}seconds")
            nanos = value.get(f"{prefix}nanoseconds")
            if seconds is not None and nanos is not None:
                try:
                    millis = float(seconds) * 1000 + int(float(nanos) // 1e6)
                except (TypeError, ValueError):
                    return None
                return parse_datetime(millis)
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Serialise a datetime in ISO-8601 format (UTC) for JSON storage."""

    if value is None:
        return None
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


# ---------------------------------------------------------------------------
# Scheduling records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FsrsMemory:
    """FSRS memory state of a card (``cardAlgo`` in storage)."""

    difficulty: float
    stability: float
    reps: int
    lapses: int
    scheduled_days: float
    elapsed_days: float
    last_review: datetime
    state: int
    due: datetime

    @classmethod
    def initial(cls, now: datetime) -> "FsrsMemory":
        return cls(
            difficulty=DEFAULT_DIFFICULTY,
            stability=0.0,
            reps=0,
            lapses=0,
            scheduled_days=0,
            elapsed_days=0,
            last_review=now,
            state=int(State.NEW),
            due=now,
        )

    def to_storage_dict(self) -> Dict[str, Any]:
        return {
            "difficulty": self.difficulty,
            "stability": self.stability,
            "reps": self.reps,
            "lapses": self.lapses,
            "scheduled_days": self.scheduled_days,
            "elapsed_days": self.elapsed_days,
            "last_review": format_datetime(self.last_review),
            "state": self.state,
            "due": format_datetime(self.due),
        }


@dataclass(frozen=True)
class FirstLearning:
    """Phase of a card that has not yet graduated to FSRS."""

    due: Optional[datetime] = None
    state: int = 0
    consecutive_good: int = 0

    is_new = True


@dataclass(frozen=True)
class Graduated:
    """Phase of a card scheduled by FSRS.

    The first-learning trail (``due``, ``state`` and the ``consecutive_good``
    count at graduation) is kept because it is persisted alongside the FSRS
    state.
    """

    due: Optional[datetime] = None
    state: int = 0
    consecutive_good: int = 0

    is_new = False


Phase = Union[FirstLearning, Graduated]


@dataclass(frozen=True)
class Card:
    """A flashcard in a study session.

    Parameters
    ----------
    card_id:
        Stable identifier of the card.
    card_data:
        Study content (front/back text, tags). Never interpreted here.
    phase:
        :class:`FirstLearning` or :class:`Graduated`.
    algo:
        FSRS memory state.
    seen_in_session:
        ``True`` once the card received an answer in the current session.
    prev_answer:
        Last answer given in the current session, if any.
    grade:
        Last FSRS rating applied to the card, ``0`` when none.
    """

    card_id: str
    card_data: Mapping[str, Any] = field(default_factory=dict)
    phase: Phase = field(default_factory=FirstLearning)
    algo: Optional[FsrsMemory] = None
    seen_in_session: bool = False
    prev_answer: Optional[str] = None
    grade: int = 0

    @property
    def is_new(self) -> bool:
        return self.phase.is_new

    @property
    def consecutive_good(self) -> int:
        return self.phase.consecutive_good

    def replace(self, **changes: Any) -> "Card":
        """Return a new instance with *changes* applied."""

        return replace(self, **changes)

    def with_first_learning(
        self, *, due: Optional[datetime], state: int, consecutive_good: int
    ) -> "Card":
        """Update the first-learning record of a card that has not graduated."""

        if not isinstance(self.phase, FirstLearning):
            raise ValueError(f"Card {self.card_id} has already graduated")
        phase = FirstLearning(due=due, state=state, consecutive_good=consecutive_good)
        return replace(self, phase=phase)

    def graduate(self, consecutive_good: int) -> "Card":
        """Move the card to the FSRS phase, keeping its first-learning trail."""

        phase = Graduated(
            due=self.phase.due,
            state=self.phase.state,
            consecutive_good=consecutive_good,
        )
        return replace(self, phase=phase)

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------
    def first_learn_record(self) -> Dict[str, Any]:
        return {
            "isNew": self.is_new,
            "due": format_datetime(self.phase.due),
            "state": self.phase.state,
            "consecutiveGood": self.phase.consecutive_good,
        }

    def interval(self) -> float:
        if self.algo is None or not self.algo.scheduled_days:
            return 1
        return self.algo.scheduled_days

    def persistence_payload(self) -> Dict[str, Any]:
        """Fields to save after an answer.

        Cards still in first learning only persist their ``firstLearn``
        record. Graduated cards persist the full grade/difficulty/interval
        payload.
        """

        if self.is_new:
            return {"firstLearn": self.first_learn_record()}
        return {
            "grade": self.grade,
            "difficulty": self.algo.difficulty if self.algo else DEFAULT_DIFFICULTY,
            "interval": self.interval(),
            "firstLearn": self.first_learn_record(),
            "cardAlgo": self.algo.to_storage_dict() if self.algo else None,
        }

    def to_storage_dict(self) -> Dict[str, Any]:
        """Serialise the card into a JSON friendly dictionary."""

        data: Dict[str, Any] = {
            "id": self.card_id,
            "cardData": dict(self.card_data),
            "firstLearn": self.first_learn_record(),
            "cardAlgo": self.algo.to_storage_dict() if self.algo else None,
            "grade": self.grade,
            "interval": self.interval(),
        }
        if self.prev_answer is not None:
            data["prevAns"] = self.prev_answer
        return data


DoneCard = Card


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------

def _as_int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def normalize_card(raw: Mapping[str, Any], now: datetime) -> Card:
    """Build a :class:`Card` from a raw collaborator record.

    Missing FSRS fields fall back to ``difficulty=2.5``, ``stability=0``,
    ``reps=0``, ``lapses=0``, ``scheduled_days=0``, ``elapsed_days=0``,
    ``last_review=now``, ``state=0`` and ``due=now``. Legacy top-level fields
    are consulted before the defaults. When ``firstLearn`` is absent the card
    counts as new if it has no repetitions, is in the New state, or has never
    been reviewed.
    """

    if not isinstance(raw, Mapping):
        raise TypeError("Card records must be mappings")
    card_id = raw.get("id")
    if card_id in (None, ""):
        raise ValueError("Card records must define an id")

    now = ensure_utc(now)
    algo = raw.get("cardAlgo") or {}
    if not isinstance(algo, Mapping):
        algo = {}
    first = raw.get("firstLearn")
    if not isinstance(first, Mapping):
        first = None

    first_is_new = bool(first.get("isNew")) if first is not None else False
    if first_is_new:
        due = parse_datetime(first.get("due")) or now
    else:
        due = _first_present(
            parse_datetime(algo.get("due")),
            parse_datetime(raw.get("nextReviewDate")),
            now,
        )
    recorded_review = _first_present(
        parse_datetime(algo.get("last_review")),
        parse_datetime(raw.get("lastReviewDate")),
    )
    algo_state = algo.get("state")
    if not isinstance(algo_state, (int, float)) or isinstance(algo_state, bool):
        algo_state = raw.get("state")
    memory = FsrsMemory(
        difficulty=_as_float(
            _first_present(algo.get("difficulty"), raw.get("difficulty")),
            DEFAULT_DIFFICULTY,
        ),
        stability=_as_float(
            _first_present(algo.get("stability"), raw.get("stability")), 0.0
        ),
        reps=_as_int(_first_present(algo.get("reps"), raw.get("reps")), 0),
        lapses=_as_int(_first_present(algo.get("lapses"), raw.get("lapses")), 0),
        scheduled_days=_as_float(
            _first_present(algo.get("scheduled_days"), raw.get("scheduled_days")), 0
        ),
        elapsed_days=_as_float(
            _first_present(algo.get("elapsed_days"), raw.get("elapsed_days")), 0
        ),
        last_review=recorded_review or now,
        state=_as_int(algo_state, int(State.NEW)),
        due=due,
    )

    if first is not None:
        is_new = bool(first.get("isNew", False))
        first_due = parse_datetime(first.get("due"))
        first_state = _as_int(first.get("state"), memory.state)
        consecutive_good = _as_int(first.get("consecutiveGood"), 0)
    else:
        is_new = (
            memory.reps == 0
            or memory.state == State.NEW
            or recorded_review is None
        )
        first_due = None
        first_state = memory.state
        consecutive_good = 0

    phase_type = FirstLearning if is_new else Graduated
    phase = phase_type(due=first_due, state=first_state, consecutive_good=consecutive_good)

    card_data = raw.get("cardData")
    if not isinstance(card_data, Mapping):
        card_data = {k: v for k, v in raw.items() if k not in _SCHEDULING_KEYS}

    prev_answer = raw.get("prevAns")
    return Card(
        card_id=str(card_id),
        card_data=dict(card_data),
        phase=phase,
        algo=memory,
        seen_in_session=bool(raw.get("seenInSession", False)),
        prev_answer=prev_answer if prev_answer in ANSWERS else None,
        grade=_as_int(raw.get("grade"), 0),
    )


__all__ = [
    "ANSWERS",
    "Card",
    "DoneCard",
    "EASY",
    "FirstLearning",
    "FsrsMemory",
    "GOOD",
    "Graduated",
    "HARD",
    "Phase",
    "State",
    "WRONG",
    "ensure_utc",
    "format_datetime",
    "normalize_card",
    "parse_datetime",
    "utc_now",
]
