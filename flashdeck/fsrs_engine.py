"""Python implementation of the FSRS scheduling equations.

:func:`repeat` takes a card's memory state and returns one fully updated
candidate per rating, the way the scheduler needs it: the caller picks the
candidate matching the learner's answer and discards the rest. Fuzz is never
applied, so results depend only on ``(memory, now, rating)``.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

from flashdeck.card_state import EASY, GOOD, HARD, WRONG, FsrsMemory, State
from flashdeck.config import WEIGHTS_DIR

logger = logging.getLogger(__name__)

BASE_RETENTION = 0.9
FSRS_45_DECAY = -0.5
MINUTE = timedelta(minutes=1)

# Weights of the deployed FSRS-4.5 preset.
DEFAULT_WEIGHTS = (
    0.4, 0.6, 2.4, 5.8, 4.93, 0.94, 0.86, 0.01, 1.49,
    0.14, 0.94, 2.18, 0.05, 0.34, 1.26, 0.29, 2.61,
)


class Rating(IntEnum):
    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


ANSWER_RATINGS = {
    WRONG: Rating.AGAIN,
    HARD: Rating.HARD,
    GOOD: Rating.GOOD,
    EASY: Rating.EASY,
}


def rating_for(answer: Any) -> Rating:
    """Map an answer type to its rating; unknown answers count as Again."""

    return ANSWER_RATINGS.get(answer, Rating.AGAIN)


@dataclass(frozen=True)
class WeightConfig:
    version: str
    weights: Tuple[float, ...]
    request_retention: float = BASE_RETENTION
    maximum_interval: int = 36500

    @property
    def decay(self) -> float:
        if len(self.weights) > 20:
            return -self.weights[20]
        return FSRS_45_DECAY

    @property
    def factor(self) -> float:
        return math.pow(BASE_RETENTION, 1 / self.decay) - 1

    @property
    def target_factor(self) -> float:
        return math.pow(self.request_retention, 1 / self.decay) - 1


DEFAULT_CONFIG = WeightConfig(version="default", weights=DEFAULT_WEIGHTS)

_WEIGHTS_CACHE: Dict[str, WeightConfig] = {DEFAULT_CONFIG.version: DEFAULT_CONFIG}


def _load_weight_file(path: Path) -> WeightConfig:
    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    version = str(payload.get("w_version") or path.stem)
    weights = tuple(float(x) for x in payload["weights"])
    if len(weights) not in (17, 21):
        raise ValueError(f"{path} must define 17 or 21 weights, got {len(weights)}")
    request_retention = float(payload.get("request_retention", BASE_RETENTION))
    maximum_interval = int(payload.get("maximum_interval", 36500))
    return WeightConfig(
        version=version,
        weights=weights,
        request_retention=request_retention,
        maximum_interval=maximum_interval,
    )


def _iter_weight_files(weights_dir: Path) -> Iterable[Path]:
    if not weights_dir.exists():
        return []
    return sorted(weights_dir.glob("*.json"))


def load_weights(
    version: Optional[str] = None, weights_dir: Path = WEIGHTS_DIR
) -> WeightConfig:
    """Load the weight preset *version* from *weights_dir*.

    Without a version the built-in preset is returned.
    """

    if version is None:
        return DEFAULT_CONFIG
    if version in _WEIGHTS_CACHE:
        return _WEIGHTS_CACHE[version]

    for path in _iter_weight_files(Path(weights_dir)):
        config = _load_weight_file(path)
        _WEIGHTS_CACHE[config.version] = config
        if config.version == version:
            logger.debug("Loaded FSRS weights %s from %s", version, path)
            return config
    raise FileNotFoundError(f"No weights found for version '{version}' in {weights_dir}")


# ---------------------------------------------------------------------------
# Core FSRS equations
# ---------------------------------------------------------------------------

def constrain_difficulty(value: float) -> float:
    return min(max(value, 1.0), 10.0)


def forgetting_curve(elapsed_days: float, stability: float, cfg: WeightConfig) -> float:
    stability = max(stability, 0.1)
    return math.pow(1 + cfg.factor * elapsed_days / stability, cfg.decay)


def next_interval(stability: float, cfg: WeightConfig) -> int:
    raw_interval = max(stability, 0.1) / cfg.factor * cfg.target_factor
    interval = max(int(round(raw_interval)), 1)
    return min(interval, cfg.maximum_interval)


def init_difficulty(rating: Rating, cfg: WeightConfig) -> float:
    return constrain_difficulty(cfg.weights[4] - (int(rating) - 3) * cfg.weights[5])


def init_stability(rating: Rating, cfg: WeightConfig) -> float:
    return max(cfg.weights[int(rating) - 1], 0.1)


def mean_reversion(initial: float, current: float, cfg: WeightConfig) -> float:
    return cfg.weights[7] * initial + (1 - cfg.weights[7]) * current


def next_difficulty(difficulty: float, rating: Rating, cfg: WeightConfig) -> float:
    next_d = difficulty - cfg.weights[6] * (int(rating) - 3)
    return constrain_difficulty(mean_reversion(cfg.weights[4], next_d, cfg))


def next_recall_stability(
    difficulty: float,
    stability: float,
    retrievability: float,
    rating: Rating,
    cfg: WeightConfig,
) -> float:
    hard_penalty = cfg.weights[15] if rating == Rating.HARD else 1.0
    easy_bonus = cfg.weights[16] if rating == Rating.EASY else 1.0
    value = stability * (
        1
        + math.exp(cfg.weights[8])
        * (11 - difficulty)
        * math.pow(stability, -cfg.weights[9])
        * (math.exp((1 - retrievability) * cfg.weights[10]) - 1)
        * hard_penalty
        * easy_bonus
    )
    return max(value, 0.1)


def next_forget_stability(
    difficulty: float, stability: float, retrievability: float, cfg: WeightConfig
) -> float:
    value = (
        cfg.weights[11]
        * math.pow(difficulty, -cfg.weights[12])
        * (math.pow(stability + 1, cfg.weights[13]) - 1)
        * math.exp((1 - retrievability) * cfg.weights[14])
    )
    return max(min(value, stability), 0.1)


# ---------------------------------------------------------------------------
# Review workflow
# ---------------------------------------------------------------------------

def _ensure_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    raise TypeError("now must be a datetime instance")


def _elapsed_days(memory: FsrsMemory, now: datetime) -> int:
    if memory.state == State.NEW or memory.last_review is None:
        return 0
    delta = now - memory.last_review
    return max(int(delta.total_seconds() // 86400), 0)


def _short_term(base: FsrsMemory, now: datetime, minutes: int, state: State, **changes: Any) -> FsrsMemory:
    return replace(
        base,
        scheduled_days=0,
        due=now + minutes * MINUTE,
        state=int(state),
        **changes,
    )


def _review(base: FsrsMemory, now: datetime, days: int, **changes: Any) -> FsrsMemory:
    return replace(
        base,
        scheduled_days=days,
        due=now + timedelta(days=days),
        state=int(State.REVIEW),
        **changes,
    )


def _repeat_new(base: FsrsMemory, now: datetime, cfg: WeightConfig) -> Dict[Rating, FsrsMemory]:
    memory = {
        rating: dict(
            difficulty=init_difficulty(rating, cfg),
            stability=init_stability(rating, cfg),
        )
        for rating in Rating
    }
    easy_days = next_interval(memory[Rating.EASY]["stability"], cfg)
    return {
        Rating.AGAIN: _short_term(base, now, 1, State.LEARNING, **memory[Rating.AGAIN]),
        Rating.HARD: _short_term(base, now, 5, State.LEARNING, **memory[Rating.HARD]),
        Rating.GOOD: _short_term(base, now, 10, State.LEARNING, **memory[Rating.GOOD]),
        Rating.EASY: _review(base, now, easy_days, **memory[Rating.EASY]),
    }


def _next_memory(
    previous: FsrsMemory, elapsed: int, cfg: WeightConfig
) -> Dict[Rating, Dict[str, float]]:
    stability = previous.stability
    if stability <= 0:
        stability = init_stability(Rating.GOOD, cfg)
    retrievability = forgetting_curve(elapsed, stability, cfg)
    result: Dict[Rating, Dict[str, float]] = {}
    for rating in Rating:
        difficulty = next_difficulty(previous.difficulty, rating, cfg)
        if rating == Rating.AGAIN:
            new_stability = next_forget_stability(difficulty, stability, retrievability, cfg)
        else:
            new_stability = next_recall_stability(
                difficulty, stability, retrievability, rating, cfg
            )
        result[rating] = {"difficulty": difficulty, "stability": new_stability}
    return result


def repeat(
    memory: FsrsMemory,
    now: Any,
    config: Optional[WeightConfig] = None,
) -> Dict[Rating, FsrsMemory]:
    """Return the updated memory state for every possible rating."""

    cfg = config or DEFAULT_CONFIG
    now = _ensure_datetime(now)
    elapsed = _elapsed_days(memory, now)
    base = replace(memory, elapsed_days=elapsed, last_review=now, reps=memory.reps + 1)

    if memory.state == State.NEW:
        return _repeat_new(base, now, cfg)

    memory_by_rating = _next_memory(memory, elapsed, cfg)
    hard_days = next_interval(memory_by_rating[Rating.HARD]["stability"], cfg)
    good_days = next_interval(memory_by_rating[Rating.GOOD]["stability"], cfg)
    easy_days = next_interval(memory_by_rating[Rating.EASY]["stability"], cfg)

    if memory.state in (State.LEARNING, State.RELEARNING):
        easy_days = max(easy_days, good_days + 1)
        return {
            Rating.AGAIN: _short_term(base, now, 5, State(memory.state), **memory_by_rating[Rating.AGAIN]),
            Rating.HARD: _short_term(base, now, 10, State(memory.state), **memory_by_rating[Rating.HARD]),
            Rating.GOOD: _review(base, now, good_days, **memory_by_rating[Rating.GOOD]),
            Rating.EASY: _review(base, now, easy_days, **memory_by_rating[Rating.EASY]),
        }

    hard_days = min(hard_days, good_days)
    good_days = max(good_days, hard_days + 1)
    easy_days = max(easy_days, good_days + 1)
    return {
        Rating.AGAIN: _short_term(
            base,
            now,
            5,
            State.RELEARNING,
            lapses=memory.lapses + 1,
            **memory_by_rating[Rating.AGAIN],
        ),
        Rating.HARD: _review(base, now, hard_days, **memory_by_rating[Rating.HARD]),
        Rating.GOOD: _review(base, now, good_days, **memory_by_rating[Rating.GOOD]),
        Rating.EASY: _review(base, now, easy_days, **memory_by_rating[Rating.EASY]),
    }


class FSRSEngine:
    """Candidate generator bound to a single weight preset."""

    def __init__(self, config: Optional[WeightConfig] = None) -> None:
        self.config = config or DEFAULT_CONFIG

    @classmethod
    def from_settings(cls, weights_version: Optional[str], weights_dir: Path) -> "FSRSEngine":
        return cls(load_weights(weights_version, weights_dir))

    def repeat(self, memory: FsrsMemory, now: datetime) -> Dict[Rating, FsrsMemory]:
        return repeat(memory, now, self.config)

    def next_for_answer(self, memory: FsrsMemory, answer: Any, now: datetime) -> Tuple[Rating, FsrsMemory]:
        """Pick the candidate for *answer*, falling back to Again."""

        rating = rating_for(answer)
        return rating, self.repeat(memory, now)[rating]


__all__ = [
    "ANSWER_RATINGS",
    "DEFAULT_CONFIG",
    "DEFAULT_WEIGHTS",
    "FSRSEngine",
    "Rating",
    "WeightConfig",
    "constrain_difficulty",
    "forgetting_curve",
    "init_difficulty",
    "init_stability",
    "load_weights",
    "mean_reversion",
    "next_difficulty",
    "next_forget_stability",
    "next_interval",
    "next_recall_stability",
    "rating_for",
    "repeat",
]
