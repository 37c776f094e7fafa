"""Runtime settings for study sessions.

Settings are plain constants with an optional JSON override file, loaded the
same way FSRS weight presets are. The file location defaults to the
``FLASHDECK_SETTINGS`` environment variable.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

SETTINGS_ENV_VAR = "FLASHDECK_SETTINGS"
DATA_ROOT = Path("res")
WEIGHTS_DIR = DATA_ROOT / "weights"

DEFAULT_DAILY_GOAL = 10
DEFAULT_DAILY_NEW = 20
OVERFETCH_FACTOR = 3
GRADUATION_THRESHOLD = 2

FSRS_WRONG_COOLDOWN_MINUTES = 10
FIRST_LEARN_GOOD_MINUTES = 10
FIRST_LEARN_HARD_MINUTES = 5
FIRST_LEARN_WRONG_MINUTES = 1


@dataclass(frozen=True)
class StudySettings:
    """Tunable knobs of the scheduler and its file-backed store."""

    daily_goal: int = DEFAULT_DAILY_GOAL
    daily_new: int = DEFAULT_DAILY_NEW
    overfetch_factor: int = OVERFETCH_FACTOR
    graduation_threshold: int = GRADUATION_THRESHOLD
    fsrs_wrong_minutes: int = FSRS_WRONG_COOLDOWN_MINUTES
    first_good_minutes: int = FIRST_LEARN_GOOD_MINUTES
    first_hard_minutes: int = FIRST_LEARN_HARD_MINUTES
    first_wrong_minutes: int = FIRST_LEARN_WRONG_MINUTES
    weights_dir: Path = WEIGHTS_DIR
    weights_version: Optional[str] = None
    data_root: Path = DATA_ROOT

    @property
    def fsrs_wrong_cooldown(self) -> timedelta:
        return timedelta(minutes=self.fsrs_wrong_minutes)

    def first_learn_cooldown(self, answer: str) -> timedelta:
        minutes = {
            "good": self.first_good_minutes,
            "hard": self.first_hard_minutes,
            "wrong": self.first_wrong_minutes,
        }[answer]
        return timedelta(minutes=minutes)

    def due_pool_size(self, daily_goal: int, daily_new: int) -> int:
        return daily_goal * self.overfetch_factor + daily_new * self.overfetch_factor

    def new_pool_size(self, daily_new: int) -> int:
        return daily_new * self.overfetch_factor

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "StudySettings":
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in payload.items():
            if key not in known or value is None:
                continue
            if key in {"weights_dir", "data_root"}:
                values[key] = Path(value)
            elif key == "weights_version":
                values[key] = str(value)
            else:
                values[key] = int(value)
        return cls(**values)


def load_settings(path: Optional[Path] = None) -> StudySettings:
    """Read settings from *path*, the environment-named file, or defaults."""

    if path is None:
        env_path = os.environ.get(SETTINGS_ENV_VAR)
        if not env_path:
            return StudySettings()
        path = Path(env_path)
    with Path(path).open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, Mapping):
        raise ValueError(f"Settings file {path} must contain a JSON object")
    return StudySettings.from_mapping(payload)


__all__ = [
    "DEFAULT_DAILY_GOAL",
    "DEFAULT_DAILY_NEW",
    "GRADUATION_THRESHOLD",
    "OVERFETCH_FACTOR",
    "SETTINGS_ENV_VAR",
    "StudySettings",
    "load_settings",
]
