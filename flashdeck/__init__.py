"""Spaced-repetition study engine for flashcard decks."""

from .card_state import Card, FirstLearning, FsrsMemory, Graduated, normalize_card
from .collaborator import DailyLimits, StudyCollaborator
from .config import StudySettings, load_settings
from .errors import CardProcessingError, FetchError, NoCardsAvailable, PersistenceError, StudyError
from .fsrs_engine import FSRSEngine, Rating
from .progress import ProgressState
from .review_service import LearningSession, SessionStatus

__all__ = [
    "Card",
    "CardProcessingError",
    "DailyLimits",
    "FSRSEngine",
    "FetchError",
    "FirstLearning",
    "FsrsMemory",
    "Graduated",
    "LearningSession",
    "NoCardsAvailable",
    "PersistenceError",
    "ProgressState",
    "Rating",
    "SessionStatus",
    "StudyCollaborator",
    "StudyError",
    "StudySettings",
    "load_settings",
    "normalize_card",
]
