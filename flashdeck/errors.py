"""Exception types raised by the study engine."""

from __future__ import annotations

from typing import Optional


class StudyError(Exception):
    """Base class for every error surfaced by a learning session."""

    default_message = "An error occurred while processing the card"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else self.default_message


class NoCardsAvailable(StudyError):
    """An answer arrived while the working set was empty."""

    default_message = "No cards available"


class CardProcessingError(StudyError):
    """A transition could not be computed for the head card."""


class PersistenceError(StudyError):
    """The collaborator failed to save a card or a batch of cards."""

    default_message = "Failed to save card progress"


class FetchError(StudyError):
    """Deck metadata, user limits or candidate pools could not be fetched."""

    default_message = "Failed to fetch cards"


__all__ = [
    "CardProcessingError",
    "FetchError",
    "NoCardsAvailable",
    "PersistenceError",
    "StudyError",
]
