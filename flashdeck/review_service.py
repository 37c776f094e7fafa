"""Study session orchestration: working set, answers, persistence, completion."""

from __future__ import annotations

import logging
import threading
from concurrent import futures
from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Tuple

from flashdeck.card_state import Card, ensure_utc, utc_now
from flashdeck.collaborator import StudyCollaborator
from flashdeck.config import StudySettings
from flashdeck.errors import (
    CardProcessingError,
    FetchError,
    NoCardsAvailable,
    PersistenceError,
    StudyError,
)
from flashdeck.fsrs_engine import FSRSEngine
from flashdeck.ordering import sort_working_set
from flashdeck.progress import ProgressState, apply_answer as count_answer
from flashdeck.session_builder import SessionBuild, build_session
from flashdeck.transitions import Transition, apply_answer

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[ProgressState, bool], None]
PersistenceErrorCallback = Callable[[PersistenceError], None]


class SessionStatus(str, Enum):
    LOADING = "loading"
    EMPTY = "empty"
    ACTIVE = "active"
    COMPLETE = "complete"
    FAILED = "failed"


class PersistenceDispatcher:
    """Run collaborator saves in the background without blocking answers.

    The default executor has a single worker so saves reach the collaborator
    in answer order. Failures are logged and reported through *on_error*;
    nothing is retried.
    """

    def __init__(
        self,
        executor: Optional[futures.Executor] = None,
        on_error: Optional[PersistenceErrorCallback] = None,
    ) -> None:
        self._owns_executor = executor is None
        self._executor = executor or futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="flashdeck-persist"
        )
        self.on_error = on_error
        self._pending: List[futures.Future] = []
        self._lock = threading.Lock()

    def submit(
        self, description: str, func: Callable[..., Any], *args: Any
    ) -> Optional[futures.Future]:
        """Queue a save; ``None`` when the dispatcher no longer accepts work."""

        try:
            future = self._executor.submit(self._run, description, func, *args)
        except RuntimeError as exc:
            self._fail(description, exc)
            return None
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)
        return future

    def _run(self, description: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return func(*args)
        except Exception as exc:
            self._fail(description, exc)
            return None

    def _fail(self, description: str, exc: BaseException) -> None:
        logger.warning("Error saving %s: %s", description, exc)
        if self.on_error is None:
            return
        error = PersistenceError(f"Failed to save {description}: {exc}")
        error.__cause__ = exc
        self.on_error(error)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for outstanding saves; ``True`` when none is left running."""

        with self._lock:
            pending = list(self._pending)
        _, not_done = futures.wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self) -> None:
        self.flush()
        if self._owns_executor:
            self._executor.shutdown(wait=True)


class LearningSession:
    """One learner studying one deck.

    The session owns its working set, done cards and progress. Each call to
    :meth:`answer` is a single atomic transition; new values are computed
    first and only then committed, so a failing answer leaves the last good
    state in place. Errors are exposed through the :attr:`error` slot rather
    than raised.
    """

    def __init__(
        self,
        deck_id: str,
        user_id: str,
        collaborator: StudyCollaborator,
        *,
        settings: Optional[StudySettings] = None,
        engine: Optional[FSRSEngine] = None,
        clock: Callable[[], datetime] = utc_now,
        dispatcher: Optional[PersistenceDispatcher] = None,
        on_complete: Optional[CompletionCallback] = None,
        on_persistence_error: Optional[PersistenceErrorCallback] = None,
    ) -> None:
        self.deck_id = deck_id
        self.user_id = user_id
        self.collaborator = collaborator
        self.settings = settings or StudySettings()
        self.engine = engine or FSRSEngine.from_settings(
            self.settings.weights_version, self.settings.weights_dir
        )
        self.clock = clock
        self.dispatcher = dispatcher or PersistenceDispatcher(on_error=on_persistence_error)
        if dispatcher is not None and on_persistence_error is not None:
            self.dispatcher.on_error = on_persistence_error
        self.on_complete = on_complete

        self.deck: Mapping[str, Any] = {}
        self.status = SessionStatus.LOADING
        self.is_loading = False
        self.error: Optional[str] = None
        self._cards: Tuple[Card, ...] = ()
        self._done: Tuple[Card, ...] = ()
        self._progress = ProgressState()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def cards(self) -> Tuple[Card, ...]:
        return self._cards

    @property
    def done_cards(self) -> Tuple[Card, ...]:
        return self._done

    @property
    def progress(self) -> ProgressState:
        return self._progress

    @property
    def current_card(self) -> Optional[Card]:
        return self._cards[0] if self._cards else None

    @property
    def remaining(self) -> int:
        return len(self._cards)

    @property
    def completion_ratio(self) -> float:
        return self._progress.completion_ratio

    # ------------------------------------------------------------------
    # Error slot
    # ------------------------------------------------------------------
    def set_error(self, message: Optional[str]) -> None:
        self.error = message

    def clear_error(self) -> None:
        self.error = None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def build(self, now: Optional[datetime] = None) -> Optional[SessionBuild]:
        """Fetch the working set; on failure set the error slot and return ``None``."""

        now = ensure_utc(now or self.clock())
        self.is_loading = True
        self.status = SessionStatus.LOADING
        try:
            result = build_session(self.collaborator, self.deck_id, self.user_id, now, self.settings)
        except FetchError as exc:
            self._cards, self._done = (), ()
            self._progress = ProgressState()
            self.status = SessionStatus.FAILED
            self.error = exc.message
            return None
        finally:
            self.is_loading = False

        self.deck = result.deck
        self._cards = result.cards
        self._done = ()
        self._progress = result.progress
        if result.is_empty:
            self.status = SessionStatus.EMPTY
            logger.info("Nothing to learn in deck %s", self.deck_id)
            self._notify_complete(empty=True)
        else:
            self.status = SessionStatus.ACTIVE
        return result

    def answer(self, answer: str, now: Optional[datetime] = None) -> Optional[Transition]:
        """Apply *answer* to the head card; ``None`` when it could not be applied."""

        now = ensure_utc(now or self.clock())
        try:
            if not self._cards:
                raise NoCardsAvailable()
            head, rest = self._cards[0], self._cards[1:]
            transition = apply_answer(head, answer, now, self.engine, self.settings)
            if transition.resolved:
                cards = sort_working_set(rest, now)
                done = self._done + (transition.card,)
            else:
                cards = sort_working_set((transition.card,) + rest, now)
                done = self._done
            progress = count_answer(
                self._progress,
                transition.previous_answer,
                transition.answer,
                resolved=transition.resolved,
            )
        except StudyError as exc:
            logger.warning("Answer %r rejected: %s", answer, exc.message)
            self.error = exc.message
            return None
        except Exception as exc:
            logger.exception("Error processing card")
            self.error = CardProcessingError(str(exc) or None).message
            return None

        self._cards, self._done, self._progress = cards, done, progress
        self.error = None
        self.dispatcher.submit(
            f"card {transition.card.card_id}",
            self.collaborator.persist_card_update,
            self.user_id,
            self.deck_id,
            transition.card,
        )
        if progress.todo == 0 and self.status == SessionStatus.ACTIVE:
            self._finalize()
        return transition

    def _finalize(self) -> None:
        self.dispatcher.submit(
            f"{len(self._done)} done cards",
            self.collaborator.persist_batch,
            self.user_id,
            self.deck_id,
            self._done,
        )
        self.status = SessionStatus.COMPLETE
        logger.info("Session for deck %s complete: %s", self.deck_id, self._progress.to_dict())
        self._notify_complete(empty=False)

    def _notify_complete(self, *, empty: bool) -> None:
        if self.on_complete is None:
            return
        try:
            self.on_complete(self._progress, empty)
        except Exception:
            logger.exception("Completion callback failed for deck %s", self.deck_id)

    def flush(self, timeout: Optional[float] = None) -> bool:
        return self.dispatcher.flush(timeout)

    def close(self) -> None:
        self.dispatcher.shutdown()

    def __enter__(self) -> "LearningSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


__all__ = [
    "LearningSession",
    "PersistenceDispatcher",
    "SessionStatus",
]
