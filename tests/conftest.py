import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from flashdeck.card_state import normalize_card
from flashdeck.collaborator import DailyLimits
from flashdeck.fsrs_engine import FSRSEngine
from flashdeck.review_service import LearningSession

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def raw_new(card_id, *, due=None, consecutive_good=0, state=0):
    first = {"isNew": True, "state": state, "consecutiveGood": consecutive_good}
    if due is not None:
        first["due"] = due
    return {
        "id": card_id,
        "cardData": {"front": f"front {card_id}", "back": f"back {card_id}"},
        "firstLearn": first,
        "cardAlgo": {
            "difficulty": 2.5,
            "stability": 0,
            "reps": 0,
            "lapses": 0,
            "scheduled_days": 0,
            "elapsed_days": 0,
            "last_review": NOW,
            "state": 0,
            "due": NOW,
        },
    }


def raw_review(card_id, *, due=NOW, state=2, stability=10.0, lapses=0):
    return {
        "id": card_id,
        "cardData": {"front": f"front {card_id}", "back": f"back {card_id}"},
        "firstLearn": {"isNew": False, "state": 1, "consecutiveGood": 2},
        "cardAlgo": {
            "difficulty": 5.0,
            "stability": stability,
            "reps": 4,
            "lapses": lapses,
            "scheduled_days": 10,
            "elapsed_days": 10,
            "last_review": NOW - timedelta(days=10),
            "state": state,
            "due": due,
        },
    }


class FakeCollaborator:
    """In-memory collaborator recording every call."""

    def __init__(self, due=None, new=None, limits=None):
        self.due = list(due or [])
        self.new = list(new or [])
        self.limits = limits or DailyLimits(daily_goal=10, daily_new=5)
        self.fail_fetch = False
        self.fail_persist = False
        self.due_requests = []
        self.new_requests = []
        self.updates = []
        self.batches = []

    def fetch_deck_meta(self, deck_id):
        if self.fail_fetch:
            raise ConnectionError("deck service unavailable")
        return {"id": deck_id, "title": "Test Deck"}

    def fetch_user_daily_limits(self, user_id):
        return self.limits

    def fetch_due_cards(self, deck_id, limit):
        self.due_requests.append((deck_id, limit))
        return list(self.due)

    def fetch_new_candidate_cards(self, deck_id, limit):
        self.new_requests.append((deck_id, limit))
        return list(self.new)

    def persist_card_update(self, user_id, deck_id, card):
        if self.fail_persist:
            raise IOError("disk full")
        self.updates.append((user_id, deck_id, card))

    def persist_batch(self, user_id, deck_id, done_cards):
        if self.fail_persist:
            raise IOError("disk full")
        self.batches.append((user_id, deck_id, tuple(done_cards)))


@pytest.fixture
def engine():
    return FSRSEngine()


@pytest.fixture
def new_card():
    def factory(card_id="n1", **kwargs):
        return normalize_card(raw_new(card_id, **kwargs), NOW)

    return factory


@pytest.fixture
def review_card():
    def factory(card_id="r1", **kwargs):
        return normalize_card(raw_review(card_id, **kwargs), NOW)

    return factory


@pytest.fixture
def make_session():
    sessions = []

    def factory(collaborator, **kwargs):
        kwargs.setdefault("clock", lambda: NOW)
        session = LearningSession("deck-1", "user-1", collaborator, **kwargs)
        sessions.append(session)
        return session

    yield factory
    for session in sessions:
        session.close()
