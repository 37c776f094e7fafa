import json
from datetime import timedelta

import pytest

from conftest import NOW
from flashdeck.collaborator import DailyLimits
from flashdeck.file_store import JsonFileStore, settle_graduation
from flashdeck.review_service import LearningSession


@pytest.fixture
def store(tmp_path):
    store = JsonFileStore(tmp_path, user_id="user-1", clock=lambda: NOW)
    store.write_deck(
        "deck-1",
        [
            {"cardData": {"front": "hola", "back": "hello"}},
            {"id": "custom", "front": "adios", "back": "bye"},
        ],
        title="Spanish",
    )
    return store


def study(store, answers):
    with LearningSession("deck-1", "user-1", store, clock=lambda: NOW) as session:
        session.build()
        for answer in answers:
            session.answer(answer)
        assert session.flush(timeout=5)
    return session


def test_write_deck_assigns_ids(store, tmp_path):
    payload = json.loads((tmp_path / "decks" / "deck-1.json").read_text(encoding="utf-8"))

    assert [card["id"] for card in payload["cards"]] == ["deck-1-1", "custom"]
    assert payload["cards"][1]["cardData"] == {"front": "adios", "back": "bye"}
    assert store.fetch_deck_meta("deck-1") == {"id": "deck-1", "title": "Spanish", "cardCount": 2}
    assert store.list_decks() == ["deck-1"]


def test_missing_deck(store):
    with pytest.raises(FileNotFoundError):
        store.fetch_deck_meta("nope")


def test_new_candidates_respect_limit(store):
    assert [card["id"] for card in store.fetch_new_candidate_cards("deck-1", 1)] == ["deck-1-1"]
    assert store.fetch_due_cards("deck-1", 10) == []


def test_daily_limits_default_and_saved(store):
    assert store.fetch_user_daily_limits("user-1") == DailyLimits()

    store.save_user_daily_limits("user-1", DailyLimits(daily_goal=3, daily_new=4))
    assert store.fetch_user_daily_limits("user-1") == DailyLimits(daily_goal=3, daily_new=4)
    assert store.fetch_user_daily_limits("someone-else") == DailyLimits()


def test_session_progress_is_saved(store, tmp_path):
    study(store, ["good", "easy"])

    later = JsonFileStore(tmp_path, user_id="user-1", clock=lambda: NOW + timedelta(minutes=15))
    due = later.fetch_due_cards("deck-1", 10)
    assert [card["id"] for card in due] == ["deck-1-1"]
    assert due[0]["firstLearn"]["consecutiveGood"] == 1
    assert due[0]["cardData"] == {"front": "hola", "back": "hello"}
    assert later.fetch_new_candidate_cards("deck-1", 10) == []

    other_user = JsonFileStore(tmp_path, user_id="user-2", clock=lambda: NOW)
    assert len(other_user.fetch_new_candidate_cards("deck-1", 10)) == 2


def test_graduated_card_saves_fsrs_state(store):
    study(store, ["good", "easy"])

    records = [json.loads(line) for line in store.state_path.read_text(encoding="utf-8").splitlines()]
    state = {record["card_id"]: record["state"] for record in records}
    assert set(state["deck-1-1"]) == {"firstLearn"}
    graduated = state["custom"]
    assert graduated["firstLearn"]["isNew"] is False
    assert graduated["grade"] == 4
    assert graduated["interval"] == 6
    assert graduated["cardAlgo"]["state"] == 2


def test_review_log_records_each_save(store):
    study(store, ["good", "easy"])
    log = store.read_review_log()

    assert [entry["answer"] for entry in log] == ["good", "easy"]
    assert {entry["card_id"] for entry in log} == {"deck-1-1", "custom"}
    assert all(entry["logged_at"] == "2024-01-01T12:00:00Z" for entry in log)


def test_streak_graduation_schedules_first_review(tmp_path):
    store = JsonFileStore(tmp_path, user_id="user-1", clock=lambda: NOW)
    store.write_deck("deck-1", [{"cardData": {"front": "hola", "back": "hello"}}])
    study(store, ["good", "good"])

    records = [json.loads(line) for line in store.state_path.read_text(encoding="utf-8").splitlines()]
    algo = records[0]["state"]["cardAlgo"]
    assert records[0]["state"]["firstLearn"]["isNew"] is False
    assert algo["state"] == 2
    assert algo["reps"] == 1
    assert algo["due"] == "2024-01-02T12:00:00Z"
    assert algo["last_review"] == "2024-01-01T12:00:00Z"

    soon = NOW + timedelta(minutes=30)
    later = JsonFileStore(tmp_path, user_id="user-1", clock=lambda: soon)
    assert later.fetch_due_cards("deck-1", 10) == []
    with LearningSession("deck-1", "user-1", later, clock=lambda: soon) as session:
        session.build()
        assert session.cards == ()

    tomorrow = JsonFileStore(tmp_path, user_id="user-1", clock=lambda: NOW + timedelta(days=1))
    assert [card["id"] for card in tomorrow.fetch_due_cards("deck-1", 10)] == ["deck-1-1"]


def test_settle_graduation_leaves_engine_scheduled_cards(review_card, new_card):
    card = review_card()
    assert settle_graduation(card, NOW) == card

    fresh = new_card()
    assert settle_graduation(fresh, NOW) == fresh

    settled = settle_graduation(fresh.graduate(2), NOW)
    assert settled.algo.due == NOW + timedelta(days=1)
    assert settled.algo.scheduled_days == 1
