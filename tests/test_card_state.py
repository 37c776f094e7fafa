from datetime import timedelta

import pytest

from conftest import NOW, raw_new, raw_review
from flashdeck.card_state import (
    FirstLearning,
    Graduated,
    State,
    format_datetime,
    normalize_card,
    parse_datetime,
)

NOW_MS = int(NOW.timestamp() * 1000)


def test_normalize_fills_missing_fsrs_fields():
    card = normalize_card({"id": "c1"}, NOW)

    assert card.algo.difficulty == 2.5
    assert card.algo.stability == 0
    assert card.algo.reps == 0
    assert card.algo.lapses == 0
    assert card.algo.scheduled_days == 0
    assert card.algo.elapsed_days == 0
    assert card.algo.last_review == NOW
    assert card.algo.state == State.NEW
    assert card.algo.due == NOW
    assert card.is_new
    assert card.phase == FirstLearning(due=None, state=0, consecutive_good=0)
    assert card.card_data == {}


def test_normalize_reads_legacy_top_level_fields():
    raw = {
        "id": "c2",
        "front": "hola",
        "difficulty": 4.2,
        "stability": 3.0,
        "reps": 3,
        "state": 2,
        "lastReviewDate": "2023-12-29T12:00:00Z",
        "nextReviewDate": "2024-01-02T12:00:00Z",
    }
    card = normalize_card(raw, NOW)

    assert card.algo.difficulty == 4.2
    assert card.algo.reps == 3
    assert card.algo.state == State.REVIEW
    assert card.algo.last_review == NOW - timedelta(days=3)
    assert card.algo.due == NOW + timedelta(days=1)
    assert not card.is_new
    assert card.card_data == {"front": "hola"}


def test_card_without_review_date_is_new():
    raw = {"id": "c3", "cardAlgo": {"reps": 1, "state": 1, "due": NOW_MS}}
    assert normalize_card(raw, NOW).is_new


def test_first_learn_record_is_kept():
    raw = raw_new("c4", due=NOW_MS + 60_000, consecutive_good=1, state=1)
    card = normalize_card(raw, NOW)

    assert card.phase == FirstLearning(
        due=NOW + timedelta(minutes=1), state=1, consecutive_good=1
    )
    assert card.algo.due == NOW + timedelta(minutes=1)
    assert card.card_data["front"] == "front c4"


def test_graduated_record_uses_fsrs_due():
    card = normalize_card(raw_review("c5", due=NOW + timedelta(days=2)), NOW)

    assert isinstance(card.phase, Graduated)
    assert card.consecutive_good == 2
    assert card.algo.due == NOW + timedelta(days=2)


def test_normalize_requires_an_id():
    with pytest.raises(ValueError):
        normalize_card({"cardData": {"front": "x"}}, NOW)


def test_unknown_previous_answer_is_dropped():
    raw = dict(raw_new("c6"), prevAns="maybe")
    assert normalize_card(raw, NOW).prev_answer is None


@pytest.mark.parametrize(
    "value",
    [
        NOW,
        NOW.replace(tzinfo=None),
        NOW_MS,
        "2024-01-01T12:00:00Z",
        "2024-01-01T12:00:00+00:00",
        {"seconds": NOW_MS // 1000, "nanoseconds": 0},
        {"_seconds": NOW_MS // 1000, "_nanoseconds": 0},
    ],
)
def test_parse_datetime_accepts_stored_formats(value):
    assert parse_datetime(value) == NOW


@pytest.mark.parametrize("value", [None, "", "not a date", {"seconds": 1}, True])
def test_parse_datetime_rejects_garbage(value):
    assert parse_datetime(value) is None


def test_format_datetime_uses_zulu_suffix():
    assert format_datetime(NOW) == "2024-01-01T12:00:00Z"
    assert format_datetime(None) is None


def test_graduation_is_one_way(new_card):
    graduated = new_card().graduate(2)

    assert not graduated.is_new
    assert graduated.consecutive_good == 2
    with pytest.raises(ValueError):
        graduated.with_first_learning(due=NOW, state=0, consecutive_good=0)
    assert not graduated.graduate(0).is_new


def test_persistence_payload_depends_on_phase(new_card):
    card = new_card()
    assert set(card.persistence_payload()) == {"firstLearn"}
    assert card.persistence_payload()["firstLearn"]["isNew"] is True

    payload = card.graduate(2).replace(grade=3).persistence_payload()
    assert set(payload) == {"grade", "difficulty", "interval", "firstLearn", "cardAlgo"}
    assert payload["firstLearn"] == {
        "isNew": False,
        "due": None,
        "state": 0,
        "consecutiveGood": 2,
    }
    assert payload["grade"] == 3
    assert payload["interval"] == 1


def test_storage_dict_round_trips_through_normalize(review_card):
    card = review_card().replace(prev_answer="hard")
    restored = normalize_card(card.to_storage_dict(), NOW)

    assert restored.algo == card.algo
    assert restored.phase == card.phase
    assert restored.prev_answer == "hard"
    assert restored.card_data == card.card_data
