import pandas as pd
import pytest

from flashdeck.file_store import JsonFileStore
from flashdeck.importer import import_deck, read_cards


def write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_csv_with_header_skips_incomplete_rows(tmp_path):
    path = write(tmp_path, "words.csv", "front,back\nhola,hello\n\ngato,\nperro,dog\n")

    cards = read_cards(path)
    assert cards == [
        {"cardData": {"front": "hola", "back": "hello"}},
        {"cardData": {"front": "perro", "back": "dog"}},
    ]


def test_tab_separated_without_header(tmp_path):
    path = write(tmp_path, "words.txt", "uno\tone\ndos\ttwo\n")

    cards = read_cards(path, separator="tab", header=False)
    assert [card["cardData"]["back"] for card in cards] == ["one", "two"]


def test_named_columns(tmp_path):
    path = write(tmp_path, "words.csv", "id;word;meaning\n1;sol;sun\n")

    cards = read_cards(path, separator="semicolon", front="word", back="meaning")
    assert cards == [{"cardData": {"front": "sol", "back": "sun"}}]


def test_unknown_column(tmp_path):
    path = write(tmp_path, "words.csv", "front,back\na,b\n")
    with pytest.raises(ValueError):
        read_cards(path, front="word")


def test_file_without_cards(tmp_path):
    path = write(tmp_path, "empty.csv", "front,back\n")
    with pytest.raises(ValueError):
        read_cards(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_cards(tmp_path / "missing.csv")


def test_import_deck_writes_to_store(tmp_path):
    path = write(tmp_path, "animals.csv", "front,back\ngato,cat\nperro,dog\n")
    store = JsonFileStore(tmp_path / "data")

    import_deck(store, path)

    assert store.list_decks() == ["animals"]
    assert store.fetch_deck_meta("animals")["cardCount"] == 2
    assert [card["id"] for card in store.fetch_new_candidate_cards("animals", 10)] == [
        "animals-1",
        "animals-2",
    ]


def test_spreadsheet_import(tmp_path):
    path = tmp_path / "verbs.xlsx"
    pd.DataFrame(
        {"front": ["ser", "estar", None], "back": ["to be", "to be (state)", "orphan"]}
    ).to_excel(path, index=False)

    cards = read_cards(path)
    assert cards == [
        {"cardData": {"front": "ser", "back": "to be"}},
        {"cardData": {"front": "estar", "back": "to be (state)"}},
    ]
