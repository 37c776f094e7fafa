"""Import decks from delimited text files and spreadsheets."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from flashdeck.file_store import JsonFileStore

logger = logging.getLogger(__name__)

SEPARATORS = {
    ",": ",",
    "comma": ",",
    "tab": "\t",
    "space": " ",
    ";": ";",
    "semicolon": ";",
}
EXCEL_SUFFIXES = {".xlsx", ".xls"}

Column = Union[int, str]


def _resolve_separator(separator: str) -> str:
    return SEPARATORS.get(separator, separator)


def _read_frame(path: Path, separator: str, header: bool) -> pd.DataFrame:
    if path.suffix.lower() in EXCEL_SUFFIXES:
        return pd.read_excel(path, header=0 if header else None, dtype=str)
    return pd.read_csv(
        path,
        sep=_resolve_separator(separator),
        header=0 if header else None,
        dtype=str,
        skip_blank_lines=True,
        engine="python",
    )


def _column(frame: pd.DataFrame, column: Column) -> str:
    if isinstance(column, int):
        if column >= len(frame.columns):
            raise ValueError(f"Column {column} is out of range ({len(frame.columns)} columns)")
        return frame.columns[column]
    if column not in frame.columns:
        raise ValueError(f"Column '{column}' not found; available: {list(frame.columns)}")
    return column


def _cell(value: Any) -> str:
    if value is None or pd.isna(value):
        return ""
    return str(value).strip()


def read_cards(
    path: Union[str, Path],
    *,
    separator: str = ",",
    front: Column = 0,
    back: Column = 1,
    header: bool = True,
) -> List[Dict[str, Any]]:
    """Read front/back card records from *path*.

    Rows with an empty front or back are skipped. A file without a single
    usable row raises :class:`ValueError`.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Import file not found: {path}")
    frame = _read_frame(path, separator, header)
    front_col = _column(frame, front)
    back_col = _column(frame, back)

    cards: List[Dict[str, Any]] = []
    for _, row in frame.iterrows():
        front_text = _cell(row.get(front_col))
        back_text = _cell(row.get(back_col))
        if not front_text or not back_text:
            continue
        cards.append({"cardData": {"front": front_text, "back": back_text}})
    if not cards:
        raise ValueError(f"No cards found in {path}; check the separator and columns")
    return cards


def import_deck(
    store: JsonFileStore,
    path: Union[str, Path],
    *,
    deck_id: Optional[str] = None,
    title: Optional[str] = None,
    separator: str = ",",
    front: Column = 0,
    back: Column = 1,
    header: bool = True,
) -> Path:
    """Read *path* and write it to *store* as a deck; returns the deck file."""

    path = Path(path)
    cards = read_cards(path, separator=separator, front=front, back=back, header=header)
    deck_id = deck_id or path.stem
    logger.info("Importing %d cards from %s into deck %s", len(cards), path, deck_id)
    return store.write_deck(deck_id, cards, title=title or path.stem)


__all__ = ["SEPARATORS", "import_deck", "read_cards"]
