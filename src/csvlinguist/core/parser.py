"""CSV reader: text → rows → TranslationItem list."""

from __future__ import annotations

import csv
import io
from collections.abc import Iterator
from pathlib import Path

from csvlinguist.core.models import ItemStatus, TranslationItem
from csvlinguist.errors import CsvParseError

KEY_COLUMN = "key"
SOURCE_COLUMN = "source"
TARGET_COLUMN = "target"


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def parse_rows(text: str) -> Iterator[list[str]]:
    """Yield CSV rows as lists of cells.

    Quoted cells may contain commas and literal newlines; ``""`` inside a
    quoted cell is a literal quote. Line endings are normalized first.
    """
    reader = csv.reader(io.StringIO(normalize_newlines(text), newline=""))
    try:
        yield from reader
    except csv.Error as e:
        raise CsvParseError(f"Malformed CSV near line {reader.line_num}: {e}") from e


def _column_index(header: list[str], name: str) -> int:
    for i, cell in enumerate(header):
        if cell.strip().lower() == name:
            return i
    return -1


def _cell(row: list[str], index: int) -> str:
    if index == -1 or index >= len(row):
        return ""
    return row[index].strip()


def load_items(text: str, *, keep_targets: bool = True) -> list[TranslationItem]:
    """Build the item list of one CSV file.

    The first row is the header; ``key``, ``source`` and ``target`` columns are
    located case-insensitively. Rows without source text are skipped.

    Args:
        text: Raw file contents.
        keep_targets: When True, rows that already carry a target are loaded
            as done. When False they stay pending so the backend validates
            the existing target.

    Raises:
        CsvParseError: If the text is not valid CSV.
    """
    rows = parse_rows(text)
    header = next(rows, None)
    if header is None:
        return []

    key_idx = _column_index(header, KEY_COLUMN)
    source_idx = _column_index(header, SOURCE_COLUMN)
    target_idx = _column_index(header, TARGET_COLUMN)

    items: list[TranslationItem] = []
    for row_num, cols in enumerate(rows, start=1):
        if not cols or (len(cols) == 1 and not cols[0].strip()):
            continue

        source = _cell(cols, source_idx)
        if not source:
            continue

        key = _cell(cols, key_idx) or f"row_{row_num}"
        target = _cell(cols, target_idx) or None

        status = ItemStatus.PENDING
        if target is not None and keep_targets:
            status = ItemStatus.DONE

        items.append(TranslationItem(
            id=row_num, key=key, source=source, target=target, status=status,
        ))

    return items


def load_file(path: str | Path, *, keep_targets: bool = True) -> list[TranslationItem]:
    """Read and parse a CSV file from disk.

    Raises:
        CsvParseError: If the file cannot be decoded or tokenized.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as e:
        raise CsvParseError(f"{path.name} is not valid UTF-8: {e}") from e
    return load_items(text, keep_targets=keep_targets)
