"""Shared test fixtures for csvlinguist tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from csvlinguist.translation.glossary import Glossary
from csvlinguist.translation.memory import TranslationMemory

CSV_HEADER = "key,source,target\n"


@pytest.fixture
def tmp_memory(tmp_path: Path):
    """Create a temporary translation memory."""
    memory = TranslationMemory(db_path=tmp_path / "test_memory.db")
    yield memory
    memory.close()


@pytest.fixture
def hunting_glossary() -> Glossary:
    """A small glossary with the terms most tests rely on."""
    return Glossary(terms={
        "Caller": "Вабик",
        "Badger": "Борсук",
        "Red Deer": "Олень благородний",
        "Deer": "Олень",
    })


@pytest.fixture
def write_csv(tmp_path: Path):
    """Return a helper writing ``key,source,target`` rows to a CSV file."""

    def _write(name: str, rows: list[tuple[str, str, str]], *, header: str = CSV_HEADER) -> Path:
        lines = [header]
        for key, source, target in rows:
            lines.append(f"{key},{source},{target}\n")
        path = tmp_path / name
        path.write_text("".join(lines), encoding="utf-8")
        return path

    return _write
