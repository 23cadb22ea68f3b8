"""CSV writer: TranslationItem list → ``key,source,target`` file."""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from pathlib import Path

from csvlinguist.core.models import TranslationItem

OUTPUT_HEADER = "key,source,target"


def dump_items(items: Iterable[TranslationItem]) -> str:
    """Serialize items to CSV text. Every value is quoted, quotes are doubled."""
    output = io.StringIO()
    output.write(OUTPUT_HEADER + "\n")
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for item in items:
        writer.writerow([item.key, item.source, item.target or ""])
    return output.getvalue()


def write_items(items: Iterable[TranslationItem], path: str | Path) -> Path:
    """Write items to ``path`` as UTF-8 with BOM. Returns the path written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_items(items), encoding="utf-8-sig", newline="")
    return path
