"""Data classes for queued files and the rows they contain."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    CACHED = "cached"
    FAILED = "failed"


class FileStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


# Item states that count as finished work
COMPLETED_STATUSES = frozenset({ItemStatus.DONE, ItemStatus.CACHED})


@dataclass
class TranslationItem:
    """One CSV row to translate.

    ``id`` is the row index inside its file and stays stable across retries.
    ``target`` is set once the row is translated, cached, imported or edited.
    """

    id: int
    key: str
    source: str
    target: str | None = None
    status: ItemStatus = ItemStatus.PENDING
    confidence: int | None = None
    critique: str | None = None
    is_edited: bool = False

    @property
    def is_completed(self) -> bool:
        return self.status in COMPLETED_STATUSES

    @property
    def normalized_source(self) -> str:
        """Key used for translation memory lookups."""
        return self.source.strip()

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> TranslationItem:
        return cls(
            id=int(data["id"]),
            key=data["key"],
            source=data["source"],
            target=data.get("target"),
            status=ItemStatus(data.get("status", "pending")),
            confidence=data.get("confidence"),
            critique=data.get("critique"),
            is_edited=bool(data.get("is_edited", False)),
        )


@dataclass
class FileEntry:
    """One queued CSV file and its aggregate progress."""

    name: str
    path: Path | None = None
    status: FileStatus = FileStatus.PENDING
    total_items: int = 0
    completed_items: int = 0
    items: list[TranslationItem] | None = field(default=None, repr=False)

    @property
    def progress(self) -> int:
        """Completion percentage, 0-100."""
        if self.total_items == 0:
            return 100 if self.status == FileStatus.DONE else 0
        return min(100, round(self.completed_items * 100 / self.total_items))

    @property
    def is_materialized(self) -> bool:
        return self.items is not None

    def refresh_counts(self) -> None:
        """Recompute total/completed counters from the owned items."""
        items = self.items or []
        self.total_items = len(items)
        self.completed_items = sum(1 for it in items if it.is_completed)

    def find_item(self, item_id: int) -> TranslationItem | None:
        for item in self.items or []:
            if item.id == item_id:
                return item
        return None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": str(self.path) if self.path is not None else None,
            "status": self.status.value,
            "total_items": self.total_items,
            "completed_items": self.completed_items,
            "items": (
                [it.to_dict() for it in self.items] if self.items is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict) -> FileEntry:
        raw_items = data.get("items")
        return cls(
            name=data["name"],
            path=Path(data["path"]) if data.get("path") else None,
            status=FileStatus(data.get("status", "pending")),
            total_items=int(data.get("total_items", 0)),
            completed_items=int(data.get("completed_items", 0)),
            items=(
                [TranslationItem.from_dict(d) for d in raw_items]
                if raw_items is not None else None
            ),
        )
