"""Run report data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from csvlinguist.core.models import FileEntry, ItemStatus
from csvlinguist.pipeline import RunStats


@dataclass
class FileSummary:
    name: str
    status: str
    total_items: int
    completed_items: int
    failed_items: int


@dataclass
class RunReport:
    """Collects statistics about a translation run."""

    backend: str = ""
    target_lang: str = ""
    batch_size: int = 0
    state: str = ""

    total_files: int = 0
    completed_files: int = 0
    total_strings: int = 0
    completed_strings: int = 0
    cached_strings: int = 0
    api_calls: int = 0
    failed_batches: int = 0

    glossary_terms: int = 0
    files: list[FileSummary] = field(default_factory=list)

    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def finish(self) -> None:
        self.finished_at = datetime.now()

    def add_stats(self, stats: RunStats) -> None:
        self.total_files = stats.total_files
        self.completed_files = stats.completed_files
        self.total_strings = stats.total_strings
        self.completed_strings = stats.completed_strings
        self.cached_strings = stats.cached_strings
        self.api_calls = stats.api_calls
        self.failed_batches = stats.errors
        self.errors.extend(f"{name}: {msg}" for name, msg in stats.file_errors)

    def add_files(self, entries: list[FileEntry]) -> None:
        for entry in entries:
            failed = sum(1 for it in entry.items or [] if it.status == ItemStatus.FAILED)
            self.files.append(FileSummary(
                name=entry.name,
                status=entry.status.value,
                total_items=entry.total_items,
                completed_items=entry.completed_items,
                failed_items=failed,
            ))

    def to_dict(self) -> dict:
        return {
            "backend": self.backend,
            "target_lang": self.target_lang,
            "batch_size": self.batch_size,
            "state": self.state,
            "total_files": self.total_files,
            "completed_files": self.completed_files,
            "total_strings": self.total_strings,
            "completed_strings": self.completed_strings,
            "cached_strings": self.cached_strings,
            "api_calls": self.api_calls,
            "failed_batches": self.failed_batches,
            "glossary_terms": self.glossary_terms,
            "files": [vars(f) for f in self.files],
            "duration_seconds": self.duration_seconds,
            "errors": self.errors,
        }
