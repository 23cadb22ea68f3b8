"""JSON snapshot of the file queue, so an interrupted run can resume."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from csvlinguist.core.models import FileEntry

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class QueueStore:
    """Persists the queue (file list plus per-item results) to one JSON file.

    Writes go to a temporary file that is then renamed over the snapshot, so
    a crash mid-write leaves the previous snapshot intact.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def save(self, files: list[FileEntry]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "version": SNAPSHOT_VERSION,
            "files": [f.to_dict() for f in files],
        }
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self.path)

    def load(self) -> list[FileEntry]:
        """Load the saved queue. Returns an empty list if there is no snapshot."""
        if not self.path.exists():
            return []
        data = json.loads(self.path.read_text(encoding="utf-8"))
        version = data.get("version")
        if version != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported queue snapshot version: {version!r}")
        files = [FileEntry.from_dict(d) for d in data.get("files", [])]
        logger.debug("Loaded %d queued file(s) from %s", len(files), self.path)
        return files

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
