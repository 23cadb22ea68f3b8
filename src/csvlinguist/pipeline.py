"""Batch orchestrator: drives the file queue through TM lookup, glossary and backend.

Used by the CLI (cli.py). One batch is in flight at a time. The only
suspension points are the backend call, the inter-batch delay and the
rate-limit cooldown; the cancel event is polled at each of them. Every
mutation of the queue or the translation memory is persisted before the
next suspension point, so a crash loses at most the batch in flight.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from threading import Event

from csvlinguist.backends.base import HIGH_CONFIDENCE, TranslationResult, TranslatorBackend
from csvlinguist.core.models import FileEntry, FileStatus, ItemStatus, TranslationItem
from csvlinguist.core.parser import load_file
from csvlinguist.core.writer import write_items
from csvlinguist.errors import (
    AuthFailedError,
    CancelledError,
    ConfigurationError,
    CsvParseError,
    QuotaExceededError,
    RateLimitedError,
    TransportError,
)
from csvlinguist.translation.glossary import Glossary
from csvlinguist.translation.memory import TranslationMemory
from csvlinguist.translation.session import QueueStore

logger = logging.getLogger(__name__)

MAX_FILES = 50
ERROR_DELAY_SECONDS = 2.0
# Waits are split into slices so a stop request is noticed during a cooldown
_WAIT_SLICE_SECONDS = 1.0

# Type alias for progress callback: (phase, current, total, message)
ProgressCallback = Callable[[str, int, int, str], None]
SleepFunc = Callable[[float], Awaitable[None]]


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    COMPLETED = "completed"


@dataclass
class RunStats:
    """Snapshot of queue-wide progress plus counters accumulated during runs."""
    total_files: int = 0
    completed_files: int = 0
    total_strings: int = 0
    completed_strings: int = 0
    cached_strings: int = 0
    api_calls: int = 0
    errors: int = 0
    file_errors: list[tuple[str, str]] = field(default_factory=list)

    @property
    def percentage(self) -> int:
        if self.total_strings == 0:
            return 0
        return min(100, round(self.completed_strings * 100 / self.total_strings))


def _check_cancel(cancel_event: Event | None) -> None:
    """Raise CancelledError if the cancel event is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise CancelledError("Operation cancelled by user")


# ── Backend creation ──


def create_backend(
    backend_name: str,
    *,
    model: str | None = None,
    target_lang: str = "UK",
) -> tuple[TranslatorBackend, str]:
    """Create a translation backend instance.

    Returns:
        Tuple of (backend_instance, backend_label_for_report).

    Raises:
        ConfigurationError: If the backend name is unknown.
    """
    if backend_name == "dummy":
        from csvlinguist.backends.dummy import DummyBackend
        return DummyBackend(target_lang=target_lang), "dummy"
    elif backend_name == "deepl":
        from csvlinguist.backends.deepl import DeepLBackend
        return DeepLBackend(target_lang=target_lang), f"deepl:{target_lang}"
    elif backend_name == "gemini":
        from csvlinguist.backends.gemini import GeminiBackend
        backend = GeminiBackend(model=model)
        return backend, f"gemini:{backend.model}"
    raise ConfigurationError(f"Unknown backend: {backend_name!r}")


# ── Credential rotation ──


class _CredentialRotator:
    """Run-local rotation over the configured API keys.

    Counts rate-limit failures since the last success; once every key has
    been tried, the caller must cool down before trying again.
    """

    def __init__(self, keys: list[str]) -> None:
        self._keys = keys or [""]
        self.index = 0
        self._consecutive_limits = 0

    @property
    def current(self) -> str | None:
        return self._keys[self.index] or None

    @property
    def position(self) -> int:
        """1-based number of the active key, for messages."""
        return self.index + 1

    def on_success(self) -> None:
        self._consecutive_limits = 0

    def rotate(self) -> bool:
        """Record a rate limit. Returns True if another key is left to try."""
        self._consecutive_limits += 1
        if self._consecutive_limits < len(self._keys):
            self.index = (self.index + 1) % len(self._keys)
            return True
        return False

    def after_cooldown(self) -> None:
        self._consecutive_limits = 0


# ═══════════════════════════════════════════════════════════════════
# Orchestrator
# ═══════════════════════════════════════════════════════════════════


class BatchOrchestrator:
    """Owns the file queue and every mutation of its files and items."""

    def __init__(
        self,
        backend: TranslatorBackend,
        *,
        memory: TranslationMemory,
        glossary: Glossary,
        credentials: list[str] | None = None,
        batch_size: int = 5,
        target_lang: str = "UK",
        tm_min_confidence: int = 0,
        store: QueueStore | None = None,
        validate_existing: bool = False,
        max_transport_retries: int = 0,
        error_delay: float = ERROR_DELAY_SECONDS,
        on_progress: ProgressCallback | None = None,
        cancel_event: Event | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        if not 1 <= batch_size <= 1000:
            raise ConfigurationError(f"Batch size must be between 1 and 1000, got {batch_size}")
        self.backend = backend
        self.memory = memory
        self.glossary = glossary
        self.credentials = [c for c in (credentials or []) if c]
        self.batch_size = batch_size
        self.target_lang = target_lang
        self.tm_min_confidence = tm_min_confidence
        self.store = store
        self.validate_existing = validate_existing
        self.max_transport_retries = max_transport_retries
        self.error_delay = error_delay
        self.on_progress = on_progress
        self.cancel_event = cancel_event if cancel_event is not None else Event()
        self._sleep = sleep

        self.files: list[FileEntry] = store.load() if store is not None else []
        self.state = RunState.IDLE
        self.current_file: str | None = None
        self._cached_strings = 0
        self._api_calls = 0
        self._errors = 0
        self._file_errors: list[tuple[str, str]] = []

    # ── state snapshots ──

    @property
    def stats(self) -> RunStats:
        return RunStats(
            total_files=len(self.files),
            completed_files=sum(1 for f in self.files if f.status == FileStatus.DONE),
            total_strings=sum(f.total_items for f in self.files),
            completed_strings=sum(f.completed_items for f in self.files),
            cached_strings=self._cached_strings,
            api_calls=self._api_calls,
            errors=self._errors,
            file_errors=list(self._file_errors),
        )

    @property
    def is_running(self) -> bool:
        return self.state == RunState.RUNNING

    def get_file(self, name: str) -> FileEntry:
        for entry in self.files:
            if entry.name == name:
                return entry
        raise KeyError(f"No queued file named {name!r}")

    def _notify(self, phase: str, current: int, total: int, message: str = "") -> None:
        if self.on_progress:
            self.on_progress(phase, current, total, message)

    def _persist(self) -> None:
        if self.store is not None:
            self.store.save(self.files)

    # ── queue management ──

    def add_files(self, paths: list[Path]) -> list[FileEntry]:
        """Queue CSV files. Duplicate names are ignored.

        Raises:
            ValueError: If no path is a CSV file or the queue limit would be exceeded.
        """
        csv_paths = [Path(p) for p in paths if Path(p).suffix.lower() == ".csv"]
        if not csv_paths:
            raise ValueError("Only CSV files can be queued.")

        known = {f.name for f in self.files}
        new_paths = []
        for p in csv_paths:
            if p.name in known:
                logger.info("Skipping %s: already queued", p.name)
                continue
            known.add(p.name)
            new_paths.append(p)

        if len(self.files) + len(new_paths) > MAX_FILES:
            raise ValueError(f"The queue is limited to {MAX_FILES} files.")

        added = [FileEntry(name=p.name, path=p) for p in new_paths]
        self.files.extend(added)
        self._persist()
        return added

    def move_file(self, index: int, direction: int) -> bool:
        """Swap a file with its neighbour (direction -1 or +1). Returns False at the edges."""
        target = index + direction
        if not (0 <= index < len(self.files)) or not (0 <= target < len(self.files)):
            return False
        self.files[index], self.files[target] = self.files[target], self.files[index]
        self._persist()
        return True

    def remove_file(self, name: str) -> None:
        """Drop a file and its results from the queue.

        Raises:
            RuntimeError: If the file is being processed.
        """
        if self.is_running and name == self.current_file:
            raise RuntimeError(f"Cannot remove {name!r} while it is being processed")
        entry = self.get_file(name)
        self.files.remove(entry)
        self._persist()

    def retry_file(self, name: str) -> int:
        """Mark a file pending again, resetting only failed or untranslated items.

        Returns:
            Number of items reset.
        """
        if self.is_running:
            raise RuntimeError("Cannot retry while a run is in progress")
        entry = self.get_file(name)
        entry.status = FileStatus.PENDING
        reset = 0
        for item in entry.items or []:
            if item.status == ItemStatus.FAILED or not item.target:
                item.status = ItemStatus.PENDING
                reset += 1
        entry.refresh_counts()
        self._persist()
        return reset

    def edit_item(self, name: str, item_id: int, text: str) -> TranslationItem:
        """Apply a manual override; the item keeps it until re-validated."""
        item = self._require_item(self.get_file(name), item_id)
        item.target = text
        item.is_edited = True
        item.confidence = None
        self._persist()
        return item

    def export_file(self, name: str, path: Path) -> Path:
        """Write the file's current items as ``key,source,target`` CSV."""
        entry = self.get_file(name)
        items = self._materialize(entry)
        return write_items(items, path)

    def export_completed(self, output_dir: Path) -> list[Path]:
        """Write every done file into output_dir, keeping original names."""
        return [
            self.export_file(entry.name, output_dir / entry.name)
            for entry in self.files
            if entry.status == FileStatus.DONE
        ]

    def stop(self) -> None:
        """Ask the running loop to halt at the next suspension point."""
        self.cancel_event.set()

    # ── helpers ──

    @staticmethod
    def _require_item(entry: FileEntry, item_id: int) -> TranslationItem:
        item = entry.find_item(item_id)
        if item is None:
            raise KeyError(f"{entry.name} has no row with id {item_id}")
        return item

    def _require_credentials(self) -> None:
        if self.backend.requires_api_key() and not self.credentials:
            raise ConfigurationError(f"No API key configured for the {self.backend.name} backend.")

    def _materialize(self, entry: FileEntry) -> list[TranslationItem]:
        """Parse the file unless its items survive from a previous run."""
        if entry.items is not None:
            return entry.items
        items: list[TranslationItem] = []
        if entry.path is None:
            self._record_file_error(entry.name, "No source path for this file")
        else:
            try:
                items = load_file(entry.path, keep_targets=not self.validate_existing)
            except (CsvParseError, OSError) as e:
                self._record_file_error(entry.name, str(e))
        entry.items = items
        entry.refresh_counts()
        return items

    def _record_file_error(self, name: str, message: str) -> None:
        logger.warning("%s: %s (no rows loaded)", name, message)
        self._file_errors.append((name, message))

    async def _wait(self, seconds: float) -> None:
        """Sleep for ``seconds``, checking the cancel event between slices."""
        remaining = seconds
        while remaining > 0:
            _check_cancel(self.cancel_event)
            step = min(_WAIT_SLICE_SECONDS, remaining)
            await self._sleep(step)
            remaining -= step
        _check_cancel(self.cancel_event)

    async def _call_backend(
        self, items: list[TranslationItem], glossary: Glossary, api_key: str | None,
    ) -> dict[int, TranslationResult]:
        """Run the blocking backend call off the event loop and index results by id."""
        self._api_calls += 1
        results = await asyncio.to_thread(self.backend.translate_batch, items, glossary, api_key)
        by_id = {r.id: r for r in results}
        missing = [it.id for it in items if it.id not in by_id]
        if missing:
            raise TransportError(f"Backend returned no result for ids {missing[:10]}")
        return by_id

    @staticmethod
    def _settle_status(entry: FileEntry) -> None:
        entry.refresh_counts()
        items = entry.items or []
        if all(it.is_completed for it in items):
            entry.status = FileStatus.DONE
        else:
            entry.status = FileStatus.ERROR

    # ── main loop ──

    async def run(self) -> RunStats:
        """Process every queued file that is not done yet.

        Returns the stats snapshot at the end of the run. A stop request ends
        the run in place (state ``stopped``); unattempted work stays pending.

        Raises:
            ConfigurationError: Missing credential, or the backend rejected it.
            RuntimeError: If the file is being processed by a run.
        """
        if self.is_running:
            raise RuntimeError("A run is already in progress")
        self._require_credentials()

        self.cancel_event.clear()
        self.state = RunState.RUNNING
        rotator = _CredentialRotator(self.credentials)
        try:
            for entry in list(self.files):
                _check_cancel(self.cancel_event)
                if entry.status == FileStatus.DONE:
                    continue
                await self._process_file(entry, rotator)
        except CancelledError:
            self.state = RunState.STOPPED
            logger.info("Run stopped by user")
        except (KeyboardInterrupt, asyncio.CancelledError):
            self.state = RunState.STOPPED
            logger.info("Run interrupted")
            raise
        except ConfigurationError:
            self.state = RunState.STOPPED
            raise
        else:
            self.state = RunState.COMPLETED
        finally:
            self.current_file = None
            self.memory.flush()
            self._persist()

        stats = self.stats
        self._notify("done", stats.completed_files, stats.total_files, "")
        return stats

    def run_sync(self) -> RunStats:
        """Blocking wrapper around :meth:`run`."""
        return asyncio.run(self.run())

    async def _process_file(self, entry: FileEntry, rotator: _CredentialRotator) -> None:
        self.current_file = entry.name
        items = self._materialize(entry)
        entry.status = FileStatus.PROCESSING
        self._apply_memory(entry)
        self._persist()
        self._notify("file", entry.completed_items, entry.total_items, entry.name)

        pending = [it for it in items if not it.is_completed]
        glossary = self.glossary.copy()
        try:
            for start in range(0, len(pending), self.batch_size):
                _check_cancel(self.cancel_event)
                batch = pending[start : start + self.batch_size]
                await self._process_batch(entry, batch, glossary, rotator)
        except BaseException:
            # Any abort leaves the file resumable
            entry.status = FileStatus.PENDING
            entry.refresh_counts()
            raise

        self._settle_status(entry)
        self.memory.flush()
        self._persist()
        if entry.status == FileStatus.DONE:
            logger.info("%s: done (%d rows)", entry.name, entry.total_items)
        else:
            failed = sum(1 for it in items if it.status == ItemStatus.FAILED)
            logger.warning("%s: %d row(s) failed", entry.name, failed)
        self._notify("file-done", entry.completed_items, entry.total_items, entry.name)

    def _apply_memory(self, entry: FileEntry) -> None:
        """Mark every unfinished item whose source is already in the TM as cached."""
        todo = [it for it in entry.items or [] if not it.is_completed]
        if not todo:
            entry.refresh_counts()
            return
        found = self.memory.get_batch([it.source for it in todo], self.target_lang)
        hits = 0
        for item in todo:
            cached = found.get(item.normalized_source)
            if cached:
                item.target = cached
                item.status = ItemStatus.CACHED
                item.confidence = 100
                item.critique = None
                item.is_edited = False
                hits += 1
        self._cached_strings += hits
        entry.refresh_counts()
        if hits:
            logger.debug("%s: %d row(s) served from translation memory", entry.name, hits)

    async def _process_batch(
        self,
        entry: FileEntry,
        batch: list[TranslationItem],
        glossary: Glossary,
        rotator: _CredentialRotator,
    ) -> None:
        previous = {it.id: it.status for it in batch}
        for item in batch:
            item.status = ItemStatus.PROCESSING

        def restore() -> None:
            for it in batch:
                if it.status == ItemStatus.PROCESSING:
                    it.status = previous[it.id]

        transport_attempts = 0
        try:
            while True:
                try:
                    results = await self._call_backend(batch, glossary, rotator.current)
                except RateLimitedError as e:
                    if rotator.rotate():
                        logger.info("Rate limited; switching to key #%d", rotator.position)
                        self._notify("rotate", rotator.position, len(self.credentials), str(e))
                        continue
                    delay = (
                        self.backend.quota_cooldown_seconds
                        if isinstance(e, QuotaExceededError)
                        else self.backend.cooldown_seconds
                    )
                    logger.warning("All keys rate limited; cooling down for %.0fs", delay)
                    self._notify("cooldown", int(delay), int(delay), str(e))
                    await self._wait(delay)
                    rotator.after_cooldown()
                    continue
                except AuthFailedError as e:
                    raise ConfigurationError(str(e)) from e
                except ConfigurationError:
                    raise
                except Exception as e:  # TransportError and unexpected backend failures
                    if transport_attempts < self.max_transport_retries:
                        transport_attempts += 1
                        logger.warning("Batch failed (%s); retry %d", e, transport_attempts)
                        await self._wait(self.error_delay)
                        continue
                    self._fail_batch(entry, batch, e)
                    await self._wait(self.error_delay)
                    return

                rotator.on_success()
                self._merge(entry, batch, results)
                await self._wait(self.backend.batch_delay)
                return
        except BaseException:
            restore()
            raise

    def _merge(
        self,
        entry: FileEntry,
        batch: list[TranslationItem],
        results: dict[int, TranslationResult],
    ) -> None:
        memory_entries: list[tuple[str, str]] = []
        for item in batch:
            result = results[item.id]
            item.target = result.translation
            item.status = ItemStatus.DONE
            item.confidence = result.confidence
            item.critique = result.critique
            item.is_edited = False
            if result.translation and result.confidence >= self.tm_min_confidence:
                memory_entries.append((item.source, result.translation))

        self.memory.put_batch(memory_entries, self.target_lang, backend=self.backend.name)
        entry.refresh_counts()
        self._persist()
        self._notify("batch", entry.completed_items, entry.total_items, entry.name)

    def _fail_batch(self, entry: FileEntry, batch: list[TranslationItem], error: Exception) -> None:
        logger.error("%s: batch of %d row(s) failed: %s", entry.name, len(batch), error)
        for item in batch:
            item.status = ItemStatus.FAILED
        self._errors += 1
        entry.refresh_counts()
        self._persist()
        self._notify("error", entry.completed_items, entry.total_items, str(error))

    # ── manual edit re-validation ──

    async def revalidate_item(self, name: str, item_id: int) -> TranslationItem:
        """Send one item (usually a manual edit) through the backend on its own.

        Success clears ``is_edited`` and stores the result in the TM when the
        confidence is high. Failure marks the item failed and keeps its text.

        Raises:
            ConfigurationError: Missing credential, or the backend rejected it.
            RuntimeError: If the file is being processed by a run.
        """
        if self.is_running and name == self.current_file:
            raise RuntimeError(f"Cannot re-validate {name!r} while it is being processed")
        entry = self.get_file(name)
        item = self._require_item(entry, item_id)
        self._require_credentials()

        rotator = _CredentialRotator(self.credentials)
        previous = item.status
        item.status = ItemStatus.PROCESSING
        try:
            while True:
                try:
                    results = await self._call_backend([item], self.glossary.copy(), rotator.current)
                except RateLimitedError as e:
                    if rotator.rotate():
                        continue
                    logger.warning("Re-validation of %s#%d rate limited: %s", name, item_id, e)
                    item.status = ItemStatus.FAILED
                    break
                except AuthFailedError as e:
                    item.status = ItemStatus.FAILED
                    raise ConfigurationError(str(e)) from e
                except ConfigurationError:
                    item.status = ItemStatus.FAILED
                    raise
                except Exception as e:
                    logger.warning("Re-validation of %s#%d failed: %s", name, item_id, e)
                    self._errors += 1
                    item.status = ItemStatus.FAILED
                    break

                result = results[item.id]
                item.target = result.translation
                item.status = ItemStatus.DONE
                item.confidence = result.confidence
                item.critique = result.critique
                item.is_edited = False
                if result.translation and result.confidence > HIGH_CONFIDENCE:
                    self.memory.put(
                        item.source, self.target_lang, result.translation,
                        backend=self.backend.name,
                    )
                break
        except BaseException:
            if item.status == ItemStatus.PROCESSING:
                item.status = previous
            raise
        finally:
            if entry.status in (FileStatus.DONE, FileStatus.ERROR):
                self._settle_status(entry)
            else:
                entry.refresh_counts()
            self._persist()
        return item
