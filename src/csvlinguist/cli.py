"""CLI interface for csvlinguist using Typer."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from csvlinguist import __version__, config
from csvlinguist.config import Settings, load_settings, parse_keys, save_settings
from csvlinguist.core.models import FileStatus, ItemStatus
from csvlinguist.errors import ConfigurationError
from csvlinguist.pipeline import BatchOrchestrator, RunState, create_backend
from csvlinguist.reporting.formatters import save_report
from csvlinguist.reporting.report import RunReport
from csvlinguist.translation.glossary import Glossary
from csvlinguist.translation.memory import TranslationMemory
from csvlinguist.translation.session import QueueStore

app = typer.Typer(
    name="csvlinguist",
    help="Batch translator for CSV localization files.",
    add_completion=False,
)
console = Console()

_verbose = False
_quiet = False


def _print(msg: str, *, verbose_only: bool = False) -> None:
    """Print respecting --verbose/--quiet flags. Errors bypass --quiet."""
    if _quiet:
        return
    if verbose_only and not _verbose:
        return
    console.print(msg)


def _fail(msg: str) -> typer.Exit:
    console.print(f"[red]Error:[/red] {msg}")
    return typer.Exit(1)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _collect_csv_files(paths: list[Path]) -> list[Path]:
    """Expand directories to their CSV files, keeping explicit files as given."""
    files: list[Path] = []
    for p in paths:
        if p.is_dir():
            files.extend(sorted(
                f for f in p.iterdir() if f.is_file() and f.suffix.lower() == ".csv"
            ))
        else:
            files.append(p)
    return files


def _load_glossary(settings: Settings, extra: list[Path] | None) -> Glossary:
    """User glossary (or the bundled default) merged with any --glossary files."""
    if settings.glossary_file:
        gloss = Glossary.from_file(settings.glossary_file)
    elif config.USER_GLOSSARY_FILE.exists():
        gloss = Glossary.from_json(config.USER_GLOSSARY_FILE)
    else:
        gloss = Glossary.default()
    for path in extra or []:
        if not path.exists():
            raise _fail(f"Glossary not found: {path}")
        gloss.merge(Glossary.from_file(path))
    return gloss


def _build_settings(
    *,
    backend_name: str | None,
    model: str | None,
    api_key: str | None,
    lang: str | None,
    batch_size: int | None,
    tm_min_confidence: int | None,
    use_dummy: bool,
) -> Settings:
    settings = load_settings()
    if use_dummy:
        backend_name = "dummy"
    if backend_name:
        settings.backend = backend_name
    if model:
        settings.model = model
    if lang:
        settings.target_lang = lang
    if batch_size is not None:
        settings.batch_size = batch_size
    if tm_min_confidence is not None:
        settings.tm_min_confidence = tm_min_confidence
    if api_key:
        if settings.backend == "gemini":
            settings.gemini_api_keys = parse_keys(api_key)
        else:
            settings.deepl_api_key = api_key.strip()
    settings.apply_env()
    try:
        settings.validate()
    except ConfigurationError as e:
        raise _fail(str(e)) from None
    return settings


def _open_memory(memory_path: Path | None, no_cache: bool) -> TranslationMemory:
    if no_cache:
        return TranslationMemory(":memory:")
    return TranslationMemory(memory_path)


def _build_orchestrator(
    settings: Settings,
    *,
    memory: TranslationMemory,
    glossary: Glossary,
    store: QueueStore | None,
    validate_existing: bool = False,
    retries: int = 0,
) -> tuple[BatchOrchestrator, str]:
    try:
        backend, label = create_backend(
            settings.backend, model=settings.model, target_lang=settings.target_lang,
        )
    except (ImportError, ConfigurationError) as e:
        raise _fail(str(e)) from None

    orchestrator = BatchOrchestrator(
        backend,
        memory=memory,
        glossary=glossary,
        credentials=settings.credentials(),
        batch_size=settings.batch_size,
        target_lang=settings.target_lang,
        tm_min_confidence=settings.tm_min_confidence,
        store=store,
        validate_existing=validate_existing,
        max_transport_retries=retries,
    )
    return orchestrator, label


def _run_with_progress(orchestrator: BatchOrchestrator) -> None:
    """Run the queue, rendering progress events with Rich."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        disable=_quiet,
    ) as progress:
        task = progress.add_task("Starting", total=None)

        def on_progress(phase: str, current: int, total: int, message: str) -> None:
            if phase in ("file", "batch", "file-done"):
                name = message or orchestrator.current_file or ""
                progress.update(task, description=f"Translating {name}", completed=current, total=total)
            elif phase == "rotate":
                progress.console.print(f"[yellow]Rate limit: switching to key #{current}[/yellow]")
            elif phase == "cooldown":
                progress.console.print(
                    f"[yellow]All keys rate limited, waiting {current}s...[/yellow]"
                )
            elif phase == "error":
                progress.console.print(f"[red]Batch failed:[/red] {message}")

        orchestrator.on_progress = on_progress
        try:
            asyncio.run(orchestrator.run())
        except ConfigurationError as e:
            raise _fail(str(e)) from None
        except KeyboardInterrupt:
            console.print("[yellow]Stopped by user; progress saved.[/yellow]")


def _print_summary(orchestrator: BatchOrchestrator) -> None:
    stats = orchestrator.stats
    summary = Table(title="Run Summary")
    summary.add_column("Metric", style="bold")
    summary.add_column("Count", justify="right")
    summary.add_row("Files done", f"[green]{stats.completed_files}[/green]/{stats.total_files}")
    summary.add_row("Strings done", f"{stats.completed_strings}/{stats.total_strings}")
    summary.add_row("From memory", f"[cyan]{stats.cached_strings}[/cyan]")
    summary.add_row("API calls", str(stats.api_calls))
    summary.add_row("Failed batches", f"[red]{stats.errors}[/red]")
    summary.add_row("Progress", f"{stats.percentage}%")
    console.print(summary)

    problem_files = [f for f in orchestrator.files if f.status == FileStatus.ERROR]
    if problem_files or stats.file_errors:
        err_table = Table(title="Errors")
        err_table.add_column("File", style="red")
        err_table.add_column("Error")
        for entry in problem_files:
            failed = sum(1 for it in entry.items or [] if it.status == ItemStatus.FAILED)
            err_table.add_row(entry.name, f"{failed} row(s) failed")
        for fname, msg in stats.file_errors:
            err_table.add_row(fname, msg)
        console.print(err_table)


def _finish(
    orchestrator: BatchOrchestrator,
    *,
    label: str,
    output_dir: Path,
    report: Path | None,
) -> None:
    written = []
    for entry in orchestrator.files:
        if entry.items:
            written.append(orchestrator.export_file(entry.name, output_dir / entry.name))
    _print(f"Wrote [green]{len(written)}[/green] file(s) to {output_dir}")
    _print_summary(orchestrator)

    if report is not None:
        rep = RunReport(
            backend=label,
            target_lang=orchestrator.target_lang,
            batch_size=orchestrator.batch_size,
            state=orchestrator.state.value,
            glossary_terms=len(orchestrator.glossary),
        )
        rep.add_stats(orchestrator.stats)
        rep.add_files(orchestrator.files)
        rep.finish()
        save_report(rep, report)
        _print(f"Report saved to {report}")


def version_callback(value: bool) -> None:
    if value:
        console.print(f"csvlinguist {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show extra info (backend, debug logging).",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Only show errors.",
    ),
) -> None:
    """csvlinguist: translate CSV localization files with a glossary and translation memory."""
    global _verbose, _quiet
    _verbose = verbose
    _quiet = quiet
    _setup_logging(verbose)


@app.command()
def run(
    paths: list[Path] = typer.Argument(
        ..., help="CSV files or directories containing CSV files.",
    ),
    backend_name: str | None = typer.Option(
        None, "--backend", "-b", help="Backend: gemini, deepl, dummy.",
    ),
    model: str | None = typer.Option(
        None, "--model", "-m", help="Gemini model name.",
    ),
    api_key: str | None = typer.Option(
        None, "--api-key", "-k",
        help="API key; comma-separated list for Gemini key rotation.",
    ),
    lang: str | None = typer.Option(
        None, "--lang", "-l", help="Target language code (e.g. UK, DE).",
    ),
    batch_size: int | None = typer.Option(
        None, "--batch-size", "-n", min=1, max=1000, help="Rows per backend call.",
    ),
    glossary: list[Path] | None = typer.Option(
        None, "--glossary", "-g", help="Extra glossary file (TOML or JSON).",
    ),
    output_dir: Path = typer.Option(
        Path("translated"), "--output-dir", "-O",
        help="Output directory (keeps original filenames).",
    ),
    session: Path | None = typer.Option(
        None, "--session", "-s",
        help="Queue snapshot file; reuse it to resume an interrupted run.",
    ),
    memory_path: Path | None = typer.Option(
        None, "--memory", help="Translation memory database path.",
    ),
    no_cache: bool = typer.Option(
        False, "--no-cache", help="Use a throwaway translation memory.",
    ),
    validate_existing: bool = typer.Option(
        False, "--validate-existing",
        help="Send rows that already have a target to the backend for validation.",
    ),
    tm_min_confidence: int | None = typer.Option(
        None, "--tm-min-confidence", min=0, max=100,
        help="Only store results at or above this confidence in memory.",
    ),
    retries: int = typer.Option(
        0, "--retries", min=0, help="Immediate retries for a failed batch.",
    ),
    report: Path | None = typer.Option(
        None, "--report", "-r", help="Save report to file (json/md/csv).",
    ),
    use_dummy: bool = typer.Option(
        False, "--dummy", help="Use dummy backend (shortcut for --backend dummy).",
    ),
) -> None:
    """Queue CSV files and translate them."""
    files = _collect_csv_files(paths)
    missing = [p for p in files if not p.exists()]
    if missing:
        raise _fail(f"File not found: {missing[0]}")

    settings = _build_settings(
        backend_name=backend_name, model=model, api_key=api_key, lang=lang,
        batch_size=batch_size, tm_min_confidence=tm_min_confidence, use_dummy=use_dummy,
    )
    gloss = _load_glossary(settings, glossary)
    store = QueueStore(session) if session is not None else None

    memory = _open_memory(memory_path, no_cache)
    try:
        orchestrator, label = _build_orchestrator(
            settings, memory=memory, glossary=gloss, store=store,
            validate_existing=validate_existing, retries=retries,
        )
        if files:
            try:
                added = orchestrator.add_files(files)
            except ValueError as e:
                raise _fail(str(e)) from None
            _print(f"Queued [green]{len(added)}[/green] file(s)")
        if not orchestrator.files:
            console.print("[yellow]Nothing to translate.[/yellow]")
            raise typer.Exit()

        _print(f"Backend: [cyan]{label}[/cyan]", verbose_only=True)
        _print(f"Glossary: [cyan]{len(gloss)}[/cyan] terms", verbose_only=True)

        _run_with_progress(orchestrator)
        _finish(orchestrator, label=label, output_dir=output_dir, report=report)
        if orchestrator.state == RunState.STOPPED:
            raise typer.Exit(130)
    finally:
        memory.close()


@app.command()
def retry(
    session: Path = typer.Argument(..., help="Queue snapshot written by 'run --session'."),
    names: list[str] | None = typer.Option(
        None, "--file", "-f", help="File to retry (default: every file with errors).",
    ),
    backend_name: str | None = typer.Option(None, "--backend", "-b"),
    api_key: str | None = typer.Option(None, "--api-key", "-k"),
    output_dir: Path = typer.Option(Path("translated"), "--output-dir", "-O"),
    memory_path: Path | None = typer.Option(None, "--memory"),
    use_dummy: bool = typer.Option(False, "--dummy"),
) -> None:
    """Re-run only the failed or untranslated rows of queued files."""
    store = QueueStore(session)
    if not store.exists():
        raise _fail(f"Session not found: {session}")

    settings = _build_settings(
        backend_name=backend_name, model=None, api_key=api_key, lang=None,
        batch_size=None, tm_min_confidence=None, use_dummy=use_dummy,
    )
    memory = _open_memory(memory_path, False)
    try:
        orchestrator, label = _build_orchestrator(
            settings, memory=memory, glossary=_load_glossary(settings, None), store=store,
        )
        targets = names or [f.name for f in orchestrator.files if f.status == FileStatus.ERROR]
        if not targets:
            console.print("[green]No files need a retry.[/green]")
            raise typer.Exit()
        for name in targets:
            try:
                reset = orchestrator.retry_file(name)
            except KeyError as e:
                raise _fail(str(e)) from None
            _print(f"{name}: reset [yellow]{reset}[/yellow] row(s)")

        _run_with_progress(orchestrator)
        _finish(orchestrator, label=label, output_dir=output_dir, report=None)
        if orchestrator.state == RunState.STOPPED:
            raise typer.Exit(130)
    finally:
        memory.close()


@app.command()
def validate(
    session: Path = typer.Argument(..., help="Queue snapshot written by 'run --session'."),
    name: str = typer.Argument(..., help="Queued file name."),
    row: int = typer.Argument(..., help="Row id (1-based data row)."),
    text: str | None = typer.Option(
        None, "--text", "-t", help="Manual translation to apply before validating.",
    ),
    backend_name: str | None = typer.Option(None, "--backend", "-b"),
    api_key: str | None = typer.Option(None, "--api-key", "-k"),
    memory_path: Path | None = typer.Option(None, "--memory"),
    use_dummy: bool = typer.Option(False, "--dummy"),
) -> None:
    """Re-validate one row, optionally after editing it by hand."""
    store = QueueStore(session)
    if not store.exists():
        raise _fail(f"Session not found: {session}")

    settings = _build_settings(
        backend_name=backend_name, model=None, api_key=api_key, lang=None,
        batch_size=None, tm_min_confidence=None, use_dummy=use_dummy,
    )
    memory = _open_memory(memory_path, False)
    try:
        orchestrator, _label = _build_orchestrator(
            settings, memory=memory, glossary=_load_glossary(settings, None), store=store,
        )
        try:
            if text is not None:
                orchestrator.edit_item(name, row, text)
            with console.status("Validating..."):
                item = asyncio.run(orchestrator.revalidate_item(name, row))
        except KeyError as e:
            raise _fail(str(e)) from None
        except ConfigurationError as e:
            raise _fail(str(e)) from None

        if item.status == ItemStatus.FAILED:
            console.print(f"[red]Validation failed[/red] for {item.key}; text kept: {item.target}")
            raise typer.Exit(1)
        console.print(f"[bold]{item.key}[/bold]: {item.target} "
                      f"([cyan]{item.confidence}%[/cyan])")
        if item.critique:
            console.print(f"[dim]{item.critique}[/dim]")
    finally:
        memory.close()


@app.command(name="glossary-list")
def glossary_list() -> None:
    """Show the active glossary."""
    gloss = _load_glossary(load_settings(), None)
    table = Table(title=f"Glossary ({len(gloss)} terms)")
    table.add_column("Source", style="cyan")
    table.add_column("Target")
    for src, tgt in sorted(gloss.terms.items(), key=lambda t: t[0].lower()):
        table.add_row(src, tgt)
    console.print(table)


@app.command(name="glossary-add")
def glossary_add(
    source: str = typer.Argument(..., help="Source term."),
    target: str = typer.Argument(..., help="Mandated translation."),
) -> None:
    """Add or replace a glossary term in the user glossary."""
    gloss = _load_glossary(load_settings(), None)
    try:
        gloss.add(source, target)
    except ValueError as e:
        raise _fail(str(e)) from None
    gloss.save_json(config.USER_GLOSSARY_FILE)
    console.print(f"Glossary updated: [cyan]{source}[/cyan] → {target}")


@app.command(name="glossary-remove")
def glossary_remove(
    source: str = typer.Argument(..., help="Source term to remove."),
) -> None:
    """Remove a term from the user glossary."""
    gloss = _load_glossary(load_settings(), None)
    if not gloss.remove(source):
        raise _fail(f"Term not in glossary: {source}")
    gloss.save_json(config.USER_GLOSSARY_FILE)
    console.print(f"Removed [yellow]{source}[/yellow]")


@app.command(name="cache-info")
def cache_info(
    memory_path: Path | None = typer.Option(None, "--memory"),
) -> None:
    """Show translation memory statistics."""
    memory = TranslationMemory(memory_path)
    console.print(f"Cached translations: [green]{memory.count()}[/green]")
    console.print(f"Memory location: [dim]{memory.path}[/dim]")
    memory.close()


@app.command(name="cache-clear")
def cache_clear(
    memory_path: Path | None = typer.Option(None, "--memory"),
) -> None:
    """Clear the translation memory."""
    memory = TranslationMemory(memory_path)
    deleted = memory.clear()
    console.print(f"Cleared [yellow]{deleted}[/yellow] cached translations.")
    memory.close()


@app.command(name="config")
def config_cmd(
    backend_name: str | None = typer.Option(None, "--backend", "-b"),
    model: str | None = typer.Option(None, "--model", "-m"),
    batch_size: int | None = typer.Option(None, "--batch-size", "-n", min=1, max=1000),
    lang: str | None = typer.Option(None, "--lang", "-l"),
    gemini_keys: str | None = typer.Option(
        None, "--gemini-keys", help="Comma-separated Gemini API keys.",
    ),
    deepl_key: str | None = typer.Option(None, "--deepl-key"),
    glossary_file: str | None = typer.Option(None, "--glossary-file"),
) -> None:
    """Show settings, or update them when options are given."""
    settings = load_settings()
    changed = False
    updates = {
        "backend": backend_name, "model": model, "batch_size": batch_size,
        "target_lang": lang, "deepl_api_key": deepl_key, "glossary_file": glossary_file,
    }
    for attr, value in updates.items():
        if value is not None:
            setattr(settings, attr, value)
            changed = True
    if gemini_keys is not None:
        settings.gemini_api_keys = parse_keys(gemini_keys)
        changed = True

    if changed:
        path = save_settings(settings)
        _print(f"Settings saved to [dim]{path}[/dim]")

    table = Table(title="Settings")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in settings.to_dict().items():
        if key == "gemini_api_keys":
            value = f"{len(value)} key(s)"
        elif key == "deepl_api_key":
            value = "set" if value else "not set"
        table.add_row(key, str(value))
    console.print(table)


if __name__ == "__main__":
    app()
