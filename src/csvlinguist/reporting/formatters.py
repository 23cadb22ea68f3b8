"""Output formatters for run reports."""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path

from csvlinguist.reporting.report import RunReport


def to_json(report: RunReport, indent: int = 2) -> str:
    """Format report as JSON string."""
    return json.dumps(report.to_dict(), indent=indent, default=str, ensure_ascii=False)


def to_markdown(report: RunReport) -> str:
    """Format report as Markdown."""
    lines = [
        "# Translation Report",
        "",
        "| Field | Value |",
        "|-------|-------|",
        f"| Backend | {report.backend} |",
        f"| Target language | {report.target_lang} |",
        f"| Batch size | {report.batch_size} |",
        f"| Run state | {report.state} |",
        "",
        "## Statistics",
        "",
        "| Metric | Count |",
        "|--------|-------|",
        f"| Files | {report.completed_files}/{report.total_files} |",
        f"| Strings | {report.completed_strings}/{report.total_strings} |",
        f"| From memory | {report.cached_strings} |",
        f"| API calls | {report.api_calls} |",
        f"| Failed batches | {report.failed_batches} |",
        f"| Glossary terms | {report.glossary_terms} |",
        f"| Duration | {report.duration_seconds:.1f}s |",
    ]

    if report.files:
        lines.extend([
            "",
            "## Files",
            "",
            "| File | Status | Done | Failed |",
            "|------|--------|------|--------|",
        ])
        for f in report.files:
            lines.append(
                f"| `{f.name}` | {f.status} | {f.completed_items}/{f.total_items} "
                f"| {f.failed_items} |"
            )

    if report.errors:
        lines.extend([
            "",
            "## Errors",
            "",
        ])
        for err in report.errors:
            lines.append(f"- {err}")

    return "\n".join(lines) + "\n"


def to_csv(report: RunReport) -> str:
    """Format report as one CSV row per file."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(["file", "status", "total_items", "completed_items", "failed_items"])
    for f in report.files:
        writer.writerow([f.name, f.status, f.total_items, f.completed_items, f.failed_items])
    return output.getvalue()


def save_report(report: RunReport, path: str | Path) -> None:
    """Save report to file, auto-detecting format from extension."""
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix in (".md", ".markdown"):
        content = to_markdown(report)
    elif suffix == ".csv":
        content = to_csv(report)
    else:
        content = to_json(report)

    path.write_text(content, encoding="utf-8")
