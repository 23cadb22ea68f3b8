"""Tests for report formatters."""

import json

from csvlinguist.core.models import FileEntry, FileStatus, ItemStatus, TranslationItem
from csvlinguist.pipeline import RunStats
from csvlinguist.reporting.formatters import save_report, to_csv, to_json, to_markdown
from csvlinguist.reporting.report import RunReport


def _report():
    report = RunReport(backend="dummy", target_lang="UK", batch_size=5, state="completed")
    report.add_stats(RunStats(
        total_files=2, completed_files=1, total_strings=3, completed_strings=2,
        cached_strings=1, api_calls=2, errors=1,
        file_errors=[("broken.csv", "not valid UTF-8")],
    ))
    entry = FileEntry(name="hunt.csv", status=FileStatus.ERROR, items=[
        TranslationItem(id=1, key="k1", source="Caller", target="Вабик", status=ItemStatus.DONE),
        TranslationItem(id=2, key="k2", source="Badger", status=ItemStatus.FAILED),
    ])
    entry.refresh_counts()
    report.add_files([entry])
    report.finish()
    return report


class TestRunReport:
    def test_stats_copied(self):
        report = _report()
        assert report.failed_batches == 1
        assert report.cached_strings == 1
        assert report.errors == ["broken.csv: not valid UTF-8"]

    def test_file_summary(self):
        summary = _report().files[0]
        assert (summary.completed_items, summary.failed_items) == (1, 1)
        assert summary.status == "error"

    def test_duration_before_finish(self):
        assert RunReport().duration_seconds == 0.0


class TestFormatters:
    def test_json(self):
        data = json.loads(to_json(_report()))
        assert data["backend"] == "dummy"
        assert data["files"][0]["name"] == "hunt.csv"
        assert data["errors"] == ["broken.csv: not valid UTF-8"]

    def test_markdown(self):
        md = to_markdown(_report())
        assert md.startswith("# Translation Report")
        assert "| `hunt.csv` | error | 1/2 | 1 |" in md
        assert "## Errors" in md

    def test_csv(self):
        lines = to_csv(_report()).splitlines()
        assert lines[0] == "file,status,total_items,completed_items,failed_items"
        assert lines[1] == "hunt.csv,error,2,1,1"

    def test_save_report_picks_format(self, tmp_path):
        report = _report()
        save_report(report, tmp_path / "r.md")
        save_report(report, tmp_path / "r.csv")
        save_report(report, tmp_path / "r.json")
        assert (tmp_path / "r.md").read_text(encoding="utf-8").startswith("#")
        assert (tmp_path / "r.csv").read_text(encoding="utf-8").startswith("file,")
        assert json.loads((tmp_path / "r.json").read_text(encoding="utf-8"))["state"] == "completed"
