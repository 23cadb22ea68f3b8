"""Integration tests for the CLI using Typer's CliRunner."""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from csvlinguist import __version__
from csvlinguist.backends.dummy import DummyBackend
from csvlinguist.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keep settings and the user glossary out of the real home directory."""
    home = tmp_path / "home"
    monkeypatch.setattr("csvlinguist.config.SETTINGS_FILE", home / "settings.json")
    monkeypatch.setattr("csvlinguist.config.USER_GLOSSARY_FILE", home / "glossary.json")
    monkeypatch.delenv("GEMINI_API_KEYS", raising=False)
    monkeypatch.delenv("DEEPL_API_KEY", raising=False)
    return home


@pytest.fixture
def hunt_csv(write_csv):
    return write_csv("hunt.csv", [("k1", "Caller", ""), ("k2", "Badger", "")])


class TestCLIVersion:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestCLIRun:
    def test_run_with_dummy_backend(self, hunt_csv, tmp_path):
        out_dir = tmp_path / "out"
        result = runner.invoke(app, [
            "run", str(hunt_csv), "--dummy", "--no-cache", "--output-dir", str(out_dir),
        ])
        assert result.exit_code == 0, result.output
        text = (out_dir / "hunt.csv").read_text(encoding="utf-8-sig")
        assert '"k1","Caller","[UK] Вабик"' in text
        assert '"k2","Badger","[UK] Борсук"' in text

    def test_run_directory(self, hunt_csv, tmp_path):
        out_dir = tmp_path / "out"
        result = runner.invoke(app, [
            "run", str(hunt_csv.parent), "--dummy", "--no-cache", "--output-dir", str(out_dir),
        ])
        assert result.exit_code == 0, result.output
        assert (out_dir / "hunt.csv").exists()

    def test_run_with_report(self, hunt_csv, tmp_path):
        report = tmp_path / "report.json"
        result = runner.invoke(app, [
            "run", str(hunt_csv), "--dummy", "--no-cache",
            "--output-dir", str(tmp_path / "out"), "--report", str(report),
        ])
        assert result.exit_code == 0, result.output
        data = json.loads(report.read_text(encoding="utf-8"))
        assert data["completed_strings"] == 2
        assert data["state"] == "completed"

    def test_run_fills_memory(self, hunt_csv, tmp_path):
        memory = tmp_path / "memory.db"
        args = ["run", str(hunt_csv), "--dummy", "--memory", str(memory),
                "--output-dir", str(tmp_path / "out")]
        runner.invoke(app, args)
        result = runner.invoke(app, ["cache-info", "--memory", str(memory)])
        assert "Cached translations: 2" in result.output

    def test_run_directory_uppercase_suffix(self, tmp_path):
        src = tmp_path / "data"
        src.mkdir()
        (src / "HUNT.CSV").write_text("key,source,target\nk1,Caller,\n", encoding="utf-8")
        out_dir = tmp_path / "out"
        result = runner.invoke(app, [
            "run", str(src), "--dummy", "--no-cache", "--output-dir", str(out_dir),
        ])
        assert result.exit_code == 0, result.output
        assert (out_dir / "HUNT.CSV").exists()

    def test_run_nonexistent_file(self, tmp_path):
        result = runner.invoke(app, ["run", str(tmp_path / "missing.csv"), "--dummy"])
        assert result.exit_code == 1

    def test_run_rejects_non_csv(self, tmp_path):
        notes = tmp_path / "notes.txt"
        notes.write_text("hello", encoding="utf-8")
        result = runner.invoke(app, ["run", str(notes), "--dummy", "--no-cache"])
        assert result.exit_code == 1
        assert "CSV" in result.output

    def test_run_gemini_without_key(self, hunt_csv):
        result = runner.invoke(app, ["run", str(hunt_csv), "--no-cache"])
        assert result.exit_code == 1
        assert "Gemini API key" in result.output

    def test_run_invalid_batch_size(self, hunt_csv):
        result = runner.invoke(app, ["run", str(hunt_csv), "--dummy", "--batch-size", "0"])
        assert result.exit_code != 0


class TestCLISession:
    def _run_session(self, hunt_csv, tmp_path):
        session = tmp_path / "queue.json"
        result = runner.invoke(app, [
            "run", str(hunt_csv), "--dummy", "--memory", str(tmp_path / "m.db"),
            "--session", str(session), "--output-dir", str(tmp_path / "out"),
        ])
        assert result.exit_code == 0, result.output
        return session

    def test_session_written(self, hunt_csv, tmp_path):
        session = self._run_session(hunt_csv, tmp_path)
        data = json.loads(session.read_text(encoding="utf-8"))
        assert data["files"][0]["status"] == "done"

    def test_retry_nothing_to_do(self, hunt_csv, tmp_path):
        session = self._run_session(hunt_csv, tmp_path)
        result = runner.invoke(app, ["retry", str(session), "--dummy",
                                     "--memory", str(tmp_path / "m.db")])
        assert result.exit_code == 0
        assert "No files need a retry" in result.output

    def test_interrupt_exits_130_and_keeps_session(self, hunt_csv, tmp_path):
        session = tmp_path / "queue.json"
        with patch.object(DummyBackend, "translate_batch", side_effect=KeyboardInterrupt):
            result = runner.invoke(app, [
                "run", str(hunt_csv), "--dummy", "--memory", str(tmp_path / "m.db"),
                "--session", str(session), "--output-dir", str(tmp_path / "out"),
            ])
        assert result.exit_code == 130, result.output
        assert "Stopped" in result.output
        data = json.loads(session.read_text(encoding="utf-8"))
        assert data["files"][0]["status"] == "pending"
        assert "processing" not in session.read_text(encoding="utf-8")

        result = runner.invoke(app, [
            "run", str(hunt_csv), "--dummy", "--memory", str(tmp_path / "m.db"),
            "--session", str(session), "--output-dir", str(tmp_path / "out"),
        ])
        assert result.exit_code == 0, result.output
        data = json.loads(session.read_text(encoding="utf-8"))
        assert data["files"][0]["status"] == "done"

    def test_retry_missing_session(self, tmp_path):
        result = runner.invoke(app, ["retry", str(tmp_path / "none.json"), "--dummy"])
        assert result.exit_code == 1

    def test_validate_manual_edit(self, hunt_csv, tmp_path):
        session = self._run_session(hunt_csv, tmp_path)
        result = runner.invoke(app, [
            "validate", str(session), "hunt.csv", "1", "--text", "Манок",
            "--dummy", "--memory", str(tmp_path / "m.db"),
        ])
        assert result.exit_code == 0, result.output
        assert "Манок" in result.output
        data = json.loads(session.read_text(encoding="utf-8"))
        assert data["files"][0]["items"][0]["target"] == "Манок"

    def test_validate_unknown_row(self, hunt_csv, tmp_path):
        session = self._run_session(hunt_csv, tmp_path)
        result = runner.invoke(app, [
            "validate", str(session), "hunt.csv", "42", "--dummy",
            "--memory", str(tmp_path / "m.db"),
        ])
        assert result.exit_code == 1


class TestCLIGlossary:
    def test_list_bundled(self):
        result = runner.invoke(app, ["glossary-list"])
        assert result.exit_code == 0
        assert "Вабик" in result.output

    def test_add_and_remove(self, isolated_settings):
        result = runner.invoke(app, ["glossary-add", "Fox", "Лисиця"])
        assert result.exit_code == 0
        saved = json.loads((isolated_settings / "glossary.json").read_text(encoding="utf-8"))
        assert saved["Fox"] == "Лисиця"
        assert saved["Caller"] == "Вабик"

        result = runner.invoke(app, ["glossary-remove", "Fox"])
        assert result.exit_code == 0
        saved = json.loads((isolated_settings / "glossary.json").read_text(encoding="utf-8"))
        assert "Fox" not in saved

    def test_remove_unknown_term(self):
        result = runner.invoke(app, ["glossary-remove", "Unicorn"])
        assert result.exit_code == 1


class TestCLICache:
    def test_cache_info_and_clear(self, tmp_path):
        memory = tmp_path / "m.db"
        result = runner.invoke(app, ["cache-info", "--memory", str(memory)])
        assert result.exit_code == 0
        assert "Cached translations: 0" in result.output

        result = runner.invoke(app, ["cache-clear", "--memory", str(memory)])
        assert result.exit_code == 0
        assert "Cleared" in result.output


class TestCLIConfig:
    def test_show_defaults(self):
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "gemini" in result.output

    def test_set_values(self, isolated_settings):
        result = runner.invoke(app, ["config", "--backend", "deepl", "--deepl-key", "secret"])
        assert result.exit_code == 0
        saved = json.loads((isolated_settings / "settings.json").read_text(encoding="utf-8"))
        assert saved["backend"] == "deepl"
        assert saved["deepl_api_key"] == "secret"
        assert "secret" not in result.output
