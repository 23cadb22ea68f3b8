"""User settings: backend choice, model, batch size and credentials."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path

from csvlinguist.errors import ConfigurationError

logger = logging.getLogger(__name__)

SETTINGS_DIR = Path.home() / ".csvlinguist"
SETTINGS_FILE = SETTINGS_DIR / "settings.json"
USER_GLOSSARY_FILE = SETTINGS_DIR / "glossary.json"

BACKENDS = ("gemini", "deepl", "dummy")
MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 1000


def parse_keys(raw: str | list[str] | None) -> list[str]:
    """Split a comma-separated key list, dropping blanks."""
    if raw is None:
        return []
    parts = raw if isinstance(raw, list) else raw.split(",")
    return [k.strip() for k in parts if k and k.strip()]


@dataclass
class Settings:
    backend: str = "gemini"
    model: str | None = None
    batch_size: int = 5
    target_lang: str = "UK"
    gemini_api_keys: list[str] = field(default_factory=list)
    deepl_api_key: str = ""
    tm_min_confidence: int = 0
    glossary_file: str | None = None

    def credentials(self) -> list[str]:
        """Credentials for the selected backend, in rotation order."""
        if self.backend == "gemini":
            return list(self.gemini_api_keys)
        if self.backend == "deepl":
            return [self.deepl_api_key] if self.deepl_api_key else []
        return []

    def validate(self) -> None:
        """Raise ConfigurationError if the settings cannot drive a run."""
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown backend {self.backend!r}; choose one of: {', '.join(BACKENDS)}"
            )
        if not MIN_BATCH_SIZE <= self.batch_size <= MAX_BATCH_SIZE:
            raise ConfigurationError(
                f"Batch size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}, "
                f"got {self.batch_size}"
            )
        if self.backend == "gemini" and not self.gemini_api_keys:
            raise ConfigurationError(
                "Enter at least one Gemini API key (--api-key or GEMINI_API_KEYS)."
            )
        if self.backend == "deepl" and not self.deepl_api_key:
            raise ConfigurationError("Enter a DeepL API key (--api-key or DEEPL_API_KEY).")

    def apply_env(self) -> Settings:
        """Fill empty credentials from GEMINI_API_KEYS / DEEPL_API_KEY."""
        if not self.gemini_api_keys:
            self.gemini_api_keys = parse_keys(os.environ.get("GEMINI_API_KEYS"))
        if not self.deepl_api_key:
            self.deepl_api_key = os.environ.get("DEEPL_API_KEY", "").strip()
        return self

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> Settings:
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if "gemini_api_keys" in values:
            values["gemini_api_keys"] = parse_keys(values["gemini_api_keys"])
        return cls(**values)


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from disk; unreadable or missing files give defaults."""
    path = path or SETTINGS_FILE
    if not path.exists():
        return Settings()
    try:
        return Settings.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, TypeError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", path, e)
        return Settings()


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    path = path or SETTINGS_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(settings.to_dict(), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    return path
