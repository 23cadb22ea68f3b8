"""Glossary support: tell the backend which target term each source term must use.

The glossary is advisory. Matching terms are encoded into an out-of-band
``<glue>term=translation</glue>`` span prepended to the text; the backend is
asked to keep that span untranslated, and the span is stripped from the
response afterwards.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

logger = logging.getLogger(__name__)

GLUE_TAG = "glue"
_GLUE_SPAN_RE = re.compile(rf"<{GLUE_TAG}>.*?</{GLUE_TAG}>\s*", re.IGNORECASE | re.DOTALL)

BUNDLED_GLOSSARIES_DIR = Path(__file__).resolve().parent.parent / "glossaries"
DEFAULT_GLOSSARY_FILE = BUNDLED_GLOSSARIES_DIR / "hunting_uk.toml"


def strip_annotation(text: str) -> str:
    """Remove every glue span (and the whitespace after it) from a backend response."""
    return _GLUE_SPAN_RE.sub("", text).strip()


@dataclass
class AnnotatedText:
    """A source text prepared for an engine-style backend."""

    text: str
    matches: list[tuple[str, str]] = field(default_factory=list)

    @property
    def has_match(self) -> bool:
        return bool(self.matches)

    @property
    def matched_terms(self) -> list[str]:
        return [src for src, _ in self.matches]


@dataclass
class Glossary:
    """Source term → mandated target term."""

    terms: dict[str, str] = field(default_factory=dict)

    _patterns: dict[str, re.Pattern[str]] = field(default_factory=dict, repr=False, compare=False)

    def __len__(self) -> int:
        return len(self.terms)

    @staticmethod
    def _make_pattern(source: str) -> re.Pattern[str]:
        """Build a case-insensitive regex with word boundaries.

        The term is escaped, so characters like ``+`` or ``(`` match
        literally. ``\\b`` is only added at an end that is a word character;
        otherwise a term such as "C++" could never match.
        """
        escaped = re.escape(source)
        prefix = r"\b" if re.match(r"\w", source) else ""
        suffix = r"\b" if re.search(r"\w$", source) else ""
        return re.compile(prefix + escaped + suffix, re.IGNORECASE)

    def _pattern(self, source: str) -> re.Pattern[str]:
        pattern = self._patterns.get(source)
        if pattern is None:
            pattern = self._make_pattern(source)
            self._patterns[source] = pattern
        return pattern

    # ── editing ──

    def add(self, source: str, target: str) -> None:
        source, target = source.strip(), target.strip()
        if not source or not target:
            raise ValueError("Glossary entries need both a source and a target term")
        self.terms[source] = target

    def remove(self, source: str) -> bool:
        """Remove a term. Returns False if it was not present."""
        self._patterns.pop(source, None)
        return self.terms.pop(source, None) is not None

    def merge(self, other: Glossary) -> None:
        """Merge another glossary. Other's terms override on conflict."""
        self.terms.update(other.terms)

    def copy(self) -> Glossary:
        return Glossary(terms=dict(self.terms))

    # ── loading / saving ──

    @classmethod
    def from_toml(cls, path: str | Path) -> Glossary:
        """Load a glossary from a TOML file.

        Expected format:
            [terms]
            Caller = "Вабик"
            "Red Deer" = "Олень благородний"
        """
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return cls(terms=dict(data.get("terms", {})))

    @classmethod
    def from_json(cls, path: str | Path) -> Glossary:
        """Load a flat ``{"term": "translation"}`` JSON object."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{path}: glossary JSON must be an object")
        return cls(terms={str(k): str(v) for k, v in data.items()})

    @classmethod
    def from_file(cls, path: str | Path) -> Glossary:
        path = Path(path)
        if path.suffix.lower() == ".json":
            return cls.from_json(path)
        return cls.from_toml(path)

    @classmethod
    def from_multiple(cls, paths: list[Path]) -> Glossary:
        """Load and merge several files. Later files override earlier ones."""
        result = cls()
        for p in paths:
            result.merge(cls.from_file(p))
        return result

    @classmethod
    def default(cls) -> Glossary:
        """The bundled hunting-game glossary (English → Ukrainian)."""
        if not DEFAULT_GLOSSARY_FILE.exists():
            logger.warning("Bundled glossary not found: %s", DEFAULT_GLOSSARY_FILE)
            return cls()
        return cls.from_toml(DEFAULT_GLOSSARY_FILE)

    def save_json(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(indent=2), encoding="utf-8")

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.terms, ensure_ascii=False, indent=indent)

    # ── context injection ──

    def _sorted_terms(self) -> list[tuple[str, str]]:
        """Terms sorted by source length descending, so "Red Deer" is tried before "Deer"."""
        return sorted(self.terms.items(), key=lambda t: len(t[0]), reverse=True)

    def find_matches(self, text: str) -> list[tuple[str, str]]:
        """Return the (source, target) pairs whose source occurs as a whole word in text."""
        return [
            (src, tgt) for src, tgt in self._sorted_terms()
            if self._pattern(src).search(text)
        ]

    @staticmethod
    def build_annotation(matches: list[tuple[str, str]]) -> str:
        """Encode matches as ``term1=translation1; term2=translation2``."""
        return "; ".join(f"{src}={tgt}" for src, tgt in matches)

    def annotate(self, text: str) -> AnnotatedText:
        """Prepend a glue span with the applicable terms. Text is unchanged without matches."""
        matches = self.find_matches(text)
        if not matches:
            return AnnotatedText(text=text)
        span = f"<{GLUE_TAG}>{self.build_annotation(matches)}</{GLUE_TAG}>"
        return AnnotatedText(text=f"{span} {text}", matches=matches)

    def annotate_batch(self, texts: list[str]) -> list[AnnotatedText]:
        return [self.annotate(t) for t in texts]

    def apply(self, text: str) -> str:
        """Hard-substitute every matching term with its target (offline backends only)."""
        result = text
        for src, tgt in self._sorted_terms():
            result = self._pattern(src).sub(lambda _m, t=tgt: t, result)
        return result
