"""Abstract base class for translation backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from csvlinguist.core.models import TranslationItem
from csvlinguist.errors import ConfigurationError
from csvlinguist.translation.glossary import Glossary

# Confidence above which a validated edit is written to the translation memory
HIGH_CONFIDENCE = 80


@dataclass
class TranslationResult:
    """Backend output for one item."""

    id: int
    translation: str
    confidence: int
    critique: str | None = None


def clamp_confidence(value: object) -> int:
    try:
        number = round(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, number))


class TranslatorBackend(ABC):
    """Interface for translation backends.

    A batch either fully succeeds, returning one result per input item, or
    fails as a unit by raising a :class:`~csvlinguist.errors.TranslatorError`
    subclass.
    """

    name: str = "base"
    # Politeness delay between two batches, in seconds
    batch_delay: float = 1.0
    # Wait after every credential was rate limited
    cooldown_seconds: float = 30.0
    # Wait after a hard quota error
    quota_cooldown_seconds: float = 60.0

    @abstractmethod
    def translate_batch(
        self,
        items: list[TranslationItem],
        glossary: Glossary,
        api_key: str | None,
    ) -> list[TranslationResult]:
        """Translate (or validate) a batch of items.

        Items that already carry a target are validated: the backend returns
        the same text if it is acceptable, or a corrected text with a critique.

        Args:
            items: Items to process, in row order.
            glossary: Read-only glossary snapshot.
            api_key: Credential for this call.

        Returns:
            One result per item, matched by ``id``.
        """
        ...

    def requires_api_key(self) -> bool:
        return True

    def _require_key(self, api_key: str | None) -> str:
        if self.requires_api_key() and not api_key:
            raise ConfigurationError(f"{self.name}: API key is missing.")
        return api_key or ""
