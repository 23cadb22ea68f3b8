"""Dummy translation backend for testing: applies the glossary and tags the text."""

from __future__ import annotations

from csvlinguist.backends.base import TranslationResult, TranslatorBackend
from csvlinguist.core.models import TranslationItem
from csvlinguist.translation.glossary import Glossary


class DummyBackend(TranslatorBackend):
    """Offline backend that substitutes glossary terms and prefixes a language tag.

    Example: "Use the Caller" → "[UK] Use the Вабик"
    Existing targets are accepted unchanged.
    """

    name = "dummy"
    batch_delay = 0.0
    cooldown_seconds = 0.0
    quota_cooldown_seconds = 0.0

    def __init__(self, target_lang: str = "UK") -> None:
        self.target_lang = target_lang

    def requires_api_key(self) -> bool:
        return False

    def translate_batch(
        self,
        items: list[TranslationItem],
        glossary: Glossary,
        api_key: str | None,
    ) -> list[TranslationResult]:
        tag = f"[{self.target_lang.upper()}]"
        results = []
        for item in items:
            if item.target:
                results.append(TranslationResult(item.id, item.target, 100))
            else:
                results.append(TranslationResult(
                    item.id, f"{tag} {glossary.apply(item.source)}", 100,
                ))
        return results
