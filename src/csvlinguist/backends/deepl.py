"""DeepL API translation backend."""

from __future__ import annotations

import logging

from csvlinguist.backends.base import TranslationResult, TranslatorBackend
from csvlinguist.core.models import TranslationItem
from csvlinguist.errors import (
    AuthFailedError,
    QuotaExceededError,
    RateLimitedError,
    TransportError,
)
from csvlinguist.translation.glossary import GLUE_TAG, Glossary, strip_annotation

logger = logging.getLogger(__name__)

DEFAULT_TARGET_LANG = "UK"
# DeepL accepts at most 50 texts per request
MAX_BATCH_SIZE = 50
BATCH_DELAY_SECONDS = 1.0
RATE_LIMIT_COOLDOWN_SECONDS = 30.0
QUOTA_COOLDOWN_SECONDS = 300.0

GLOSSARY_CONFIDENCE = 100
ENGINE_CONFIDENCE = 90


class DeepLBackend(TranslatorBackend):
    """Engine backend using the DeepL API.

    Glossary context travels as an ignored ``<glue>`` XML span, so confidence
    is derived from whether a glossary term matched the source.
    """

    name = "deepl"
    batch_delay = BATCH_DELAY_SECONDS
    cooldown_seconds = RATE_LIMIT_COOLDOWN_SECONDS
    quota_cooldown_seconds = QUOTA_COOLDOWN_SECONDS

    def __init__(self, target_lang: str = DEFAULT_TARGET_LANG, source_lang: str | None = None) -> None:
        try:
            import deepl
        except ImportError:
            raise ImportError(
                "DeepL backend requires the 'deepl' package. "
                "Install it with: pip install csvlinguist[deepl]"
            ) from None
        self._deepl = deepl
        self.target_lang = target_lang
        self.source_lang = source_lang
        self._translators: dict[str, object] = {}

    def _translator(self, api_key: str):
        translator = self._translators.get(api_key)
        if translator is None:
            # The SDK picks the free endpoint for keys ending in ":fx"
            translator = self._deepl.Translator(api_key)
            self._translators[api_key] = translator
        return translator

    def translate_batch(
        self,
        items: list[TranslationItem],
        glossary: Glossary,
        api_key: str | None,
    ) -> list[TranslationResult]:
        """Translate items, injecting glossary context and validating existing targets."""
        if not items:
            return []
        key = self._require_key(api_key)

        annotated = glossary.annotate_batch([item.source for item in items])
        texts: list[str] = []
        for i in range(0, len(annotated), MAX_BATCH_SIZE):
            chunk = [a.text for a in annotated[i : i + MAX_BATCH_SIZE]]
            texts.extend(self._request(key, chunk))

        if len(texts) != len(items):
            raise TransportError(f"DeepL returned {len(texts)} of {len(items)} translations")

        results: list[TranslationResult] = []
        for item, meta, raw in zip(items, annotated, texts, strict=True):
            translation = strip_annotation(raw)
            confidence = GLOSSARY_CONFIDENCE if meta.has_match else ENGINE_CONFIDENCE
            critique = None
            if meta.has_match:
                critique = f"Used glossary terms: {', '.join(meta.matched_terms)}"

            current = (item.target or "").strip()
            if current:
                if current == translation:
                    confidence = GLOSSARY_CONFIDENCE
                    critique = "Current translation matches the engine output."
                else:
                    critique = f"Replaced current translation {current!r} with engine output."

            results.append(TranslationResult(
                id=item.id, translation=translation,
                confidence=confidence, critique=critique,
            ))
        return results

    def _request(self, api_key: str, texts: list[str]) -> list[str]:
        """Send one request, translating SDK exceptions into backend errors."""
        deepl = self._deepl
        try:
            result = self._translator(api_key).translate_text(
                texts,
                target_lang=self.target_lang,
                source_lang=self.source_lang,
                tag_handling="xml",
                ignore_tags=[GLUE_TAG],
            )
        except deepl.QuotaExceededException as e:
            raise QuotaExceededError(f"DeepL quota exceeded: {e}") from e
        except deepl.TooManyRequestsException as e:
            raise RateLimitedError(f"DeepL rate limit: {e}") from e
        except deepl.AuthorizationException as e:
            raise AuthFailedError(f"DeepL auth failed (check key): {e}") from e
        except (deepl.DeepLException, ConnectionError, TimeoutError) as e:
            raise TransportError(f"DeepL error: {e}") from e

        # translate_text returns a list of TextResult when given a list
        if isinstance(result, list):
            return [r.text for r in result]
        return [result.text]
