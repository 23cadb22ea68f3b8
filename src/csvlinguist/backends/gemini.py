"""Gemini (generative) translation backend using the google-genai SDK."""

from __future__ import annotations

import json
import logging

from csvlinguist.backends.base import TranslationResult, TranslatorBackend, clamp_confidence
from csvlinguist.core.models import TranslationItem
from csvlinguist.errors import AuthFailedError, RateLimitedError, TransportError
from csvlinguist.translation.glossary import Glossary

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-3-flash-preview"
BATCH_DELAY_SECONDS = 4.0
COOLDOWN_SECONDS = 65.0

SYSTEM_INSTRUCTION_BASE = """\
ROLE: You are a professional Ukrainian Localization Specialist for the hunting simulator 'Way of the Hunter'.
Goal: Authentic, Native, and Precise translations.

MANDATORY RULES:
1. GLOSSARY IS LAW: Use exact terms from the provided Glossary. NO synonyms.
   - Example: "Caller" -> "Вабик" (NEVER "Манок" or "Приманка").
   - Example: "Harvest" -> "Добути" (NEVER "Зібрати" or "Вбити").
2. NO RUSSISMS & CALQUES: Avoid structures common in Russian or direct English calques.
3. AUTHENTIC TERMINOLOGY: Use specific hunting lexicon.
4. TECHNICAL SAFETY:
   - Output MUST be valid JSON: [{"id": 1, "translation": "..."}].
   - Copy tags exactly: <img id="..."/>, {0}, %s.
"""

VALIDATION_INSTRUCTIONS = """\
INSTRUCTIONS FOR VALIDATION:
1. For each item, you are provided with 'source' and optionally 'currentTranslation'.
2. If 'currentTranslation' is present, VALIDATE it. Check if it follows the GLOSSARY and hunting terminology.
3. If 'currentTranslation' is excellent, return it as 'translation' with a high confidence score.
4. If 'currentTranslation' has errors or sounds unnatural, provide a fixed version in 'translation' and explain the changes in 'critique'.
5. Always return a 'confidence' score (0-100).
"""

RESPONSE_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "id": {"type": "NUMBER", "description": "Item id."},
            "translation": {
                "type": "STRING",
                "description": "Final translation (original or corrected).",
            },
            "confidence": {"type": "NUMBER", "description": "Confidence level (0-100)."},
            "critique": {
                "type": "STRING",
                "description": "Explanation of the changes or confirmation of quality.",
            },
        },
        "required": ["id", "translation", "confidence"],
        "propertyOrdering": ["id", "translation", "confidence", "critique"],
    },
}

_RATE_LIMIT_SIGNALS = ("RESOURCE_EXHAUSTED", "429")
_AUTH_SIGNALS = ("API_KEY_INVALID", "API key not valid", "PERMISSION_DENIED")


def build_system_instruction(glossary: Glossary) -> str:
    return (
        f"{SYSTEM_INSTRUCTION_BASE}\n{VALIDATION_INSTRUCTIONS}\n"
        f"GLOSSARY (Strict JSON):\n{glossary.to_json()}"
    )


def build_prompt(items: list[TranslationItem]) -> str:
    payload = [
        {
            "id": item.id,
            "key": item.key,
            "source": item.source,
            "currentTranslation": item.target or None,
        }
        for item in items
    ]
    return (
        "Process the following game strings. If a translation is provided, "
        "validate and improve it. Otherwise, translate from scratch:\n"
        + json.dumps(payload, ensure_ascii=False)
    )


def parse_response(text: str | None, items: list[TranslationItem]) -> list[TranslationResult]:
    """Turn the model's JSON array into results, one per requested item.

    Raises:
        TransportError: If the text is empty, not a JSON array, or misses an id.
    """
    if not text:
        raise TransportError("Empty response from Gemini")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise TransportError(f"Invalid JSON from Gemini: {e}") from e
    if not isinstance(data, list):
        raise TransportError("Gemini did not return a JSON array")

    by_id: dict[int, TranslationResult] = {}
    for obj in data:
        if not isinstance(obj, dict) or "id" not in obj or "translation" not in obj:
            continue
        try:
            item_id = int(obj["id"])
        except (TypeError, ValueError):
            continue
        critique = obj.get("critique") or None
        by_id[item_id] = TranslationResult(
            id=item_id,
            translation=str(obj["translation"]).strip(),
            confidence=clamp_confidence(obj.get("confidence", 0)),
            critique=str(critique) if critique is not None else None,
        )

    missing = [item.id for item in items if item.id not in by_id]
    if missing:
        raise TransportError(
            f"Gemini returned {len(items) - len(missing)} of {len(items)} items; "
            f"missing ids: {missing[:10]}"
        )
    return [by_id[item.id] for item in items]


class GeminiBackend(TranslatorBackend):
    """Generative backend: the model translates, validates and scores each item."""

    name = "gemini"
    batch_delay = BATCH_DELAY_SECONDS
    cooldown_seconds = COOLDOWN_SECONDS
    quota_cooldown_seconds = COOLDOWN_SECONDS

    def __init__(self, model: str | None = None, temperature: float = 0.1) -> None:
        try:
            from google import genai
            from google.genai import errors, types
        except ImportError:
            raise ImportError(
                "Gemini backend requires the 'google-genai' package. "
                "Install it with: pip install csvlinguist[gemini]"
            ) from None
        self._genai = genai
        self._errors = errors
        self._types = types
        self.model = model or DEFAULT_MODEL
        self.temperature = temperature
        self._clients: dict[str, object] = {}

    def _client(self, api_key: str):
        client = self._clients.get(api_key)
        if client is None:
            client = self._genai.Client(api_key=api_key)
            self._clients[api_key] = client
        return client

    def translate_batch(
        self,
        items: list[TranslationItem],
        glossary: Glossary,
        api_key: str | None,
    ) -> list[TranslationResult]:
        if not items:
            return []
        key = self._require_key(api_key)

        config = self._types.GenerateContentConfig(
            system_instruction=build_system_instruction(glossary),
            temperature=self.temperature,
            response_mime_type="application/json",
            response_schema=RESPONSE_SCHEMA,
        )
        try:
            response = self._client(key).models.generate_content(
                model=self.model,
                contents=build_prompt(items),
                config=config,
            )
        except self._errors.APIError as e:
            raise self._classify(e) from e
        except (OSError, TimeoutError) as e:
            raise TransportError(f"Gemini request failed: {e}") from e

        return parse_response(getattr(response, "text", None), items)

    @staticmethod
    def _classify(error: Exception) -> Exception:
        """Map a google-genai APIError onto the backend error taxonomy."""
        code = getattr(error, "code", None)
        message = str(error)
        if code == 429 or any(s in message for s in _RATE_LIMIT_SIGNALS):
            return RateLimitedError(f"Gemini rate limit: {message}")
        if code in (401, 403) or any(s in message for s in _AUTH_SIGNALS):
            return AuthFailedError(f"Gemini rejected the API key: {message}")
        return TransportError(f"Gemini error {code}: {message}")
