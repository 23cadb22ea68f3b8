"""Tests for the DeepL backend (mocked)."""

from types import ModuleType
from unittest.mock import MagicMock, patch

import pytest

from csvlinguist.core.models import TranslationItem
from csvlinguist.errors import (
    AuthFailedError,
    ConfigurationError,
    QuotaExceededError,
    RateLimitedError,
    TransportError,
)
from csvlinguist.translation.glossary import Glossary


def _make_mock_deepl():
    """Create a mock deepl module with required exception classes."""
    mock_mod = ModuleType("deepl")
    mock_mod.Translator = MagicMock()  # type: ignore[attr-defined]
    base = type("DeepLException", (Exception,), {})
    mock_mod.DeepLException = base  # type: ignore[attr-defined]
    mock_mod.QuotaExceededException = type("QuotaExceededException", (base,), {})  # type: ignore[attr-defined]
    mock_mod.TooManyRequestsException = type("TooManyRequestsException", (base,), {})  # type: ignore[attr-defined]
    mock_mod.AuthorizationException = type("AuthorizationException", (base,), {})  # type: ignore[attr-defined]
    return mock_mod


def _echo(texts, **kwargs):
    return [MagicMock(text=t) for t in texts]


def _items(*sources, targets=None):
    targets = targets or [None] * len(sources)
    return [
        TranslationItem(id=i, key=f"k{i}", source=s, target=t)
        for i, (s, t) in enumerate(zip(sources, targets), start=1)
    ]


def _backend(mock_deepl):
    with patch.dict("sys.modules", {"deepl": mock_deepl}):
        from csvlinguist.backends.deepl import DeepLBackend
        return DeepLBackend(target_lang="UK")


class TestDeepLBackend:
    def test_translate_batch(self):
        mock_deepl = _make_mock_deepl()
        mock_translator = MagicMock()
        mock_deepl.Translator.return_value = mock_translator
        mock_translator.translate_text.return_value = [
            MagicMock(text="Привіт"), MagicMock(text="Світ"),
        ]

        backend = _backend(mock_deepl)
        results = backend.translate_batch(_items("Hello", "World"), Glossary(), "key:fx")

        assert [r.translation for r in results] == ["Привіт", "Світ"]
        assert [r.id for r in results] == [1, 2]
        assert all(r.confidence == 90 for r in results)
        mock_deepl.Translator.assert_called_once_with("key:fx")

    def test_empty_batch(self):
        mock_deepl = _make_mock_deepl()
        backend = _backend(mock_deepl)
        assert backend.translate_batch([], Glossary(), "key") == []
        mock_deepl.Translator.assert_not_called()

    def test_glossary_span_sent_and_stripped(self, hunting_glossary):
        mock_deepl = _make_mock_deepl()
        mock_translator = MagicMock()
        mock_deepl.Translator.return_value = mock_translator
        mock_translator.translate_text.side_effect = _echo

        backend = _backend(mock_deepl)
        results = backend.translate_batch(
            _items("Caller", "Plain text"), hunting_glossary, "key",
        )

        sent, kwargs = mock_translator.translate_text.call_args
        assert sent[0] == ["<glue>Caller=Вабик</glue> Caller", "Plain text"]
        assert kwargs["tag_handling"] == "xml"
        assert kwargs["ignore_tags"] == ["glue"]
        assert kwargs["target_lang"] == "UK"

        assert results[0].translation == "Caller"
        assert results[0].confidence == 100
        assert results[0].critique == "Used glossary terms: Caller"
        assert results[1].confidence == 90
        assert results[1].critique is None

    def test_large_batch_is_chunked(self):
        mock_deepl = _make_mock_deepl()
        mock_translator = MagicMock()
        mock_deepl.Translator.return_value = mock_translator
        mock_translator.translate_text.side_effect = _echo

        backend = _backend(mock_deepl)
        items = _items(*[f"text_{i}" for i in range(75)])
        results = backend.translate_batch(items, Glossary(), "key")

        assert len(results) == 75
        assert mock_translator.translate_text.call_count == 2

    def test_translator_reused_per_key(self):
        mock_deepl = _make_mock_deepl()
        mock_deepl.Translator.return_value.translate_text.side_effect = _echo

        backend = _backend(mock_deepl)
        backend.translate_batch(_items("a"), Glossary(), "key1")
        backend.translate_batch(_items("b"), Glossary(), "key1")
        backend.translate_batch(_items("c"), Glossary(), "key2")

        assert mock_deepl.Translator.call_count == 2

    def test_existing_target_confirmed(self):
        mock_deepl = _make_mock_deepl()
        mock_deepl.Translator.return_value.translate_text.return_value = [MagicMock(text="Олень")]

        backend = _backend(mock_deepl)
        result = backend.translate_batch(_items("Deer", targets=["Олень"]), Glossary(), "key")[0]

        assert result.translation == "Олень"
        assert result.confidence == 100
        assert "matches" in result.critique

    def test_existing_target_replaced(self):
        mock_deepl = _make_mock_deepl()
        mock_deepl.Translator.return_value.translate_text.return_value = [MagicMock(text="Олень")]

        backend = _backend(mock_deepl)
        result = backend.translate_batch(_items("Deer", targets=["Олениця"]), Glossary(), "key")[0]

        assert result.translation == "Олень"
        assert result.confidence == 90
        assert "Олениця" in result.critique

    def test_missing_key(self):
        backend = _backend(_make_mock_deepl())
        with pytest.raises(ConfigurationError):
            backend.translate_batch(_items("a"), Glossary(), None)

    @pytest.mark.parametrize(("exc_name", "expected"), [
        ("QuotaExceededException", QuotaExceededError),
        ("TooManyRequestsException", RateLimitedError),
        ("AuthorizationException", AuthFailedError),
        ("DeepLException", TransportError),
    ])
    def test_error_mapping(self, exc_name, expected):
        mock_deepl = _make_mock_deepl()
        exc_cls = getattr(mock_deepl, exc_name)
        mock_deepl.Translator.return_value.translate_text.side_effect = exc_cls("boom")

        backend = _backend(mock_deepl)
        with pytest.raises(expected):
            backend.translate_batch(_items("a"), Glossary(), "key")

    def test_connection_error_is_transport(self):
        mock_deepl = _make_mock_deepl()
        mock_deepl.Translator.return_value.translate_text.side_effect = ConnectionError("down")

        backend = _backend(mock_deepl)
        with pytest.raises(TransportError):
            backend.translate_batch(_items("a"), Glossary(), "key")

    def test_short_response_is_transport_error(self):
        mock_deepl = _make_mock_deepl()
        mock_deepl.Translator.return_value.translate_text.return_value = [MagicMock(text="x")]

        backend = _backend(mock_deepl)
        with pytest.raises(TransportError):
            backend.translate_batch(_items("a", "b"), Glossary(), "key")

    def test_missing_package(self):
        with patch.dict("sys.modules", {"deepl": None}):
            from csvlinguist.backends.deepl import DeepLBackend
            with pytest.raises(ImportError, match="pip install"):
                DeepLBackend()
