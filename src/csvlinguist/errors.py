"""Exception hierarchy shared by the parser, backends and orchestrator."""

from __future__ import annotations


class LinguistError(Exception):
    """Base class for all csvlinguist errors."""


class ConfigurationError(LinguistError):
    """Missing or invalid configuration (credentials, batch size, backend).

    Fatal: stops the run and is surfaced to the operator.
    """


class CsvParseError(LinguistError):
    """Raised when a CSV file cannot be tokenized or decoded."""


class CancelledError(LinguistError):
    """Raised internally when the user asks the run to stop."""


class TranslatorError(LinguistError):
    """Base class for failures signalled by a translation backend."""


class RateLimitedError(TranslatorError):
    """Request rate or token quota exceeded. Always retryable."""


class QuotaExceededError(RateLimitedError):
    """Hard plan limit reached. Retried like a rate limit, with a longer wait."""


class AuthFailedError(TranslatorError):
    """The credential was rejected by the backend."""


class TransportError(TranslatorError):
    """Network failure or unusable response."""
