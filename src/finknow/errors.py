"""Exception taxonomy for the knowledge retrieval core.

Ingest-side failures always propagate to the caller. Query-side failures are
caught by the retriever and carried as a ``RetrievalError`` inside a
``SearchOutcome`` so the caller's chat flow is never aborted.
"""

from __future__ import annotations


class FinknowError(Exception):
    """Base class for every error raised by finknow."""


class ValidationError(FinknowError, ValueError):
    """Input rejected before any side effect (empty content, bad metadata...)."""


class ProviderError(FinknowError):
    """The embedding provider failed, timed out, or returned an unusable response.

    Never retried inside the core; retry policy belongs to the caller.
    """


class MissingApiKeyError(ProviderError):
    """No API key is configured for the embedding provider."""

    def __init__(self, provider: str, env_var: str) -> None:
        super().__init__(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )
        self.provider = provider
        self.env_var = env_var


class StorageError(FinknowError):
    """A knowledge store insert or query failed. Inserts are atomic."""


class RetrievalError(FinknowError):
    """A query could not be answered. Wraps the underlying provider/storage error."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
