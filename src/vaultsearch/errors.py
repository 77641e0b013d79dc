"""Exception types raised by vaultsearch."""

from __future__ import annotations


class VaultSearchError(Exception):
    """Base class for all vaultsearch errors."""


class EmbeddingError(VaultSearchError):
    """The embedding provider failed to return vectors for a batch."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RateLimitError(EmbeddingError):
    """The embedding provider asked us to slow down (HTTP 429)."""

    def __init__(self, message: str = "Rate limited by embedding provider") -> None:
        super().__init__(message, status=429)


class IndexUnavailableError(VaultSearchError):
    """The semantic index is not configured or not started."""


class SearchError(VaultSearchError):
    """A query could not be answered."""
