"""Exceptions raised by provider calls."""

from typing import Optional


class ProviderError(Exception):
    """A provider answered with an error payload or a non-2xx status."""

    def __init__(self, message: str, provider: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class UnknownProviderError(ValueError):
    """Raised when a credential names a provider with no registered adapter."""
