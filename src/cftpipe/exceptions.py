"""Custom exceptions for cftpipe commands."""

from __future__ import annotations


class CftpipeError(Exception):
    """Base exception for all cftpipe errors. Fatal to the current command."""


class PreconditionError(CftpipeError):
    """Raised when a required tool, token, config or argument is missing."""


class SelectionError(PreconditionError):
    """Raised when an interactive menu selection is out of range."""


class ProviderError(CftpipeError):
    """Raised when a Cloudflare API call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(ProviderError):
    """Raised when Cloudflare rejects the API token (HTTP 401/403)."""


class StateError(CftpipeError):
    """Raised when a local state file cannot be read or parsed."""
