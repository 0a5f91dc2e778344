"""
Error taxonomy for the versioned file store.

Every failure path of the store ends in one of these. The adapters
(REST, MCP, CLI) map them to status codes and payloads; nothing in the
store swallows a remote error.
"""

from typing import Optional


class ConfigError(RuntimeError):
    """Required configuration is missing or malformed. Raised at startup."""


class StoreError(Exception):
    """Base class. Unclassified remote failures are raised as this."""

    kind = "error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def to_dict(self) -> dict:
        d = {"error": self.message, "kind": self.kind}
        if self.path is not None:
            d["path"] = self.path
        return d


class ValidationError(StoreError):
    """Malformed caller input. Raised before any remote call."""
    kind = "validation"
    status_code = 400


class UnauthorizedError(StoreError):
    """Caller or access token lacks the capability."""
    kind = "unauthorized"
    status_code = 401


class NotFoundError(StoreError):
    """Path, branch or repository absent."""
    kind = "not_found"
    status_code = 404


class WrongKindError(StoreError):
    """Expected a file and found a directory (or the reverse)."""
    kind = "wrong_kind"
    status_code = 409


class ConflictError(StoreError):
    """The supplied version token is stale. Re-read and resubmit."""
    kind = "conflict"
    status_code = 409


class TransientError(StoreError):
    """Network failure, rate limit or remote 5xx. Safe to retry with backoff."""
    kind = "transient"
    status_code = 500
    retryable = True

    def __init__(self, message: str, path: Optional[str] = None, retry_after: Optional[float] = None):
        super().__init__(message, path)
        self.retry_after = retry_after


class IndeterminateError(StoreError):
    """
    A write was dispatched but no response was observed.

    The remote may or may not have applied it; re-read the path to learn
    the authoritative state.
    """
    kind = "indeterminate"
    status_code = 500
