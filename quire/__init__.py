"""SHA-guarded editing of Markdown content stored in a GitHub repository."""

from quire.config import Settings, load_settings
from quire.errors import (
    ConfigError,
    ConflictError,
    IndeterminateError,
    NotFoundError,
    StoreError,
    TransientError,
    UnauthorizedError,
    ValidationError,
    WrongKindError,
)
from quire.identity import AdminAllowList, CommitAttribution, Identity
from quire.models import DirectoryEntry, FileRecord, WalkResult, WriteResult
from quire.store import VersionedFileStore, retry_transient

__all__ = [
    "Settings",
    "load_settings",
    "ConfigError",
    "ConflictError",
    "IndeterminateError",
    "NotFoundError",
    "StoreError",
    "TransientError",
    "UnauthorizedError",
    "ValidationError",
    "WrongKindError",
    "AdminAllowList",
    "CommitAttribution",
    "Identity",
    "DirectoryEntry",
    "FileRecord",
    "WalkResult",
    "WriteResult",
    "VersionedFileStore",
    "retry_transient",
]
