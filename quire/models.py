"""
Records returned by the versioned file store.

Nothing here is persisted. Every record is rebuilt from a fresh remote
response and dropped when the operation that produced it finishes.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional


class EntryKind(str, Enum):
    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"
    SUBMODULE = "submodule"


@dataclass
class FileRecord:
    """One file as currently stored, with the token that guards its next write."""
    path: str
    content: str
    version_token: Optional[str] = None  # None until the file exists remotely
    kind: EntryKind = EntryKind.FILE
    size: int = 0

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "content": self.content,
            "versionToken": self.version_token,
            "kind": self.kind.value,
            "size": self.size,
        }


@dataclass
class DirectoryEntry:
    name: str
    path: str
    version_token: str
    kind: EntryKind
    size: int = 0

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIR

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": self.path,
            "versionToken": self.version_token,
            "kind": self.kind.value,
            "size": self.size,
        }

    @classmethod
    def from_github(cls, item: dict) -> "DirectoryEntry":
        return cls(
            name=item["name"],
            path=item["path"],
            version_token=item["sha"],
            kind=EntryKind(item.get("type", "file")),
            size=item.get("size", 0),
        )


@dataclass
class WriteResult:
    """Outcome of a successful create, update or delete."""
    path: str
    version_token: Optional[str]  # None after a delete
    commit_sha: str
    created: bool = False

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "versionToken": self.version_token,
            "commitSha": self.commit_sha,
            "created": self.created,
        }


@dataclass
class WalkResult:
    """Entries gathered by a recursive listing, plus the directories that failed."""
    entries: list[DirectoryEntry] = field(default_factory=list)
    failures: dict = field(default_factory=dict)  # path -> StoreError

    @property
    def complete(self) -> bool:
        return not self.failures

    def files(self) -> list[DirectoryEntry]:
        return [e for e in self.entries if e.kind is EntryKind.FILE]

    def to_dict(self) -> dict:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "failures": {p: err.to_dict() for p, err in self.failures.items()},
        }


@dataclass
class RateLimit:
    limit: int
    remaining: int
    reset: int  # epoch seconds
    used: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_github(cls, core: dict) -> "RateLimit":
        return cls(
            limit=int(core.get("limit", 0)),
            remaining=int(core.get("remaining", 0)),
            reset=int(core.get("reset", 0)),
            used=int(core.get("used", 0)),
        )


@dataclass
class BranchHead:
    branch: str
    commit_sha: str

    def to_dict(self) -> dict:
        return {"branch": self.branch, "commitSha": self.commit_sha}
