"""
SHA-guarded client for the GitHub contents API.

Every save and delete follows the same optimistic-concurrency protocol:

    read(path)            -> content + version token (blob SHA)
    write(path, ..., tok) -> remote applies only if tok is still current
    stale tok             -> ConflictError; re-read and reapply

The client holds no state between operations: no cached records, no
cached tokens, no locks. The remote's token check is the only
sequencing guarantee for a path, so a read followed by a write is never
assumed atomic.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar
from urllib.parse import quote

import httpx

from quire.config import Settings
from quire.errors import (
    ConflictError,
    IndeterminateError,
    NotFoundError,
    StoreError,
    TransientError,
    UnauthorizedError,
    ValidationError,
    WrongKindError,
)
from quire.identity import Identity, commit_attribution
from quire.models import (
    BranchHead,
    DirectoryEntry,
    EntryKind,
    FileRecord,
    RateLimit,
    WalkResult,
    WriteResult,
)
from quire.paths import is_markdown, normalize_path

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
USER_AGENT = "quire"

T = TypeVar("T")

# Raised before the request left the process, so never indeterminate
_NOT_DISPATCHED = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


def _github_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message", ""))
    return ""


def _retry_after(response: httpx.Response) -> Optional[float]:
    if "retry-after" in response.headers:
        try:
            return float(response.headers["retry-after"])
        except ValueError:
            return None
    # GitHub sends the quota reset on every response; it only means "wait" once the quota is spent
    if response.headers.get("x-ratelimit-remaining") != "0":
        return None
    reset = response.headers.get("x-ratelimit-reset")
    if reset and reset.isdigit():
        return max(0.0, int(reset) - time.time())
    return None


def classify_response(response: httpx.Response, path: Optional[str] = None) -> StoreError:
    """Map a failed GitHub response onto the error taxonomy."""
    status = response.status_code
    message = _github_message(response)
    detail = f"{message} (HTTP {status})" if message else f"HTTP {status}"

    if status == 401:
        return UnauthorizedError(f"Access token rejected: {detail}", path)
    if status == 403:
        if response.headers.get("x-ratelimit-remaining") == "0" or "rate limit" in message.lower():
            return TransientError(f"Rate limit exceeded: {detail}", path, retry_after=_retry_after(response))
        return UnauthorizedError(f"Not permitted: {detail}", path)
    if status == 404:
        return NotFoundError(f"Not found: {path or detail}", path)
    if status == 409:
        return ConflictError(f"Version token is stale: {detail}", path)
    if status == 422:
        # GitHub reports a create over an existing file as '"sha" wasn't supplied'
        if "sha" in message.lower():
            return ConflictError(f"Version token mismatch: {detail}", path)
        return ValidationError(f"Rejected by remote: {detail}", path)
    if status == 429 or status >= 500:
        return TransientError(f"Remote unavailable: {detail}", path, retry_after=_retry_after(response))
    return StoreError(f"Unexpected remote response: {detail}", path)


class VersionedFileStore:
    """
    Async read/list/write/delete against one owner/repo/branch.

    Construct once per process from Settings and share it; operations are
    independent and may run concurrently.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.owner = settings.GITHUB_REPO_OWNER
        self.repo = settings.GITHUB_REPO_NAME
        self.branch = settings.GITHUB_BRANCH_NAME
        self.content_root = settings.GITHUB_CONTENT_PATH
        self._client = httpx.AsyncClient(
            base_url=settings.GITHUB_API_URL.rstrip("/"),
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {settings.GITHUB_WRITE_TOKEN.get_secret_value()}",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": USER_AGENT,
            },
            timeout=settings.GITHUB_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> "VersionedFileStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def location(self) -> str:
        return f"{self.owner}/{self.repo}@{self.branch}"

    # -- transport ---------------------------------------------------------

    def _repo_url(self, suffix: str) -> str:
        return f"/repos/{quote(self.owner)}/{quote(self.repo)}/{suffix}"

    def _contents_url(self, path: str) -> str:
        return self._repo_url(f"contents/{quote(path, safe='/')}")

    async def _request(
        self,
        method: str,
        url: str,
        path: Optional[str] = None,
        params: Optional[dict] = None,
        payload: Optional[dict] = None,
        timeout: Optional[float] = None,
        mutating: bool = False,
    ) -> httpx.Response:
        kwargs: dict[str, Any] = {"params": params, "json": payload}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await self._client.request(method, url, **kwargs)
        except asyncio.CancelledError:
            if mutating:
                logger.warning("%s %s cancelled after dispatch; outcome is indeterminate", method, path)
            raise
        except _NOT_DISPATCHED as exc:
            raise TransientError(f"Could not reach remote: {exc!r}", path) from exc
        except httpx.TransportError as exc:
            if mutating:
                logger.warning("%s %s lost its response; outcome is indeterminate: %r", method, path, exc)
                raise IndeterminateError(
                    f"No response observed for {method} {path}; re-read to learn its state", path
                ) from exc
            raise TransientError(f"Remote request failed: {exc!r}", path) from exc

        if response.is_success:
            return response
        error = classify_response(response, path)
        if isinstance(error, TransientError):
            logger.warning("%s %s: %s", method, path or url, error)
        else:
            logger.info("%s %s: %s", method, path or url, error)
        raise error

    # -- reads -------------------------------------------------------------

    async def read(self, path: str, timeout: Optional[float] = None) -> FileRecord:
        """Fetch one file with the version token guarding its next write."""
        path = normalize_path(path)
        response = await self._request(
            "GET", self._contents_url(path), path=path, params={"ref": self.branch}, timeout=timeout
        )
        data = response.json()
        if isinstance(data, list):
            raise WrongKindError(f"{path} is a directory, not a file", path)
        if data.get("type") != EntryKind.FILE.value:
            raise WrongKindError(f"{path} is a {data.get('type')}, not a file", path)

        raw = await self._file_bytes(data, path, timeout)
        try:
            content = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise WrongKindError(f"{path} is not a UTF-8 text file", path) from exc

        return FileRecord(
            path=data.get("path", path),
            content=content,
            version_token=data["sha"],
            kind=EntryKind.FILE,
            size=data.get("size", len(raw)),
        )

    async def _file_bytes(self, data: dict, path: str, timeout: Optional[float]) -> bytes:
        # Files past the inline size limit arrive with encoding "none"; fetch the blob instead
        if data.get("encoding") == "none" or (not data.get("content") and data.get("size", 0) > 0):
            response = await self._request(
                "GET", self._repo_url(f"git/blobs/{data['sha']}"), path=path, timeout=timeout
            )
            data = response.json()
        return base64.b64decode(data.get("content") or "")

    async def list_directory(self, path: str = "", timeout: Optional[float] = None) -> list[DirectoryEntry]:
        """
        Immediate children of a directory, in the order the remote returns them.

        The empty path lists the repository root. An empty directory gives [].
        """
        path = normalize_path(path, allow_root=True)
        response = await self._request(
            "GET", self._contents_url(path), path=path, params={"ref": self.branch}, timeout=timeout
        )
        data = response.json()
        if not isinstance(data, list):
            raise WrongKindError(f"{path} is a {data.get('type', 'file')}, not a directory", path)
        return [DirectoryEntry.from_github(item) for item in data]

    async def list_markdown(self, path: Optional[str] = None, timeout: Optional[float] = None) -> list[DirectoryEntry]:
        """Markdown/MDX files directly under `path` (default: content root), sorted by name."""
        entries = await self.list_directory(self.content_root if path is None else path, timeout=timeout)
        files = [e for e in entries if e.kind is EntryKind.FILE and is_markdown(e.name)]
        return sorted(files, key=lambda e: e.name)

    async def walk(
        self, path: str = "", max_depth: Optional[int] = None, timeout: Optional[float] = None
    ) -> WalkResult:
        """
        Recursive listing built from one list_directory per directory level.

        Subdirectories are listed concurrently. A subdirectory that fails is
        recorded in `failures` and its siblings are still listed; only a
        failure of `path` itself propagates. max_depth=1 lists `path` only.
        """
        result = WalkResult()
        entries = await self.list_directory(path, timeout=timeout)
        await self._descend(entries, 1, max_depth, result, timeout)
        return result

    async def _descend(self, entries, depth, max_depth, result, timeout):
        result.entries.extend(entries)
        if max_depth is not None and depth >= max_depth:
            return
        await asyncio.gather(*(
            self._walk_dir(e.path, depth + 1, max_depth, result, timeout)
            for e in entries if e.is_dir
        ))

    async def _walk_dir(self, path, depth, max_depth, result, timeout):
        try:
            entries = await self.list_directory(path, timeout=timeout)
        except StoreError as exc:
            logger.warning("Listing %s failed, continuing without it: %s", path, exc)
            result.failures[path] = exc
            return
        await self._descend(entries, depth, max_depth, result, timeout)

    # -- writes ------------------------------------------------------------

    def _attribution(self, identity: Optional[Identity], path: str):
        if identity is not None and not identity.is_authorized_committer:
            who = identity.contact_address or identity.username or identity.display_name or "caller"
            raise UnauthorizedError(f"{who} is not allowed to commit", path)
        return commit_attribution(identity)

    async def write(
        self,
        path: str,
        content: str,
        identity: Optional[Identity] = None,
        commit_message: Optional[str] = None,
        expected_version_token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> WriteResult:
        """
        Create or update a file.

        With expected_version_token the update applies only if that token is
        still current. Without it the write creates the file and fails with
        ConflictError if the path already exists; it never overwrites blindly.
        """
        path = normalize_path(path)
        if not isinstance(content, str) or not content:
            raise ValidationError("content is required", path)
        if expected_version_token is not None and not expected_version_token.strip():
            raise ValidationError("expected version token must not be blank", path)
        if commit_message is None:
            verb = "Update" if expected_version_token else "Create"
            commit_message = f"{verb}: {path}"
        elif not commit_message.strip():
            raise ValidationError("commit message must not be blank", path)

        attribution = self._attribution(identity, path)
        payload = {
            "message": commit_message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.branch,
            "author": attribution.to_github(),
            "committer": attribution.to_github(),
        }
        if expected_version_token:
            payload["sha"] = expected_version_token

        try:
            response = await self._request(
                "PUT", self._contents_url(path), path=path, payload=payload, timeout=timeout, mutating=True
            )
        except ConflictError as exc:
            if expected_version_token is None:
                raise ConflictError(
                    f"{path} already exists; read it and resubmit with its version token", path
                ) from exc
            raise

        data = response.json()
        result = WriteResult(
            path=path,
            version_token=data["content"]["sha"],
            commit_sha=data["commit"]["sha"],
            created=response.status_code == 201,
        )
        logger.info(
            "%s %s on %s as %s (commit %s)",
            "Created" if result.created else "Updated", path, self.location, attribution.name, result.commit_sha,
        )
        return result

    async def delete(
        self,
        path: str,
        expected_version_token: Optional[str],
        identity: Optional[Identity] = None,
        commit_message: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> WriteResult:
        """Delete a file. The version token is mandatory; a stale one is a ConflictError."""
        path = normalize_path(path)
        if not expected_version_token or not expected_version_token.strip():
            raise ValidationError("expected version token is required to delete", path)
        if commit_message is None:
            commit_message = f"Delete: {path}"
        elif not commit_message.strip():
            raise ValidationError("commit message must not be blank", path)

        attribution = self._attribution(identity, path)
        payload = {
            "message": commit_message,
            "sha": expected_version_token,
            "branch": self.branch,
            "author": attribution.to_github(),
            "committer": attribution.to_github(),
        }
        response = await self._request(
            "DELETE", self._contents_url(path), path=path, payload=payload, timeout=timeout, mutating=True
        )
        commit_sha = response.json()["commit"]["sha"]
        logger.info("Deleted %s on %s as %s (commit %s)", path, self.location, attribution.name, commit_sha)
        return WriteResult(path=path, version_token=None, commit_sha=commit_sha)

    # -- repository metadata -----------------------------------------------

    async def branch_head(self, timeout: Optional[float] = None) -> BranchHead:
        response = await self._request(
            "GET", self._repo_url(f"branches/{quote(self.branch, safe='')}"), path=self.branch, timeout=timeout
        )
        data = response.json()
        return BranchHead(branch=data.get("name", self.branch), commit_sha=data["commit"]["sha"])

    async def rate_limit(self, timeout: Optional[float] = None) -> RateLimit:
        """Current core quota. This call does not count against it."""
        response = await self._request("GET", "/rate_limit", timeout=timeout)
        data = response.json()
        core = data.get("resources", {}).get("core") or data.get("rate", {})
        return RateLimit.from_github(core)

    async def whoami(self, timeout: Optional[float] = None) -> str:
        """Login owning the configured access token."""
        response = await self._request("GET", "/user", timeout=timeout)
        return response.json()["login"]


async def retry_transient(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
) -> T:
    """
    Run `operation`, retrying only TransientError with exponential backoff.

    Conflicts, validation and authorization failures propagate immediately.
    IndeterminateError is not retried either: the caller must re-read.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except TransientError as exc:
            if attempt == attempts:
                raise
            delay = min(max_delay, base_delay * 2 ** (attempt - 1))
            if exc.retry_after:
                delay = min(max_delay, max(delay, exc.retry_after))
            logger.warning("Attempt %d/%d failed (%s); retrying in %.1fs", attempt, attempts, exc, delay)
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")
