"""
quire MCP server: the file store as tools.

Four tools:
1. list_files  - Markdown files in the content root, or any directory.
2. read_file   - Content and version token of one file.
3. save_file   - Create, or update with the token from read_file.
4. delete_file - Delete with the token from read_file.

Commits are attributed to the configured operator identity.
"""

import json
from contextlib import asynccontextmanager
from typing import Optional

from mcp.server.fastmcp import FastMCP

from quire.config import Settings
from quire.errors import StoreError
from quire.identity import IdentityProvider, StaticIdentityProvider, operator_identity
from quire.store import VersionedFileStore


def create_server(
    settings: Settings,
    store: Optional[VersionedFileStore] = None,
    identities: Optional[IdentityProvider] = None,
) -> tuple[FastMCP, VersionedFileStore]:
    """Create the quire MCP server. Returns (mcp_server, store); the store is closed when the server shuts down."""

    store = store or VersionedFileStore(settings)
    identities = identities or StaticIdentityProvider(operator_identity(settings))

    @asynccontextmanager
    async def lifespan(server: FastMCP):
        try:
            yield
        finally:
            await store.aclose()

    mcp = FastMCP(
        "quire",
        instructions=(
            f"Edit Markdown files in {store.location}. "
            "Always read_file before save_file or delete_file and pass its versionToken. "
            "A conflict means someone else changed the file: read it again and reapply."
        ),
        lifespan=lifespan,
    )

    @mcp.tool()
    async def list_files(path: Optional[str] = None, recursive: bool = False) -> str:
        """
        List files.

        Without a path, lists the Markdown files of the content root.
        With recursive=true, descends into subdirectories.
        """
        try:
            if path is None:
                entries = await store.list_markdown()
                return json.dumps({"path": store.content_root, "entries": [e.to_dict() for e in entries]}, indent=2)
            if recursive:
                walked = await store.walk(path)
                return json.dumps({"path": path, **walked.to_dict()}, indent=2)
            entries = await store.list_directory(path)
            return json.dumps({"path": path, "entries": [e.to_dict() for e in entries]}, indent=2)
        except StoreError as exc:
            return json.dumps(exc.to_dict())

    @mcp.tool()
    async def read_file(path: str) -> str:
        """
        Read a file. Keep the returned versionToken for the next save or delete.
        """
        try:
            record = await store.read(path)
        except StoreError as exc:
            return json.dumps(exc.to_dict())
        return json.dumps(record.to_dict(), indent=2)

    @mcp.tool()
    async def save_file(
        path: str,
        content: str,
        expected_version_token: Optional[str] = None,
        commit_message: Optional[str] = None,
    ) -> str:
        """
        Create or update a file.

        Omit expected_version_token only for a new file; an existing file
        is never overwritten without it.
        """
        try:
            result = await store.write(
                path,
                content,
                identity=identities.current_identity(),
                commit_message=commit_message,
                expected_version_token=expected_version_token,
            )
        except StoreError as exc:
            return json.dumps(exc.to_dict())
        return json.dumps({"status": "created" if result.created else "updated", **result.to_dict()})

    @mcp.tool()
    async def delete_file(path: str, expected_version_token: str, commit_message: Optional[str] = None) -> str:
        """
        Delete a file. Requires the versionToken from read_file.
        """
        try:
            result = await store.delete(
                path,
                expected_version_token,
                identity=identities.current_identity(),
                commit_message=commit_message,
            )
        except StoreError as exc:
            return json.dumps(exc.to_dict())
        return json.dumps({"status": "deleted", **result.to_dict()})

    return mcp, store
