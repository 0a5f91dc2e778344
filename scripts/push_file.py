#!/usr/bin/env python3
"""Push a local Markdown file to the content repository with optimistic concurrency."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from quire.config import load_settings
from quire.errors import ConfigError, ConflictError, NotFoundError, StoreError
from quire.identity import Identity, operator_identity
from quire.logging import configure_logging
from quire.models import WriteResult
from quire.paths import join_path, markdown_filename, slugify
from quire.store import VersionedFileStore, retry_transient


def remote_path_for(content_root: str, local_name: str, title: str | None = None) -> str:
    """Remote path under the content root, named after the post title when one is given."""
    name = slugify(title) if title else ""
    return join_path(content_root, markdown_filename(name or local_name))


async def push(
    store: VersionedFileStore,
    remote_path: str,
    content: str,
    identity: Identity | None = None,
    message: str | None = None,
    expected_sha: str | None = None,
) -> WriteResult | None:
    """
    Write `content` to `remote_path`.

    Without expected_sha the current token is read first, so the write
    only lands if nobody changes the file in between. Returns None when
    the remote already holds exactly this content.
    """
    token = expected_sha
    if token is None:
        try:
            current = await retry_transient(lambda: store.read(remote_path))
        except NotFoundError:
            current = None
        if current is not None and current.content == content:
            return None
        token = current.version_token if current else None

    return await store.write(
        remote_path,
        content,
        identity=identity,
        commit_message=message,
        expected_version_token=token,
    )


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("file", help="Local Markdown file")
    parser.add_argument("--path", help="Remote path (default: <content root>/<file name>)")
    parser.add_argument("--title", default=None, help="Name the remote file after this post title")
    parser.add_argument("--message", default=None)
    parser.add_argument("--expected-sha", default=None, help="Fail unless the remote file still has this SHA")
    args = parser.parse_args()

    try:
        settings = load_settings()
    except ConfigError as exc:
        raise SystemExit(str(exc)) from exc
    configure_logging(settings.LOG_LEVEL)

    local = Path(args.file)
    content = local.read_text(encoding="utf-8")
    remote_path = args.path or remote_path_for(settings.GITHUB_CONTENT_PATH, local.name, args.title)

    async def run():
        async with VersionedFileStore(settings) as store:
            return await push(
                store,
                remote_path,
                content,
                identity=operator_identity(settings),
                message=args.message,
                expected_sha=args.expected_sha,
            )

    try:
        result = asyncio.run(run())
    except ConflictError as exc:
        raise SystemExit(f"{remote_path} changed on the remote; pull it and reapply your edit ({exc})") from exc
    except StoreError as exc:
        raise SystemExit(f"Push failed ({exc.kind}): {exc}") from exc

    if result is None:
        print(f"{remote_path} already up to date")
    else:
        print(f"{'Created' if result.created else 'Updated'} {remote_path} -> {result.version_token} (commit {result.commit_sha})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
