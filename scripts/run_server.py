#!/usr/bin/env python3
"""
Launch quire server.

Modes:
  --mode mcp     MCP stdio transport
  --mode rest    REST API on HTTP, behind the OAuth proxy
  --mode both    MCP on stdio + REST on HTTP simultaneously

Repository and credentials come from the environment (or .env), see
quire/config.py. Startup fails if any of them is missing.
"""

import argparse
import asyncio
import secrets
import sys
import threading

from quire.config import Settings, load_settings
from quire.errors import ConfigError, StoreError
from quire.logging import configure_logging


def verify_token(settings: Settings):
    """Fail fast on a bad access token instead of on the first save."""
    from quire.store import VersionedFileStore

    async def check():
        async with VersionedFileStore(settings) as store:
            return await store.whoami()

    login = asyncio.run(check())
    print(f"Access token belongs to {login}; editing {settings.repo_slug}@{settings.GITHUB_BRANCH_NAME}")


def build_rest_app(settings: Settings, token: str = None):
    from quire.identity import AdminAllowList
    from quire.rest import create_rest_app
    from quire.store import VersionedFileStore

    allow_list = AdminAllowList.from_settings(settings)
    if not allow_list:
        print("WARNING: ADMIN_EMAILS and ADMIN_GITHUB_USERNAMES are empty. Nobody can save.")
    return create_rest_app(VersionedFileStore(settings), allow_list=allow_list, auth_token=token)


def run_mcp(settings: Settings):
    """Run MCP server on stdio."""
    from quire.server import create_server
    mcp, store = create_server(settings)
    mcp.run()


def run_rest(settings: Settings, host: str = "127.0.0.1", port: int = 8452, token: str = None):
    """Run REST API on HTTP."""
    import uvicorn

    app = build_rest_app(settings, token)

    print(f"quire REST API starting on http://{host}:{port}")
    if token:
        print("Use: Authorization: Bearer <token> (or ?token=) from the proxy")
    else:
        print("WARNING: No auth token set. API is open.")

    uvicorn.run(app, host=host, port=port)


def run_both(settings: Settings, host: str = "127.0.0.1", port: int = 8452, token: str = None):
    """Run MCP on stdio and REST on HTTP simultaneously. Each gets its own store and event loop."""
    import uvicorn
    from quire.server import create_server

    mcp, _ = create_server(settings)
    app = build_rest_app(settings, token)

    # REST in background thread
    rest_thread = threading.Thread(
        target=uvicorn.run,
        args=(app,),
        kwargs={"host": host, "port": port, "log_level": "warning"},
        daemon=True,
    )
    rest_thread.start()

    # MCP on main thread (stdio)
    mcp.run()


def main():
    parser = argparse.ArgumentParser(description="quire content server")
    parser.add_argument(
        "--mode", "-m",
        choices=["mcp", "rest", "both"],
        default="rest",
        help="Server mode (default: rest)",
    )
    parser.add_argument("--host", default="127.0.0.1", help="REST host (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, default=8452, help="REST port (default: 8452)")
    parser.add_argument(
        "--token", "-t",
        default=None,
        help="Auth token for REST API (or set QUIRE_TOKEN). If omitted, generates one.",
    )
    parser.add_argument(
        "--no-auth",
        action="store_true",
        help="Disable auth (only when the proxy is the sole route to this port)",
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Check the access token against the API before starting",
    )
    args = parser.parse_args()

    try:
        settings = load_settings()
    except ConfigError as exc:
        print(exc, file=sys.stderr)
        return 2
    configure_logging(settings.LOG_LEVEL)

    if args.verify:
        try:
            verify_token(settings)
        except StoreError as exc:
            print(f"Access token check failed: {exc}", file=sys.stderr)
            return 1

    token = None
    if args.mode in ("rest", "both"):
        if args.no_auth:
            token = None
        elif args.token:
            token = args.token
        elif settings.QUIRE_TOKEN:
            token = settings.QUIRE_TOKEN.get_secret_value()
        else:
            token = secrets.token_urlsafe(32)
            print(f"Generated auth token: {token}")
            print("Set QUIRE_TOKEN env var or use --token to use a fixed token.\n")

    if args.mode == "mcp":
        run_mcp(settings)
    elif args.mode == "rest":
        run_rest(settings, args.host, args.port, token)
    elif args.mode == "both":
        run_both(settings, args.host, args.port, token)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
