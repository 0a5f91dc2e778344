"""
quire REST API: thin HTTP adapters over the versioned file store.

Endpoints:
    GET    /health                       - Server health
    GET    /files                        - Markdown files in the content root
    GET    /files?path=p                 - File content, or directory listing
    GET    /files?path=p&recursive=1     - Recursive listing with per-directory failures
    GET    /files?...&quota=1            - Same, paired with the current rate limit
    POST   /files                        - Create or update {path, content, commitMessage?, expectedVersionToken?}
    DELETE /files                        - Delete {path, expectedVersionToken, commitMessage?}
    GET    /rate-limit                   - Remote API quota

Auth: Bearer token in Authorization header OR ?token= query param.
Writes additionally need a signed-in admin, forwarded by the OAuth proxy.

Errors come back as {"error", "kind"} with the status of their kind:
400 validation, 401 unauthorized, 404 not found, 409 conflict, 500 otherwise.
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from quire.errors import StoreError, UnauthorizedError, ValidationError, WrongKindError
from quire.identity import AdminAllowList, HeaderIdentityProvider, Identity
from quire.logging import new_request_id
from quire.store import VersionedFileStore

logger = logging.getLogger(__name__)

_TRUTHY = ("1", "true", "yes")


class TokenAuth(BaseHTTPMiddleware):
    """Simple bearer token auth. Checks header or query param."""

    def __init__(self, app, token: Optional[str] = None):
        super().__init__(app)
        self.token = token

    async def dispatch(self, request: Request, call_next):
        if not self.token:
            return await call_next(request)

        # Skip auth for health check
        if request.url.path == "/health":
            return await call_next(request)

        auth = request.headers.get("authorization", "")
        if auth == f"Bearer {self.token}":
            return await call_next(request)

        if request.query_params.get("token") == self.token:
            return await call_next(request)

        return JSONResponse({"error": "unauthorized", "kind": "unauthorized"}, status_code=401)


class RequestID(BaseHTTPMiddleware):
    """Tags every log line of a request with one id, echoed back as X-Request-ID."""

    async def dispatch(self, request: Request, call_next):
        rid = new_request_id()
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response


async def _store_error(request: Request, exc: StoreError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("request body must be JSON") from exc
    if not isinstance(body, dict):
        raise ValidationError("request body must be a JSON object")
    return body


def _optional_str(body: dict, key: str) -> Optional[str]:
    value = body.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


def create_rest_app(
    store: VersionedFileStore,
    allow_list: Optional[AdminAllowList] = None,
    auth_token: Optional[str] = None,
) -> Starlette:
    """Create the REST API around a shared store."""

    allow_list = allow_list or AdminAllowList()

    def committer(request: Request) -> Identity:
        identity = HeaderIdentityProvider(request.headers, allow_list).current_identity()
        if identity is None:
            raise UnauthorizedError("sign-in required to change files")
        return identity

    async def health(request: Request) -> JSONResponse:
        return JSONResponse({
            "status": "ok",
            "service": "quire",
            "repository": store.location,
            "timestamp": time.time(),
        })

    async def get_files(request: Request) -> JSONResponse:
        path = request.query_params.get("path")
        recursive = request.query_params.get("recursive", "").lower() in _TRUTHY
        with_quota = request.query_params.get("quota", "").lower() in _TRUTHY

        async def fetch() -> dict:
            if not path:
                entries = await store.list_markdown()
                return {"path": store.content_root, "entries": [e.to_dict() for e in entries]}
            if recursive:
                walked = await store.walk(path)
                return {"path": path, **walked.to_dict()}
            try:
                record = await store.read(path)
            except WrongKindError:
                entries = await store.list_directory(path)
                return {"path": path, "entries": [e.to_dict() for e in entries]}
            return record.to_dict()

        if not with_quota:
            return JSONResponse(await fetch())
        quota_task = asyncio.ensure_future(store.rate_limit())
        try:
            body = await fetch()
        except BaseException:
            quota_task.cancel()
            raise
        quota = await quota_task
        return JSONResponse({**body, "rateLimit": quota.to_dict()})

    async def save_file(request: Request) -> JSONResponse:
        body = await _json_body(request)
        identity = committer(request)
        result = await store.write(
            path=_optional_str(body, "path") or "",
            content=_optional_str(body, "content") or "",
            identity=identity,
            commit_message=_optional_str(body, "commitMessage"),
            # An empty token from a form means "new file"
            expected_version_token=_optional_str(body, "expectedVersionToken") or None,
        )
        return JSONResponse(
            {"success": True, **result.to_dict()},
            status_code=201 if result.created else 200,
        )

    async def delete_file(request: Request) -> JSONResponse:
        body = await _json_body(request)
        identity = committer(request)
        result = await store.delete(
            path=_optional_str(body, "path") or "",
            expected_version_token=_optional_str(body, "expectedVersionToken"),
            identity=identity,
            commit_message=_optional_str(body, "commitMessage"),
        )
        return JSONResponse({"success": True, **result.to_dict()})

    async def rate_limit(request: Request) -> JSONResponse:
        quota = await store.rate_limit()
        return JSONResponse(quota.to_dict())

    @asynccontextmanager
    async def lifespan(app: Starlette):
        try:
            yield
        finally:
            await store.aclose()

    return Starlette(
        lifespan=lifespan,
        routes=[
            Route("/health", health, methods=["GET"]),
            Route("/files", get_files, methods=["GET"]),
            Route("/files", save_file, methods=["POST"]),
            Route("/files", delete_file, methods=["DELETE"]),
            Route("/rate-limit", rate_limit, methods=["GET"]),
        ],
        middleware=[
            Middleware(RequestID),
            Middleware(TokenAuth, token=auth_token),
        ],
        exception_handlers={StoreError: _store_error},
    )
