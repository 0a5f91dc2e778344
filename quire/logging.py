import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Optional

# Tracks the request being served so every log line of one edit can be grepped together
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> str:
    """Return the current request_id, or '-' outside of a request."""
    return request_id_ctx.get() or "-"


def new_request_id() -> str:
    rid = uuid.uuid4().hex[:12]
    request_id_ctx.set(rid)
    return rid


class RequestIDFilter(logging.Filter):
    """Injects request_id into log records."""
    def filter(self, record):
        record.request_id = get_request_id()
        return True


def configure_logging(level: str = "INFO"):
    """Configures the root logger with a standard format including request_id."""
    logger = logging.getLogger()
    logger.setLevel(level.upper())

    # Remove existing handlers to avoid duplication
    if logger.handlers:
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | [%(request_id)s] | %(name)s:%(funcName)s:%(lineno)d - %(message)s"
    )
    handler.setFormatter(formatter)
    handler.addFilter(RequestIDFilter())
    logger.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
