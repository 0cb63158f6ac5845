"""Per-request id propagated via contextvars for log correlation.

Default "-" keeps the log format stable outside HTTP requests (worker, scripts).
"""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar, Token

_request_id_var: ContextVar[str] = ContextVar("dashboard_request_id", default="-")


def new_request_id() -> str:
    return uuid.uuid4().hex[:12]


def set_request_id(request_id: str | None) -> Token:
    """Set request id for current context; returns token for reset."""
    rid = (request_id or "").strip()[:64] or new_request_id()
    return _request_id_var.set(rid)


def reset_request_id(token: Token) -> None:
    try:
        _request_id_var.reset(token)
    except ValueError:
        # Token created in another context (e.g. middleware cancelled mid-flight)
        return


def get_request_id() -> str:
    return _request_id_var.get()


class RequestIdFilter(logging.Filter):
    """Stamp every record with the current request id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True
