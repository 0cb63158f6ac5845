"""Centralized logging for the dashboard backend.

- logging.basicConfig once, level from LOG_LEVEL (default INFO)
- logger name: 'dashboard'
- every line carries the request id (see core.request_context)
"""

from __future__ import annotations

import logging
import os

from core.request_context import RequestIdFilter

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [rid=%(request_id)s] %(message)s"

_level = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()

logging.basicConfig(level=_level, format=LOG_FORMAT)

# Filter on the handlers so records from any logger get request_id
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdFilter())

logger = logging.getLogger("dashboard")
logger.setLevel(_level)
