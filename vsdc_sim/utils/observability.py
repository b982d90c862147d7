"""Request correlation and timing helpers shared by the API and core services."""

from __future__ import annotations

import contextvars
import logging
import re
import time
import uuid
from contextlib import contextmanager
from typing import Iterator

# Bound per HTTP request by the middleware in vsdc_sim.main.
request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "vsdc_request_id", default=None
)

# Echoed into headers and logs, so restricted to a short token charset.
_SAFE_REQUEST_ID = re.compile(r"[A-Za-z0-9._-]{1,64}", flags=re.ASCII)


def validate_request_id(value: object) -> str | None:
    """Returns value when it is a safe request id, else None."""
    if isinstance(value, str) and _SAFE_REQUEST_ID.fullmatch(value):
        return value
    return None


def new_request_id() -> str:
    return uuid.uuid4().hex


@contextmanager
def log_duration(logger: logging.Logger, operation: str, **fields: object) -> Iterator[None]:
    """Logs `op=<operation> duration_ms=<n> k=v ...` at DEBUG when the block exits.

    The bound request id, if any, is appended as `request_id=`.
    """
    started = time.perf_counter()
    try:
        yield
    finally:
        if logger.isEnabledFor(logging.DEBUG):
            rid = request_id_var.get()
            if rid is not None:
                fields.setdefault("request_id", rid)
            suffix = "".join(f" {k}={v}" for k, v in fields.items())
            logger.debug(
                "op=%s duration_ms=%.2f%s",
                operation,
                (time.perf_counter() - started) * 1000.0,
                suffix,
            )
