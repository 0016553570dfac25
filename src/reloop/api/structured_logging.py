# src/reloop/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from reloop.runtime.event_logging import log_event

Json = Dict[str, Any]


def _truthy(v: str | None) -> bool:
    if v is None:
        return False
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def _registry_seq(request: Request) -> Optional[int]:
    reg = getattr(request.app.state, "registry", None)
    return reg.last_seq() if reg is not None else None


def configure_structured_logging() -> None:
    """Configure stdlib logging for JSONL output (stdout).

    - Level from RELOOP_LOG_LEVEL (default INFO).
    - Safe to call multiple times.
    """
    level_name = (os.environ.get("RELOOP_LOG_LEVEL") or "INFO").strip().upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if getattr(root, "_reloop_configured", False):  # type: ignore[attr-defined]
        root.setLevel(level)
        return

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root.handlers = [handler]
    root.setLevel(level)
    setattr(root, "_reloop_configured", True)  # type: ignore[attr-defined]


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One JSONL line per request.

    Note routes also log the token_id they addressed, and every line carries
    the registry event seq before and after the request, so a mutation can be
    matched to the events it appended.

    Controls:
      - RELOOP_LOG_REQUESTS=0 to disable (default on)
      - RELOOP_LOG_REQUEST_HEADERS=1 to include a small header subset
    """

    def __init__(self, app, *, enabled: bool = True) -> None:
        super().__init__(app)
        self._enabled = bool(enabled)
        self._log_headers = _truthy(os.environ.get("RELOOP_LOG_REQUEST_HEADERS"))
        self._logger = logging.getLogger("reloop.http")

    def _header_subset(self, request: Request) -> Json:
        if not self._log_headers:
            return {}
        out: Json = {}
        for k in ["user-agent", "content-type", "content-length", "x-forwarded-for"]:
            v = request.headers.get(k)
            if v:
                out[k] = v
        return out

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        seq_before = _registry_seq(request)

        status = 500
        err: Optional[str] = None
        response: Optional[Response] = None

        try:
            response = await call_next(request)
            status = int(getattr(response, "status_code", 200) or 200)
            response.headers.setdefault("x-request-id", request_id)
            return response
        except Exception as e:
            err = str(e)
            raise
        finally:
            log_event(
                self._logger,
                "http_request",
                request_id=request_id,
                method=request.method,
                path=str(request.url.path or ""),
                status=status,
                token_id=(request.scope.get("path_params") or {}).get("token_id"),
                seq_before=seq_before,
                seq_after=_registry_seq(request),
                duration_ms=int((time.monotonic() - started) * 1000),
                client=str(request.client.host) if request.client else "",
                headers=self._header_subset(request),
                error=err,
            )
