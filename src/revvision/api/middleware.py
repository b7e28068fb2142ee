"""Middleware components for the API."""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Log one line per request with status and latency.

    Query strings are left out; the OAuth callback carries the
    authorization code there.
    """

    def __init__(self, app, *, slow_ms: int = 2000) -> None:
        super().__init__(app)
        self._slow_ms = slow_ms

    async def dispatch(self, request: Request, call_next) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        level = logging.WARNING if elapsed_ms >= self._slow_ms or response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "%s %s -> %d (%.0f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response


def setup_cors(app: FastAPI, origins: list[str]) -> None:
    """Add CORS middleware when a browser front end is served from elsewhere.

    Args:
        app: The FastAPI application instance
        origins: Explicit origins; credentials (the token cookie) rule out ``*``
    """
    if not origins:
        return
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )
