# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Error handling middleware for ASGI applications.

Catches exceptions raised during request processing and converts them
to appropriate HTTP responses.

Exception handling:
    - Redirect: Returns 3xx redirect with Location header
    - HTTPException: Returns status code with detail message
    - Exception: Logged with traceback, returns 500 Internal Server Error

If the response has already started, the exception is logged and
re-raised: the server closes the connection.

Config:
    debug (bool): If True, include traceback in 500 responses. Default: False.

Example::

    [middleware]
    errors = true

    [errors_middleware]
    debug = true  # Show tracebacks in development only
"""

from __future__ import annotations

import logging
import traceback
from typing import TYPE_CHECKING, Any

from . import BaseMiddleware
from ..exceptions import HTTPException, Redirect
from ..response import Response

if TYPE_CHECKING:
    from ..types import ASGIApp, Message, Receive, Scope, Send

__all__ = ["ErrorMiddleware"]

logger = logging.getLogger(__name__)


class ErrorMiddleware(BaseMiddleware):
    """Error handling middleware for HTTP requests.

    Non-HTTP requests pass through unchanged.

    Attributes:
        debug: If True, include stack traces in 500 error responses.

    Class Attributes:
        middleware_name: "errors" - identifier for config.
        middleware_order: 100 - runs early to catch all errors.
        middleware_default: True - enabled by default.
    """

    middleware_name = "errors"
    middleware_order = 100
    middleware_default = True

    __slots__ = ("debug",)

    def __init__(self, app: ASGIApp, debug: bool = False, **kwargs: Any) -> None:
        super().__init__(app, **kwargs)
        self.debug = debug

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = False

        async def tracking_send(message: Message) -> None:
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
            await send(message)

        try:
            await self.app(scope, receive, tracking_send)
        except Exception as exc:
            if started:
                logger.exception(
                    "error after response started: %s %s", scope.get("method"), scope.get("path")
                )
                raise
            response = self._error_response(exc)
            await response(scope, receive, send)

    def _error_response(self, exc: Exception) -> Response:
        """Build the response for an exception.

        Exception priority: Redirect > HTTPException > generic Exception.
        """
        if isinstance(exc, Redirect):
            return Response(status_code=exc.status_code, headers=[("location", exc.url)])
        if isinstance(exc, HTTPException):
            response = Response(exc.detail or "", exc.status_code, exc.headers, "text/plain")
            response.ensure_error_body()
            return response

        logger.error("unhandled exception", exc_info=exc)
        body = "Internal Server Error"
        if self.debug:
            body += "\n\n" + "".join(traceback.format_exception(exc))
        return Response(body, 500, media_type="text/plain")
