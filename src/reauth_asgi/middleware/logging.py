# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Logging Middleware - HTTP access logging.

Logs incoming requests and outgoing responses with timing information.
Placed before the reauth middleware in the chain, it also records the
401/302/500 answers produced by failed authentication.

Log format:
    Request:  "<- GET /private from 192.168.1.1"
    Response: "-> GET /private 401 (3.2ms)"
    Error:    "-> GET /private ERROR: ... (3.2ms)"

The Authorization and Cookie headers are never logged.

Config:
    logger_name (str): Logger name. Default: "reauth_asgi.access".
    level (str): Log level (DEBUG, INFO, WARNING, ERROR). Default: "INFO".
    include_headers (bool): Include request headers in DEBUG log. Default: False.
    include_query (bool): Include query string in request log. Default: True.

Example::

    [middleware]
    logging = true

    [logging_middleware]
    logger_name = "myapp.access"
    level = "DEBUG"
    include_headers = true
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from . import BaseMiddleware, headers_dict

if TYPE_CHECKING:
    from ..types import ASGIApp, Message, Receive, Scope, Send

__all__ = ["LoggingMiddleware"]

_SECRET_HEADERS = frozenset({"authorization", "cookie", "proxy-authorization"})


class LoggingMiddleware(BaseMiddleware):
    """Access logging middleware for HTTP requests.

    Attributes:
        logger: Python Logger instance for access logs.
        level: Numeric log level (from logging module).
        include_headers: Whether to log request headers (at DEBUG level).
        include_query: Whether to include query string in request path.

    Class Attributes:
        middleware_name: "logging" - identifier for config.
        middleware_order: 200 - runs early to capture full request timing.
        middleware_default: False - disabled by default.
    """

    middleware_name = "logging"
    middleware_order = 200
    middleware_default = False

    __slots__ = ("logger", "level", "include_headers", "include_query")

    def __init__(
        self,
        app: ASGIApp,
        logger_name: str = "reauth_asgi.access",
        level: str = "INFO",
        include_headers: bool = False,
        include_query: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(app, **kwargs)
        self.logger = logging.getLogger(logger_name)
        self.level = getattr(logging, level.upper(), logging.INFO)
        self.include_headers = include_headers
        self.include_query = include_query

    @headers_dict
    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Process request with access logging.

        Non-HTTP requests pass through without logging. Exceptions are
        logged with ERROR level before re-raising.
        """
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        method = scope.get("method", "?")
        path = scope.get("path", "/")
        query = scope.get("query_string", b"").decode("latin-1")

        request_info = f"{method} {path}"
        if self.include_query and query:
            request_info += f"?{query}"

        client = scope.get("client")
        client_ip = client[0] if client else "unknown"

        self.logger.log(self.level, "<- %s from %s", request_info, client_ip)

        if self.include_headers:
            headers = {
                name: ("***" if name in _SECRET_HEADERS else value)
                for name, value in scope["_headers"].items()
            }
            self.logger.debug("   Headers: %s", headers)

        status_code: int = 0

        async def send_with_logging(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
            await send(message)

        try:
            await self.app(scope, receive, send_with_logging)
        except Exception as e:
            duration = (time.perf_counter() - start_time) * 1000
            self.logger.error("-> %s ERROR: %s (%.1fms)", request_info, e, duration)
            raise

        duration = (time.perf_counter() - start_time) * 1000
        self.logger.log(self.level, "-> %s %d (%.1fms)", request_info, status_code, duration)
