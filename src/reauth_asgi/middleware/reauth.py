# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Reauth middleware: protect path prefixes with pluggable backends.

For each HTTP request the rule set picks the first rule protecting the
path (see ``reauth_asgi.rules``) and asks its backends in order:

- a backend allows: the request goes on to the wrapped application;
- every backend denies: the rule's failure handler answers
  (401 challenge, bare status, or redirect);
- a backend fails: bare ``500 Internal Server Error``. The failure
  handler is not called and no internal detail reaches the client.

Requests on unprotected paths and non-HTTP scopes pass through.

Values published by backends are available downstream as
``scope["reauth"]``. Backends are closed at lifespan shutdown.

Config:
    rules: A ``RuleSet``, block grammar text, or a list of rule tables.
    registry: Backend registry used to build rules from text or tables.
        Default: builtin backends.

Example::

    app = ReauthMiddleware(app, rules='''
        reauth {
            path /admin
            simple admin=secret
        }
    ''')
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from . import BaseMiddleware
from ..config import build_rules
from ..request import HttpRequest
from ..response import Response
from ..rules import Outcome, RuleSet

if TYPE_CHECKING:
    from ..backends import BackendRegistry
    from ..types import ASGIApp, Message, Receive, Scope, Send

__all__ = ["ReauthMiddleware"]

logger = logging.getLogger(__name__)


class ReauthMiddleware(BaseMiddleware):
    """Rule based request authentication.

    Attributes:
        rules: The immutable rule set, shared by every request.

    Class Attributes:
        middleware_name: "reauth" - identifier for config.
        middleware_order: 400 - authentication range.
        middleware_default: True - enabled by default.
    """

    middleware_name = "reauth"
    middleware_order = 400
    middleware_default = True

    __slots__ = ("rules",)

    def __init__(
        self,
        app: ASGIApp,
        rules: Any = None,
        registry: BackendRegistry | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(app, **kwargs)
        if rules is None:
            logger.warning("reauth middleware enabled without rules, every request passes")
            rules = RuleSet()
        self.rules = build_rules(rules, registry)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self.app(scope, self._closing_receive(receive), send)
            return
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = HttpRequest(scope)
        response = Response()
        evaluation = await self.rules.evaluate(request, response)

        if evaluation.outcome is Outcome.FORWARD:
            await self.app(scope, receive, send)
            return

        if evaluation.outcome is Outcome.ERROR:
            response = Response(status_code=500)
        else:
            response.status_code = evaluation.status_code or 401
        response.ensure_error_body()
        await response(scope, receive, send)

    def _closing_receive(self, receive: Receive) -> Receive:
        """Wrap receive so backends are closed when shutdown is announced."""

        async def wrapper() -> Message:
            message = await receive()
            if message["type"] == "lifespan.shutdown":
                await self.aclose()
            return message

        return wrapper

    async def aclose(self) -> None:
        """Release the resources held by every backend."""
        for backend in self.rules.backends():
            await backend.aclose()
