# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Simple backend: a static username -> password map.

Options string: one ``username=password`` pair per user::

    simple bob=secret,alice="pass,with,commas"

Checks HTTP Basic credentials. Passwords are compared in constant time.
"""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING

from . import Backend, BackendRegistry
from ..options import parse_options

if TYPE_CHECKING:
    from ..request import HttpRequest

__all__ = ["SimpleBackend", "register"]


class SimpleBackend(Backend):
    """Authenticate Basic credentials against an in-memory map."""

    backend_name = "simple"

    __slots__ = ("credentials",)

    def __init__(self, credentials: dict[str, str]) -> None:
        self.credentials = dict(credentials)

    @classmethod
    def from_options(cls, config: str) -> SimpleBackend:
        return cls(parse_options(config))

    async def authenticate(self, request: HttpRequest) -> bool:
        credentials = request.basic_auth()
        if credentials is None:
            return False
        username, password = credentials
        expected = self.credentials.get(username)
        if expected is None:
            return False
        return hmac.compare_digest(expected.encode("utf-8"), password.encode("utf-8"))


def register(registry: BackendRegistry) -> None:
    registry.register(SimpleBackend.backend_name, SimpleBackend.from_options)
