# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Shared fixtures: ASGI scope factory and a send recorder."""

from __future__ import annotations

import base64
from typing import Any, Callable

import pytest


class MockSend:
    """Mock ASGI send callable that records messages."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def __call__(self, message: dict[str, Any]) -> None:
        self.messages.append(message)

    @property
    def start_message(self) -> dict[str, Any]:
        return next(m for m in self.messages if m["type"] == "http.response.start")

    @property
    def status(self) -> int:
        return self.start_message["status"]

    @property
    def headers(self) -> dict[bytes, bytes]:
        """Get headers as dict."""
        return dict(self.start_message["headers"])

    @property
    def body(self) -> bytes:
        return b"".join(
            m.get("body", b"") for m in self.messages if m["type"] == "http.response.body"
        )


def basic_auth_header(username: str, password: str) -> tuple[bytes, bytes]:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return (b"authorization", f"Basic {token}".encode())


def make_scope(
    path: str = "/",
    method: str = "GET",
    headers: list[tuple[bytes, bytes]] | None = None,
    host: str | None = "example.com",
    scheme: str = "http",
    query_string: bytes = b"",
) -> dict[str, Any]:
    raw_headers = list(headers or [])
    if host is not None:
        raw_headers.append((b"host", host.encode()))
    return {
        "type": "http",
        "method": method,
        "scheme": scheme,
        "path": path,
        "query_string": query_string,
        "headers": raw_headers,
        "server": ("127.0.0.1", 8000),
        "client": ("10.0.0.1", 51000),
    }


async def mock_receive() -> dict[str, Any]:
    return {"type": "http.request", "body": b""}


@pytest.fixture
def send() -> MockSend:
    return MockSend()


@pytest.fixture
def receive() -> Callable[[], Any]:
    return mock_receive


@pytest.fixture
def http_scope() -> Callable[..., dict[str, Any]]:
    """Factory for HTTP scopes, see make_scope()."""
    return make_scope


@pytest.fixture
def basic_auth() -> Callable[[str, str], tuple[bytes, bytes]]:
    """Factory for a Basic Authorization header tuple."""
    return basic_auth_header
