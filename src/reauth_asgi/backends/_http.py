# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Outbound HTTP plumbing shared by the HTTP-probing backends.

Each backend instance owns one pooled ``httpx.AsyncClient`` for its whole
life. The client never stores cookies: a Set-Cookie sent by the upstream
while checking one user's credentials must not ride along with the next
user's check.
"""

from __future__ import annotations

from collections.abc import Mapping
from http.cookiejar import CookieJar, DefaultCookiePolicy

import httpx

__all__ = ["cookie_header", "make_client"]


def _cookieless_jar() -> CookieJar:
    return CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


def make_client(
    timeout: float,
    insecure: bool = False,
    follow_redirects: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build the client a backend keeps for its outbound checks.

    Args:
        timeout: Per-request timeout in seconds (connect, read, write, pool).
        insecure: Skip TLS certificate verification.
        follow_redirects: Follow 3xx responses.
        transport: Custom transport (tests pass ``httpx.MockTransport``).
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        verify=not insecure,
        follow_redirects=follow_redirects,
        cookies=_cookieless_jar(),
        transport=transport,
    )


def cookie_header(cookies: Mapping[str, str]) -> str:
    """Serialize cookies back into a Cookie header value."""
    return "; ".join(f"{name}={value}" for name, value in cookies.items())
