# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Case-insensitive request headers and the header grammars reauth reads.

ASGI provides headers as ``list[tuple[bytes, bytes]]`` in Latin-1. Backends
only ever read a handful of them (Authorization, Cookie, Host,
X-Forwarded-Proto), so this module keeps a small immutable ``Headers``
view plus parsers for the two structured values that matter:

- ``parse_authorization()``: ``"Basic dXNlcjpwdw=="`` -> ``("basic", "dXNlcjpwdw==")``
- ``parse_cookies()``: ``"a=1; b=2"`` -> ``{"a": "1", "b": "2"}``

Example::

    headers = Headers([(b"Authorization", b"Bearer tk_1"), (b"Cookie", b"sid=42")])
    headers.get("authorization")           # "Bearer tk_1"
    parse_cookies(headers.get("cookie"))   # {"sid": "42"}
"""

from collections.abc import Mapping
from typing import Any, Iterator

__all__ = ["Headers", "headers_from_scope", "parse_authorization", "parse_cookies"]


class Headers:
    """
    Immutable, case-insensitive HTTP headers with multi-value support.

    Names are normalized to lowercase, values are preserved.

    Example:
        >>> headers = Headers([(b"Cookie", b"a=1"), (b"cookie", b"b=2")])
        >>> headers.getlist("COOKIE")
        ['a=1', 'b=2']
    """

    __slots__ = ("_headers",)

    def __init__(self, raw_headers: list[tuple[bytes, bytes]]) -> None:
        self._headers: list[tuple[str, str]] = [
            (name.decode("latin-1").lower(), value.decode("latin-1"))
            for name, value in raw_headers
        ]

    def get(self, key: str, default: str | None = None) -> str | None:
        """Return the first value for ``key`` (case-insensitive), or default."""
        key_lower = key.lower()
        for name, value in self._headers:
            if name == key_lower:
                return value
        return default

    def getlist(self, key: str) -> list[str]:
        """Return every value for ``key`` in arrival order."""
        key_lower = key.lower()
        return [value for name, value in self._headers if name == key_lower]

    def items(self) -> list[tuple[str, str]]:
        return list(self._headers)

    def __getitem__(self, key: str) -> str:
        value = self.get(key)
        if value is None:
            raise KeyError(key)
        return value

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        return self.get(key) is not None

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for name, _ in self._headers:
            if name not in seen:
                seen.add(name)
                yield name

    def __len__(self) -> int:
        return len(self._headers)

    def __repr__(self) -> str:
        return f"Headers({self._headers!r})"


def headers_from_scope(scope: Mapping[str, Any]) -> Headers:
    """Create Headers from an ASGI scope (empty if the scope has none)."""
    return Headers(scope.get("headers", []))


def parse_authorization(value: str | None) -> tuple[str, str] | None:
    """
    Split an Authorization header into (scheme, credentials).

    The scheme is lowercased. Returns None if the header is missing or has
    no credentials part.

    Example:
        >>> parse_authorization("Bearer  tk_abc")
        ('bearer', 'tk_abc')
        >>> parse_authorization("Bearer") is None
        True
    """
    if not value:
        return None
    scheme, _, credentials = value.strip().partition(" ")
    credentials = credentials.strip()
    if not scheme or not credentials:
        return None
    return scheme.lower(), credentials


def parse_cookies(*values: str | None) -> dict[str, str]:
    """
    Parse one or more Cookie header values into a dict.

    Pairs without ``=`` are ignored. On duplicate names the first wins,
    like browsers send the most specific cookie first.
    """
    cookies: dict[str, str] = {}
    for value in values:
        if not value:
            continue
        for chunk in value.split(";"):
            name, sep, cookie_value = chunk.partition("=")
            name = name.strip()
            if not sep or not name:
                continue
            cookies.setdefault(name, cookie_value.strip().strip('"'))
    return cookies
