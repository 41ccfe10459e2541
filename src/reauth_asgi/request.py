# Copyright 2025 Softwell S.r.l.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Read-only view of an ASGI HTTP request for backends and failure handlers.

Backends never touch the raw scope: they receive an ``HttpRequest`` that
exposes exactly what authentication needs (path, host, scheme, headers,
cookies, credentials). The only write a backend may perform is
``publish()``, which exposes a value to downstream handlers through
``scope["reauth"]``.

The request body is never read, so ``receive`` stays untouched for the
next application in the chain.

Example::

    request = HttpRequest(scope)
    credentials = request.basic_auth()
    if credentials is None:
        return False
    username, password = credentials
"""

from __future__ import annotations

import base64
import binascii
from typing import Any
from urllib.parse import quote

from .datastructures import Headers, headers_from_scope, parse_authorization, parse_cookies
from .types import Scope

__all__ = ["HttpRequest", "SCOPE_KEY"]

SCOPE_KEY = "reauth"

_DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443}


class HttpRequest:
    """HTTP request adapter wrapping an ASGI scope."""

    __slots__ = ("_scope", "_headers", "_cookies")

    def __init__(self, scope: Scope) -> None:
        self._scope = scope
        self._headers: Headers | None = None
        self._cookies: dict[str, str] | None = None

    @property
    def scope(self) -> Scope:
        """Raw ASGI scope dict."""
        return self._scope

    @property
    def method(self) -> str:
        return str(self._scope.get("method", "GET")).upper()

    @property
    def path(self) -> str:
        """Decoded request path (e.g., '/users/42')."""
        return str(self._scope.get("path", "/")) or "/"

    @property
    def query_string(self) -> str:
        raw = self._scope.get("query_string", b"")
        if isinstance(raw, bytes):
            return raw.decode("latin-1")
        return str(raw)

    @property
    def uri(self) -> str:
        """
        Request URI as sent on the wire: escaped path plus query string.

        Uses ``raw_path`` when the server provides it, otherwise re-quotes
        the decoded path.
        """
        raw_path = self._scope.get("raw_path")
        if raw_path:
            path = raw_path.decode("latin-1")
        else:
            path = quote(self.path, safe="/:@!$&'()*+,;=-._~")
        query = self.query_string
        return f"{path}?{query}" if query else path

    @property
    def headers(self) -> Headers:
        """Request headers (case-insensitive)."""
        if self._headers is None:
            self._headers = headers_from_scope(self._scope)
        return self._headers

    @property
    def cookies(self) -> dict[str, str]:
        if self._cookies is None:
            self._cookies = parse_cookies(*self.headers.getlist("cookie"))
        return self._cookies

    @property
    def scheme(self) -> str:
        """URL scheme as seen by the ASGI server: http or https."""
        return str(self._scope.get("scheme", "http"))

    @property
    def is_tls(self) -> bool:
        """True if the request arrived over TLS or through a TLS-terminating proxy."""
        if self.scheme in ("https", "wss"):
            return True
        forwarded = self.headers.get("x-forwarded-proto", "") or ""
        return forwarded.strip().lower() == "https"

    @property
    def host(self) -> str:
        """
        Host the client addressed, as in the Host header.

        Falls back to the server address (port omitted when default).
        """
        host = self.headers.get("host")
        if host:
            return host
        server = self._scope.get("server")
        if not server:
            return ""
        name, port = server[0], server[1]
        if port is None or _DEFAULT_PORTS.get(self.scheme) == port:
            return str(name)
        return f"{name}:{port}"

    def authorization(self) -> tuple[str, str] | None:
        """(scheme, credentials) from the Authorization header, scheme lowercased."""
        return parse_authorization(self.headers.get("authorization"))

    def basic_auth(self) -> tuple[str, str] | None:
        """
        Decode HTTP Basic credentials.

        Returns:
            (username, password), or None if the header is missing, uses
            another scheme, is not valid base64, or has no colon.
        """
        auth = self.authorization()
        if auth is None or auth[0] != "basic":
            return None
        try:
            decoded = base64.b64decode(auth[1], validate=True).decode("utf-8")
        except (binascii.Error, ValueError, UnicodeDecodeError):
            return None
        username, sep, password = decoded.partition(":")
        if not sep:
            return None
        return username, password

    def bearer_token(self) -> str | None:
        """Bearer token from the Authorization header, or None if absent or malformed."""
        auth = self.authorization()
        if auth is None or auth[0] != "bearer" or len(auth[1].split()) != 1:
            return None
        return auth[1]

    def publish(self, key: str, value: Any) -> None:
        """Expose a value to downstream handlers as scope["reauth"][key]."""
        self._scope.setdefault(SCOPE_KEY, {})[key] = value

    def __repr__(self) -> str:
        return f"<HttpRequest method={self.method} path={self.path!r} host={self.host!r}>"
