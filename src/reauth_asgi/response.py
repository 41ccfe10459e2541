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
HTTP Response used as the "response sink" of failure handlers.

A failure handler receives an empty ``Response``, adds headers (and
optionally a body) and returns the status code. The middleware then stores
the status on the response and sends it through ASGI::

    response = Response()
    response.status_code = handler.handle(request, response)
    await response(scope, receive, send)

Response Methods
================
set_header(name, value)
    Add a response header (duplicates allowed).

get_header(name)
    First value of a header, case-insensitive.

set_body(content, media_type)
    Replace the body; updates content-type and content-length.

ensure_error_body()
    For status >= 400 without a body, write "<code> <phrase>" as text/plain.
"""

from __future__ import annotations

from collections.abc import Mapping
from http import HTTPStatus

from .types import Receive, Scope, Send

__all__ = ["Response"]

HeadersInput = Mapping[str, str] | list[tuple[str, str]] | None


def _normalize_headers(headers: HeadersInput) -> list[tuple[str, str]]:
    if headers is None:
        return []
    if isinstance(headers, list):
        return list(headers)
    return list(headers.items())


def status_phrase(status_code: int) -> str:
    """Return "401 Unauthorized" style text for a status code."""
    try:
        return f"{status_code} {HTTPStatus(status_code).phrase}"
    except ValueError:
        return str(status_code)


class Response:
    """
    Mutable HTTP response sent through the ASGI interface.

    Attributes:
        body: Encoded response body as bytes.
        status_code: HTTP status code.

    Example:
        >>> response = Response(status_code=401)
        >>> response.set_header("WWW-Authenticate", 'Basic realm="example.org"')
        >>> await response(scope, receive, send)
    """

    __slots__ = ("body", "status_code", "_headers")

    charset: str = "utf-8"

    def __init__(
        self,
        content: bytes | str | None = None,
        status_code: int = 200,
        headers: HeadersInput = None,
        media_type: str | None = None,
    ) -> None:
        self.status_code = status_code
        self._headers: list[tuple[str, str]] = _normalize_headers(headers)
        self.body = b""
        if content is not None or media_type is not None:
            self.set_body(content, media_type)

    @property
    def headers(self) -> list[tuple[str, str]]:
        """Response headers as (name, value) tuples, in insertion order."""
        return list(self._headers)

    def set_header(self, name: str, value: str) -> None:
        """Add a response header."""
        self._headers.append((name, value))

    def get_header(self, name: str) -> str | None:
        """First value of a response header (case-insensitive)."""
        name_lower = name.lower()
        for key, value in self._headers:
            if key.lower() == name_lower:
                return value
        return None

    def set_body(self, content: bytes | str | None, media_type: str | None = None) -> None:
        """Replace the body and refresh content-type/content-length headers."""
        if content is None:
            self.body = b""
        elif isinstance(content, bytes):
            self.body = content
        else:
            self.body = content.encode(self.charset)
        self._headers = [
            (name, value)
            for name, value in self._headers
            if name.lower() not in ("content-type", "content-length")
        ]
        if media_type is not None:
            if media_type.startswith("text/") and "charset" not in media_type:
                media_type = f"{media_type}; charset={self.charset}"
            self._headers.append(("content-type", media_type))

    def ensure_error_body(self) -> None:
        """Give error responses without a body a short plain-text body."""
        if self.status_code >= 400 and not self.body:
            self.set_body(status_phrase(self.status_code), "text/plain")

    def _build_headers(self) -> list[tuple[bytes, bytes]]:
        headers = [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in self._headers
            if name.lower() != "content-length"
        ]
        headers.append((b"content-length", str(len(self.body)).encode("latin-1")))
        return headers

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """
        ASGI application interface.

        Sends http.response.start and http.response.body messages.
        """
        await send(
            {
                "type": "http.response.start",
                "status": self.status_code,
                "headers": self._build_headers(),
            }
        )
        await send({"type": "http.response.body", "body": self.body})

    def __repr__(self) -> str:
        return f"Response(status_code={self.status_code}, headers={self._headers!r})"
