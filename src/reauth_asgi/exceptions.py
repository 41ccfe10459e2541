# Copyright 2025 Softwell S.r.l.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Exception classes for reauth-asgi.

Three families of errors exist, matching the three moments at which
something can go wrong:

1. Configuration errors (``ConfigError`` and subclasses) are raised while
   rules are built, before the server accepts traffic. They carry an
   optional source location so the operator can find the offending line.
2. Backend communication errors (``BackendError``) are raised by a backend
   from ``authenticate()`` when it could not reach a verdict (upstream
   unreachable, TLS failure, malformed reply). They abort the evaluation
   of the current request, which is answered with a bare 500.
3. HTTP exceptions (``HTTPException`` and subclasses) can be raised by any
   ASGI handler and are turned into responses by ``ErrorMiddleware``.

A negative authentication result is NOT an exception: backends return
``False`` for absent, malformed or rejected credentials.

Configuration errors
--------------------
::

    ConfigError
    ├── MalformedOptions     options string cannot be parsed
    ├── DuplicateBackend     backend name registered twice
    ├── UnknownBackend       backend name not registered
    ├── ArgumentCountError   wrong number of directive arguments
    └── DuplicateFailure     more than one failure directive in a rule

Example:
    >>> raise ConfigError("at least one path is required", filename="reauth.conf", line=3)
    >>> str(_)
    'reauth.conf:3 - at least one path is required'
"""

from __future__ import annotations

__all__ = [
    "ArgumentCountError",
    "BackendError",
    "ConfigError",
    "DuplicateBackend",
    "DuplicateFailure",
    "HTTPException",
    "HTTPForbidden",
    "HTTPUnauthorized",
    "MalformedOptions",
    "Redirect",
    "UnknownBackend",
]


class HTTPException(Exception):
    """
    HTTP exception with status code and detail.

    Raise this in handlers to return an HTTP error response.
    ``ErrorMiddleware`` catches it and converts it to a response with the
    given status code, detail, and headers.

    Attributes:
        status_code: HTTP status code (expected 4xx or 5xx, not validated)
        detail: Error detail message
        headers: Response headers as list of tuples (supports duplicate names)

    Example:
        >>> raise HTTPException(404, detail="User not found")
        >>> raise HTTPException(401, headers={"WWW-Authenticate": 'Basic realm="api"'})
    """

    def __init__(
        self,
        status_code: int,
        detail: str = "",
        headers: dict[str, str] | list[tuple[str, str]] | None = None,
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        if headers is None:
            self.headers: list[tuple[str, str]] | None = None
        elif isinstance(headers, dict):
            self.headers = list(headers.items())
        else:
            self.headers = list(headers)
        super().__init__(detail)

    def __repr__(self) -> str:
        return f"HTTPException(status_code={self.status_code}, detail={self.detail!r})"


class Redirect(HTTPException):
    """HTTP redirect exception. Raises 302 redirect by default."""

    def __init__(self, url: str, status_code: int = 302) -> None:
        super().__init__(status_code, headers={"Location": url})
        self.url = url

    def __repr__(self) -> str:
        return f"Redirect(url={self.url!r}, status_code={self.status_code})"


class HTTPUnauthorized(HTTPException):
    """HTTP 401 Unauthorized exception."""

    def __init__(self, detail: str = "Unauthorized") -> None:
        super().__init__(401, detail=detail)


class HTTPForbidden(HTTPException):
    """HTTP 403 Forbidden exception."""

    def __init__(self, detail: str = "Forbidden") -> None:
        super().__init__(403, detail=detail)


class ConfigError(Exception):
    """
    Configuration error, fatal at startup.

    Attributes:
        message: Error message without location.
        filename: Source file name, if known.
        line: 1-based source line, if known.
    """

    def __init__(self, message: str, filename: str | None = None, line: int | None = None) -> None:
        self.message = message
        self.filename = filename
        self.line = line
        super().__init__(message)

    def at(self, filename: str | None, line: int | None) -> "ConfigError":
        """Fill in the parts of the source location still unknown. Returns self."""
        if self.filename is None:
            self.filename = filename
        if self.line is None:
            self.line = line
        return self

    def __str__(self) -> str:
        if self.line is None:
            if self.filename:
                return f"{self.filename} - {self.message}"
            return self.message
        return f"{self.filename or '<config>'}:{self.line} - {self.message}"


class MalformedOptions(ConfigError):
    """Options string cannot be parsed, or an option value is invalid."""


class DuplicateBackend(ConfigError):
    """A backend name was registered twice."""


class UnknownBackend(ConfigError):
    """A rule refers to a backend name that is not registered."""


class ArgumentCountError(ConfigError):
    """A directive received the wrong number of arguments."""


class DuplicateFailure(ConfigError):
    """A rule declares more than one failure handler."""


class BackendError(Exception):
    """
    Communication or infrastructure failure inside a backend.

    Never means "credentials rejected"; it means the backend could not
    decide. The evaluation of the current request stops and the client
    receives a 500.

    Attributes:
        backend: Name of the backend that failed.
    """

    def __init__(self, backend: str, message: str) -> None:
        self.backend = backend
        super().__init__(f"{backend}: {message}")

    def __repr__(self) -> str:
        return f"BackendError(backend={self.backend!r}, message={str(self)!r})"
