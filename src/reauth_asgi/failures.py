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
Failure handlers: what a protected request gets when no backend allows it.

A handler writes headers (and possibly a body) on the response it is given
and returns the status code to send. It never raises at request time; all
validation happens when the handler is built, including that every header
value it will emit can be encoded as latin-1.

Available handlers
==================
basicauth [realm=<realm>]
    ``401`` with ``WWW-Authenticate: Basic realm="<realm>"``. Without a
    realm the request host is used. Default handler of every rule.
    The realm must be latin-1 text without quotes or control characters.

status [code=<code>]
    Bare status code, ``401`` by default.

redirect target=<url>[,code=<code>]
    Redirect to ``target`` (``302`` by default). ``{uri}`` in the target
    is replaced by the URL-escaped request URI. When the target points to
    another host, the URI includes scheme and host so the login page can
    send the user back.
    Non-ASCII characters in the target are percent-encoded as UTF-8.

Example::

    handler = build_failure("redirect", "target=https://login.example.com/?next={uri}")
    response = Response()
    response.status_code = handler.handle(request, response)
"""

from __future__ import annotations

import html
import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING
from urllib.parse import quote, quote_plus, urlsplit

from .exceptions import ConfigError, MalformedOptions
from .options import option_int, parse_options
from .response import status_phrase

if TYPE_CHECKING:
    from .request import HttpRequest
    from .response import Response

__all__ = [
    "FAILURE_HANDLERS",
    "BasicAuthFailure",
    "FailureHandler",
    "RedirectFailure",
    "StatusFailure",
    "build_failure",
]

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_NON_ASCII = re.compile(r"[^\x00-\x7f]+")


class FailureHandler(ABC):
    """Produces the response for a request no backend allowed."""

    failure_name: str = ""

    __slots__ = ()

    @abstractmethod
    def handle(self, request: HttpRequest, response: Response) -> int:
        """Write headers/body on response and return the status code."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class BasicAuthFailure(FailureHandler):
    """Challenge the client for HTTP Basic credentials."""

    failure_name = "basicauth"

    __slots__ = ("realm",)

    def __init__(self, realm: str = "") -> None:
        try:
            realm.encode("latin-1")
        except UnicodeEncodeError:
            raise MalformedOptions(f"realm {realm!r} is not latin-1 text") from None
        if '"' in realm or _CONTROL_CHARS.search(realm):
            raise MalformedOptions(f"realm {realm!r} contains quotes or control characters")
        self.realm = realm

    @classmethod
    def from_options(cls, config: str) -> BasicAuthFailure:
        if not config:
            return cls()
        return cls(parse_options(config).get("realm", ""))

    def handle(self, request: HttpRequest, response: Response) -> int:
        realm = self.realm or request.host
        response.set_header("WWW-Authenticate", f'Basic realm="{realm}"')
        return 401

    def __repr__(self) -> str:
        return f"<BasicAuthFailure realm={self.realm!r}>"


class StatusFailure(FailureHandler):
    """Answer with a fixed status code."""

    failure_name = "status"

    __slots__ = ("code",)

    def __init__(self, code: int = 401) -> None:
        self.code = code

    @classmethod
    def from_options(cls, config: str) -> StatusFailure:
        if not config:
            return cls()
        return cls(option_int(parse_options(config), "code", 401))

    def handle(self, request: HttpRequest, response: Response) -> int:
        return self.code

    def __repr__(self) -> str:
        return f"<StatusFailure code={self.code}>"


class RedirectFailure(FailureHandler):
    """Redirect to a login page, optionally carrying the original URI."""

    failure_name = "redirect"

    __slots__ = ("target", "code", "_target_host")

    def __init__(self, target: str, code: int = 302) -> None:
        if _CONTROL_CHARS.search(target):
            raise MalformedOptions(f"unable to parse target {target!r}: control characters")
        target = _NON_ASCII.sub(lambda match: quote(match.group()), target)
        try:
            parts = urlsplit(target)
        except ValueError as exc:
            raise MalformedOptions(f"unable to parse target {target}: {exc}") from None
        if not parts.scheme and "://" in target:
            raise MalformedOptions(f"unable to parse target {target}: missing protocol scheme")
        self.target = target
        self.code = code
        self._target_host = parts.netloc.rpartition("@")[2]

    @classmethod
    def from_options(cls, config: str) -> RedirectFailure:
        if not config:
            raise ConfigError("configuration required")
        options = parse_options(config)
        if "target" not in options:
            raise ConfigError("target url required")
        return cls(options["target"], option_int(options, "code", 302))

    def location(self, request: HttpRequest) -> str:
        """Target URL with ``{uri}`` substituted for this request."""
        uri = request.uri
        host = request.host
        if self._target_host and self._target_host != host:
            scheme = "https" if request.is_tls else "http"
            uri = f"{scheme}://{host}{uri}"
        return self.target.replace("{uri}", quote_plus(uri))

    def handle(self, request: HttpRequest, response: Response) -> int:
        location = self.location(request)
        response.set_header("Location", location)
        if request.method in ("GET", "HEAD"):
            phrase = status_phrase(self.code).partition(" ")[2] or str(self.code)
            response.set_body(f'<a href="{html.escape(location)}">{phrase}</a>.\n', "text/html")
        return self.code

    def __repr__(self) -> str:
        return f"<RedirectFailure target={self.target!r} code={self.code}>"


FAILURE_HANDLERS: dict[str, Callable[[str], FailureHandler]] = {
    BasicAuthFailure.failure_name: BasicAuthFailure.from_options,
    StatusFailure.failure_name: StatusFailure.from_options,
    RedirectFailure.failure_name: RedirectFailure.from_options,
}


def build_failure(name: str, config: str = "") -> FailureHandler:
    """
    Build a failure handler by name.

    Raises:
        ConfigError: Unknown handler name or invalid options.
    """
    try:
        constructor = FAILURE_HANDLERS[name]
    except KeyError:
        raise ConfigError(f"unknown failure handler {name}") from None
    return constructor(config)
