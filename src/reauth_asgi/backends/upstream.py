# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Upstream backend: ask another HTTP service whether the credentials are good.

Options:
    url       Endpoint checked with a GET (required).
    timeout   Request timeout (default ``1m``).
    insecure  Skip TLS certificate verification (default false).
    follow    Follow redirects (default false). When off, a redirect from
              the upstream is a backend error.
    cookies   Forward the client's cookies (default false).
    match     Regular expression. A 200 whose final URL matches it is
              treated as a denial (login page detection).

Example::

    upstream url=https://sso.example.com/check,timeout=5s,cookies=true
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import httpx

from . import Backend, BackendRegistry
from ._http import cookie_header, make_client
from ..exceptions import BackendError, MalformedOptions
from ..options import option_bool, option_duration, option_required, parse_options

if TYPE_CHECKING:
    from ..request import HttpRequest

__all__ = ["DEFAULT_TIMEOUT", "UpstreamBackend", "parse_url", "register"]

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


def parse_url(value: str) -> httpx.URL:
    """Parse an absolute http(s) URL option value."""
    try:
        url = httpx.URL(value)
    except (httpx.InvalidURL, TypeError) as exc:
        raise MalformedOptions(f"unable to parse url {value}: {exc}") from None
    if url.scheme not in ("http", "https") or not url.host:
        raise MalformedOptions(f"unable to parse url {value}: absolute http(s) url required")
    return url


class UpstreamBackend(Backend):
    """Forward Basic credentials (and optionally cookies) to an upstream URL."""

    backend_name = "upstream"

    __slots__ = ("url", "timeout", "follow", "cookies", "match", "_client")

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        insecure: bool = False,
        follow: bool = False,
        cookies: bool = False,
        match: str | re.Pattern[str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = parse_url(url)
        self.timeout = timeout
        self.follow = follow
        self.cookies = cookies
        self.match = re.compile(match) if isinstance(match, str) else match
        self._client = make_client(
            timeout, insecure=insecure, follow_redirects=follow, transport=transport
        )

    @classmethod
    def from_options(cls, config: str) -> UpstreamBackend:
        options = parse_options(config)
        match = options.get("match")
        if match is not None:
            try:
                match = re.compile(match)
            except re.error as exc:
                raise MalformedOptions(f"unable to parse match expression {match}: {exc}") from None
        return cls(
            option_required(options, "url"),
            timeout=option_duration(options, "timeout", DEFAULT_TIMEOUT),
            insecure=option_bool(options, "insecure"),
            follow=option_bool(options, "follow"),
            cookies=option_bool(options, "cookies"),
            match=match,
        )

    async def authenticate(self, request: HttpRequest) -> bool:
        credentials = request.basic_auth()
        if credentials is None and not self.cookies:
            return False

        headers = {}
        if self.cookies and request.cookies:
            headers["Cookie"] = cookie_header(request.cookies)

        try:
            response = await self._client.get(self.url, auth=credentials, headers=headers)
        except httpx.HTTPError as exc:
            raise BackendError(self.backend_name, f"request to {self.url} failed: {exc}") from exc

        if response.is_redirect and not self.follow:
            raise BackendError(self.backend_name, "follow redirects disabled")
        if response.status_code != 200:
            logger.debug("upstream %s answered %d", self.url, response.status_code)
            return False
        if self.match is not None and self.match.search(str(response.url)):
            logger.debug("upstream final url %s matches deny expression", response.url)
            return False
        return True

    async def aclose(self) -> None:
        await self._client.aclose()


def register(registry: BackendRegistry) -> None:
    registry.register(UpstreamBackend.backend_name, UpstreamBackend.from_options)
