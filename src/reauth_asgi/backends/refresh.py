# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Refresh backend: validate bearer tokens with an OAuth-style auth service.

Two calls are made against the auth service, both GET:

1. Token exchange. The backend trades its own refresh token for a service
   access token::

       <url><token_path>?grant_type=refresh_token&refresh_token=<refresh_token>

   The access token is read from the JSON reply under ``token_key``.

2. Check. The client's bearer token is validated::

       <url><check_path>?access_token=<client token>
       Authorization: Bearer <service access token>

   A 200 with a JSON object allows the request, 401/403 denies it. A
   401/403 first drops the cached service token and retries once with a
   freshly exchanged one, so a rotated service token recovers by itself.

Both results are cached for ``lifetime`` (only successes are cached, so a
revoked token is never served from cache after a failed check). With
``result_key`` set, the JSON object returned by the check is published to
downstream handlers as ``scope["reauth"][result_key]``.

Options:
    url            Base URL of the auth service (required).
    refresh_token  The backend's own refresh token (required).
    token_path     Token exchange path (default ``/access_token``).
    check_path     Token check path (default ``/security_context``).
    token_key      JSON key holding the access token (default ``jwt_token``).
    result_key     Publish the check reply under this key (optional).
    lifetime       Cache TTL (default ``3h``).
    cache_size     Maximum cached entries (default 1024).
    limit          Maximum JSON body size in bytes (default 1000).
    timeout        Request timeout (default ``1m``).
    insecure       Skip TLS certificate verification.
    cookies        Forward the client's cookies on the check call.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from typing import TYPE_CHECKING, Any

import httpx
from cachetools import TTLCache

from . import Backend, BackendRegistry
from ._http import cookie_header, make_client
from .upstream import DEFAULT_TIMEOUT, parse_url
from ..exceptions import BackendError, MalformedOptions
from ..options import (
    option_bool,
    option_duration,
    option_int,
    option_required,
    parse_options,
)

if TYPE_CHECKING:
    from ..request import HttpRequest

__all__ = ["RefreshBackend", "register"]

logger = logging.getLogger(__name__)

DEFAULT_LIFETIME = 3 * 3600.0
DEFAULT_CACHE_SIZE = 1024
DEFAULT_LIMIT = 1000


def _cache_key(kind: str, secret: str) -> str:
    return f"{kind}:{hashlib.sha256(secret.encode('utf-8')).hexdigest()}"


class RefreshBackend(Backend):
    backend_name = "refresh"

    __slots__ = (
        "url",
        "refresh_token",
        "token_path",
        "check_path",
        "token_key",
        "result_key",
        "limit",
        "cookies",
        "_cache",
        "_lock",
        "_client",
    )

    def __init__(
        self,
        url: str,
        refresh_token: str,
        token_path: str = "/access_token",
        check_path: str = "/security_context",
        token_key: str = "jwt_token",
        result_key: str | None = None,
        lifetime: float = DEFAULT_LIFETIME,
        cache_size: int = DEFAULT_CACHE_SIZE,
        limit: int = DEFAULT_LIMIT,
        timeout: float = DEFAULT_TIMEOUT,
        insecure: bool = False,
        cookies: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = str(parse_url(url)).rstrip("/")
        self.refresh_token = refresh_token
        self.token_path = token_path
        self.check_path = check_path
        self.token_key = token_key
        self.result_key = result_key
        self.limit = limit
        self.cookies = cookies
        self._cache: TTLCache[str, Any] = TTLCache(maxsize=cache_size, ttl=lifetime)
        self._lock = threading.Lock()
        self._client = make_client(timeout, insecure=insecure, transport=transport)

    @classmethod
    def from_options(cls, config: str) -> RefreshBackend:
        options = parse_options(config)
        cache_size = option_int(options, "cache_size", DEFAULT_CACHE_SIZE)
        if cache_size < 1:
            raise MalformedOptions(f"cache_size must be positive, got {cache_size}")
        lifetime = option_duration(options, "lifetime", DEFAULT_LIFETIME)
        if lifetime <= 0:
            raise MalformedOptions(f"lifetime must be positive, got {options['lifetime']}")
        return cls(
            option_required(options, "url"),
            option_required(options, "refresh_token"),
            token_path=options.get("token_path", "/access_token"),
            check_path=options.get("check_path", "/security_context"),
            token_key=options.get("token_key", "jwt_token"),
            result_key=options.get("result_key") or None,
            lifetime=lifetime,
            cache_size=cache_size,
            limit=option_int(options, "limit", DEFAULT_LIMIT),
            timeout=option_duration(options, "timeout", DEFAULT_TIMEOUT),
            insecure=option_bool(options, "insecure"),
            cookies=option_bool(options, "cookies"),
        )

    def _cached(self, key: str) -> Any:
        with self._lock:
            return self._cache.get(key)

    def _remember(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = value

    def _forget(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    async def _get_json(
        self, path: str, params: dict[str, str], headers: dict[str, str] | None = None
    ) -> tuple[int, dict[str, Any] | None]:
        """GET url+path and decode a bounded JSON object body.

        Returns (status, body). Body is None when the status is not 200.
        """
        url = self.url + path
        try:
            async with self._client.stream("GET", url, params=params, headers=headers) as response:
                if response.status_code != 200:
                    return response.status_code, None
                raw = bytearray()
                async for chunk in response.aiter_bytes():
                    raw.extend(chunk)
                    if len(raw) > self.limit:
                        raise BackendError(
                            self.backend_name, f"{url}: response body exceeds {self.limit} bytes"
                        )
        except httpx.HTTPError as exc:
            raise BackendError(self.backend_name, f"request to {url} failed: {exc}") from exc

        try:
            body = json.loads(raw)
        except ValueError as exc:
            raise BackendError(self.backend_name, f"{url}: invalid JSON reply") from exc
        if not isinstance(body, dict):
            raise BackendError(self.backend_name, f"{url}: JSON object expected")
        return 200, body

    async def service_token(self) -> str:
        """Access token for the backend itself, exchanged from the refresh token."""
        key = _cache_key("service", self.refresh_token)
        token = self._cached(key)
        if token is not None:
            return token

        status, body = await self._get_json(
            self.token_path,
            {"grant_type": "refresh_token", "refresh_token": self.refresh_token},
        )
        if body is None:
            raise BackendError(self.backend_name, f"token exchange failed with status {status}")
        token = body.get(self.token_key)
        if not isinstance(token, str) or not token:
            raise BackendError(self.backend_name, f"token exchange reply has no {self.token_key!r}")
        self._remember(key, token)
        return token

    async def _check(
        self, request: HttpRequest, client_token: str
    ) -> tuple[int, dict[str, Any] | None]:
        headers = {"Authorization": f"Bearer {await self.service_token()}"}
        if self.cookies and request.cookies:
            headers["Cookie"] = cookie_header(request.cookies)
        return await self._get_json(self.check_path, {"access_token": client_token}, headers)

    async def authenticate(self, request: HttpRequest) -> bool:
        client_token = request.bearer_token()
        if not client_token:
            return False

        key = _cache_key("client", client_token)
        context = self._cached(key)
        if context is None:
            status, context = await self._check(request, client_token)
            if status in (401, 403):
                # the service token may have been revoked or rotated: exchange it again, once
                self._forget(_cache_key("service", self.refresh_token))
                status, context = await self._check(request, client_token)
            if status in (401, 403):
                logger.debug("refresh check rejected client token with %d", status)
                return False
            if context is None:
                raise BackendError(self.backend_name, f"token check failed with status {status}")
            self._remember(key, context)

        if self.result_key:
            request.publish(self.result_key, context)
        return True

    async def aclose(self) -> None:
        await self._client.aclose()


def register(registry: BackendRegistry) -> None:
    registry.register(RefreshBackend.backend_name, RefreshBackend.from_options)
