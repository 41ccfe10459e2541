# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""LDAP backend: search the user under a base DN, then bind as that user.

Options:
    host          Directory server (required).
    port          Server port (default 389).
    tls           Upgrade the connection with StartTLS.
    simpleTls     Connect with LDAPS.
    insecure      Skip TLS certificate verification.
    timeout       Connect and operation timeout (default ``1m``).
    base          Search base, e.g. ``OU=Users,DC=example,DC=com`` (required).
    filter        Search filter, ``%s`` is the escaped username
                  (default ``(&(objectClass=user)(sAMAccountName=%s))``).
    bindUsername  Service account DN used for searching (required).
    bindPassword  Service account password (required).

Values holding commas (DNs, filters) must be quoted::

    ldap host=ldap.example.com,base="OU=Users,DC=example,DC=com",bindUsername="CN=svc,DC=example,DC=com",bindPassword=secret

The backend keeps one connection bound as the service account for
searches, opened on first use and shared by all requests behind a lock.
The user's password is checked on a separate short-lived connection so the
shared one never changes identity. Directory calls are blocking and run in
a worker thread.

The ldap3 client is an optional dependency (``pip install reauth-asgi[ldap]``).
"""

from __future__ import annotations

import asyncio
import logging
import math
import ssl
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

from . import Backend, BackendRegistry
from .upstream import DEFAULT_TIMEOUT
from ..exceptions import BackendError, ConfigError
from ..options import option_bool, option_duration, option_int, option_required, parse_options

if TYPE_CHECKING:
    from ..request import HttpRequest

__all__ = [
    "DEFAULT_FILTER",
    "DEFAULT_PORT",
    "Directory",
    "DirectoryError",
    "LDAPBackend",
    "escape_filter_value",
    "register",
]

logger = logging.getLogger(__name__)

DEFAULT_PORT = 389
DEFAULT_FILTER = "(&(objectClass=user)(sAMAccountName=%s))"

# RFC 4515 section 3
_FILTER_ESCAPES = {"\\": "\\5c", "*": "\\2a", "(": "\\28", ")": "\\29", "\x00": "\\00"}

_INVALID_CREDENTIALS = 49


def escape_filter_value(value: str) -> str:
    """Escape a value for inclusion in an LDAP search filter."""
    return "".join(_FILTER_ESCAPES.get(char, char) for char in value)


class DirectoryError(Exception):
    """Directory unreachable or answering with an unexpected result."""


class Directory(Protocol):
    """One open connection to the directory server."""

    def bind(self, user: str, password: str) -> bool:
        """Bind as user. False on invalid credentials, DirectoryError otherwise."""

    def search(self, base: str, search_filter: str, time_limit: int) -> list[str]:
        """Return the DNs of the entries matching search_filter under base."""

    def close(self) -> None: ...


DirectoryFactory = Callable[[], Directory]


class Ldap3Directory:
    """``Directory`` backed by an ldap3 connection."""

    def __init__(self, server: object, timeout: float, start_tls: bool) -> None:
        import ldap3
        from ldap3.core.exceptions import LDAPException

        self._ldap3 = ldap3
        self._errors = (LDAPException, OSError)
        self._conn = ldap3.Connection(
            server, receive_timeout=timeout, raise_exceptions=False, read_only=True
        )
        try:
            self._conn.open()
            if start_tls and not self._conn.start_tls():
                raise DirectoryError(f"StartTLS: {self._conn.result.get('description')}")
        except self._errors as exc:
            raise DirectoryError(f"connect to {server}: {exc}") from exc

    def bind(self, user: str, password: str) -> bool:
        self._conn.user = user
        self._conn.password = password
        try:
            if self._conn.bind():
                return True
        except self._errors as exc:
            raise DirectoryError(f"bind with {user!r}: {exc}") from exc
        result = self._conn.result or {}
        if result.get("result") == _INVALID_CREDENTIALS:
            return False
        raise DirectoryError(f"bind with {user!r}: {result.get('description')}")

    def search(self, base: str, search_filter: str, time_limit: int) -> list[str]:
        try:
            self._conn.search(
                base,
                search_filter,
                search_scope=self._ldap3.SUBTREE,
                dereference_aliases=self._ldap3.DEREF_NEVER,
                attributes=[],
                time_limit=time_limit,
            )
        except self._errors as exc:
            raise DirectoryError(f"search under {base!r} for {search_filter!r}: {exc}") from exc
        result = self._conn.result or {}
        # 32: noSuchObject, the base itself is missing
        if result.get("result") not in (0, 32):
            raise DirectoryError(
                f"search under {base!r} for {search_filter!r}: {result.get('description')}"
            )
        return [
            entry["dn"]
            for entry in self._conn.response or []
            if entry.get("type") == "searchResEntry"
        ]

    def close(self) -> None:
        try:
            self._conn.unbind()
        except self._errors as exc:
            logger.debug("ldap unbind failed: %s", exc)


def ldap3_factory(
    host: str,
    port: int = DEFAULT_PORT,
    tls: bool = False,
    simple_tls: bool = False,
    insecure: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
) -> DirectoryFactory:
    """Build a factory of ldap3-backed directory connections.

    Raises:
        ConfigError: If the ldap3 package is not installed.
    """
    try:
        import ldap3
    except ImportError:
        raise ConfigError(
            "the ldap backend requires the ldap3 package (pip install reauth-asgi[ldap])"
        ) from None

    tls_config = ldap3.Tls(validate=ssl.CERT_NONE if insecure else ssl.CERT_REQUIRED)
    server = ldap3.Server(
        host, port=port, use_ssl=simple_tls, tls=tls_config, connect_timeout=timeout
    )

    def factory() -> Directory:
        return Ldap3Directory(server, timeout, start_tls=tls and not simple_tls)

    return factory


class LDAPBackend(Backend):
    """Authenticate Basic credentials against an LDAP directory."""

    backend_name = "ldap"

    __slots__ = (
        "base",
        "filter",
        "bind_username",
        "bind_password",
        "timeout",
        "_factory",
        "_service",
        "_lock",
    )

    def __init__(
        self,
        directory_factory: DirectoryFactory,
        base: str,
        bind_username: str,
        bind_password: str,
        search_filter: str = DEFAULT_FILTER,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base = base
        self.filter = search_filter
        self.bind_username = bind_username
        self.bind_password = bind_password
        self.timeout = timeout
        self._factory = directory_factory
        self._service: Directory | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_options(cls, config: str) -> LDAPBackend:
        options = parse_options(config)
        host = option_required(options, "host")
        base = option_required(options, "base")
        bind_username = option_required(options, "bindUsername")
        bind_password = option_required(options, "bindPassword")
        timeout = option_duration(options, "timeout", DEFAULT_TIMEOUT)
        factory = ldap3_factory(
            host,
            port=option_int(options, "port", DEFAULT_PORT),
            tls=option_bool(options, "tls"),
            simple_tls=option_bool(options, "simpleTls"),
            insecure=option_bool(options, "insecure"),
            timeout=timeout,
        )
        return cls(
            factory,
            base,
            bind_username,
            bind_password,
            search_filter=options.get("filter") or DEFAULT_FILTER,
            timeout=timeout,
        )

    async def authenticate(self, request: HttpRequest) -> bool:
        credentials = request.basic_auth()
        if credentials is None or not credentials[1]:
            # An empty password would be an anonymous bind, which always succeeds
            return False
        return await asyncio.to_thread(self._check, *credentials)

    def _service_directory(self) -> Directory:
        # Caller holds self._lock
        if self._service is None:
            directory = self._factory()
            if not directory.bind(self.bind_username, self.bind_password):
                directory.close()
                raise DirectoryError(f"bind with {self.bind_username!r}: invalid credentials")
            self._service = directory
        return self._service

    def _drop_service(self) -> None:
        if self._service is not None:
            self._service.close()
            self._service = None

    def _check(self, username: str, password: str) -> bool:
        search_filter = self.filter.replace("%s", escape_filter_value(username))
        with self._lock:
            try:
                # LDAP time limits are whole seconds and 0 means unlimited
                entries = self._service_directory().search(
                    self.base, search_filter, max(1, math.ceil(self.timeout))
                )
            except (DirectoryError, OSError) as exc:
                self._drop_service()
                raise BackendError(self.backend_name, str(exc)) from exc

        if len(entries) != 1:
            logger.debug("ldap search returned %d entries", len(entries))
            return False

        try:
            directory = self._factory()
            try:
                return directory.bind(entries[0], password)
            finally:
                directory.close()
        except (DirectoryError, OSError) as exc:
            raise BackendError(self.backend_name, str(exc)) from exc

    async def aclose(self) -> None:
        with self._lock:
            self._drop_service()


def register(registry: BackendRegistry) -> None:
    registry.register(LDAPBackend.backend_name, LDAPBackend.from_options)
