# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Tests for the backend registry and the simple backend."""

import pytest

from reauth_asgi.backends import Backend, BackendRegistry
from reauth_asgi.backends.simple import SimpleBackend
from reauth_asgi.exceptions import ConfigError, DuplicateBackend, MalformedOptions, UnknownBackend
from reauth_asgi.request import HttpRequest


class AlwaysBackend(Backend):
    backend_name = "always"

    async def authenticate(self, request: HttpRequest) -> bool:
        return True


class TestBackendRegistry:
    """Tests for BackendRegistry."""

    def test_register_and_lookup(self) -> None:
        """A registered constructor is returned by lookup."""
        registry = BackendRegistry()
        constructor = lambda config: AlwaysBackend()  # noqa: E731
        registry.register("always", constructor)

        assert registry.lookup("always") is constructor
        assert "always" in registry
        assert len(registry) == 1

    def test_duplicate_name(self) -> None:
        """Registering a name twice fails."""
        registry = BackendRegistry()
        registry.register("always", lambda config: AlwaysBackend())

        with pytest.raises(DuplicateBackend, match="already in use: always"):
            registry.register("always", lambda config: AlwaysBackend())

    def test_unknown_name(self) -> None:
        """Looking up a missing name fails."""
        with pytest.raises(UnknownBackend, match="unknown backend nope"):
            BackendRegistry().lookup("nope")

    def test_registry_errors_are_config_errors(self) -> None:
        with pytest.raises(ConfigError):
            BackendRegistry().lookup("nope")

    def test_fresh_registries_are_independent(self) -> None:
        """Registries are values, not a process-wide singleton."""
        first = BackendRegistry()
        second = BackendRegistry()
        first.register("always", lambda config: AlwaysBackend())

        assert "always" in first
        assert "always" not in second

    def test_with_builtins(self) -> None:
        """Builtin backends self-register."""
        registry = BackendRegistry.with_builtins()

        assert registry.names() == ["gitlabci", "ldap", "refresh", "simple", "upstream"]

    def test_with_builtins_twice(self) -> None:
        """Each call builds a new registry, so builtins never collide."""
        assert len(BackendRegistry.with_builtins()) == len(BackendRegistry.with_builtins())

    def test_builtin_constructor_builds_backend(self) -> None:
        backend = BackendRegistry.with_builtins().lookup("simple")("bob=secret")

        assert isinstance(backend, SimpleBackend)
        assert backend.backend_name == "simple"


class TestSimpleBackend:
    """Tests for SimpleBackend."""

    @pytest.fixture
    def backend(self) -> SimpleBackend:
        return SimpleBackend.from_options("bob=secret")

    @pytest.mark.asyncio
    async def test_valid_credentials(self, backend, http_scope, basic_auth) -> None:
        request = HttpRequest(http_scope(headers=[basic_auth("bob", "secret")]))
        assert await backend.authenticate(request) is True

    @pytest.mark.asyncio
    async def test_wrong_password(self, backend, http_scope, basic_auth) -> None:
        request = HttpRequest(http_scope(headers=[basic_auth("bob", "wrong")]))
        assert await backend.authenticate(request) is False

    @pytest.mark.asyncio
    async def test_unknown_user(self, backend, http_scope, basic_auth) -> None:
        request = HttpRequest(http_scope(headers=[basic_auth("alice", "secret")]))
        assert await backend.authenticate(request) is False

    @pytest.mark.asyncio
    async def test_no_credentials(self, backend, http_scope) -> None:
        assert await backend.authenticate(HttpRequest(http_scope())) is False

    @pytest.mark.asyncio
    async def test_malformed_authorization(self, backend, http_scope) -> None:
        """Garbage in the Authorization header is a denial, not an error."""
        request = HttpRequest(http_scope(headers=[(b"authorization", b"Basic !!!notbase64")]))
        assert await backend.authenticate(request) is False

    @pytest.mark.asyncio
    async def test_bearer_is_ignored(self, backend, http_scope) -> None:
        request = HttpRequest(http_scope(headers=[(b"authorization", b"Bearer secret")]))
        assert await backend.authenticate(request) is False

    @pytest.mark.asyncio
    async def test_password_with_comma(self, http_scope, basic_auth) -> None:
        """Quoted passwords may carry commas."""
        backend = SimpleBackend.from_options('alice="pa,ss",bob=secret')
        request = HttpRequest(http_scope(headers=[basic_auth("alice", "pa,ss")]))
        assert await backend.authenticate(request) is True

    @pytest.mark.asyncio
    async def test_password_with_colon(self, http_scope, basic_auth) -> None:
        """Only the first colon separates username and password."""
        backend = SimpleBackend.from_options("bob=a:b")
        request = HttpRequest(http_scope(headers=[basic_auth("bob", "a:b")]))
        assert await backend.authenticate(request) is True

    def test_malformed_options(self) -> None:
        with pytest.raises(MalformedOptions):
            SimpleBackend.from_options("bob")
