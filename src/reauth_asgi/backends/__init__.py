# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Authentication backends and the registry that names them.

A backend is one authentication strategy. It answers a single question
about a request, through ``authenticate()``:

- ``True``: the credentials were positively verified.
- ``False``: credentials absent, malformed or rejected. Not an error;
  the next backend of the rule is tried.
- raises ``BackendError``: the backend could not decide (upstream down,
  TLS failure, malformed reply). The request is answered with a 500.

Backends are constructed once at configuration time from an options string
and then shared by every concurrent request. Any state they keep
(connection pools, caches) is owned and synchronized by the backend.

Registry:
    ``BackendRegistry`` maps names to constructors. It is a plain value:
    the application root builds one (usually with ``with_builtins()``) and
    passes it to the configuration loader, tests build fresh ones.

    Builtin backend modules in this package self-register through a
    module-level ``register(registry)`` function, discovered at
    ``with_builtins()`` time. Modules starting with "_" are helpers.

Example::

    registry = BackendRegistry.with_builtins()
    constructor = registry.lookup("simple")
    backend = constructor("bob=secret")
    allowed = await backend.authenticate(request)
"""

from __future__ import annotations

import importlib
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from ..exceptions import DuplicateBackend, UnknownBackend

if TYPE_CHECKING:
    from ..request import HttpRequest

__all__ = ["Backend", "BackendRegistry", "Constructor", "register_builtins"]


class Backend(ABC):
    """Base class for authentication backends.

    Class attributes:
        backend_name: Registry key used in configuration.
    """

    backend_name: str = ""

    __slots__ = ()

    @abstractmethod
    async def authenticate(self, request: HttpRequest) -> bool:
        """Check the request against this backend.

        Args:
            request: Read-only view of the incoming request.

        Returns:
            True if the credentials were verified, False otherwise.

        Raises:
            BackendError: On communication or infrastructure failure.
        """

    async def aclose(self) -> None:
        """Release resources owned by the backend. Default: nothing to do."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.backend_name or '?'}>"


Constructor = Callable[[str], Backend]


class BackendRegistry:
    """Name -> constructor mapping for backends.

    Populated once at startup, read-only afterwards, so lookups need no lock.
    """

    __slots__ = ("_constructors",)

    def __init__(self) -> None:
        self._constructors: dict[str, Constructor] = {}

    @classmethod
    def with_builtins(cls) -> BackendRegistry:
        """Registry pre-populated with every builtin backend."""
        registry = cls()
        register_builtins(registry)
        return registry

    def register(self, name: str, constructor: Constructor) -> None:
        """Register a backend constructor.

        Raises:
            DuplicateBackend: If name is already registered.
        """
        if name in self._constructors:
            raise DuplicateBackend(f"backend name already in use: {name}")
        self._constructors[name] = constructor

    def lookup(self, name: str) -> Constructor:
        """Return the constructor registered under name.

        Raises:
            UnknownBackend: If name is not registered.
        """
        try:
            return self._constructors[name]
        except KeyError:
            raise UnknownBackend(f"unknown backend {name}") from None

    def names(self) -> list[str]:
        return sorted(self._constructors)

    def __contains__(self, name: object) -> bool:
        return name in self._constructors

    def __len__(self) -> int:
        return len(self._constructors)

    def __repr__(self) -> str:
        return f"BackendRegistry({self.names()!r})"


def register_builtins(registry: BackendRegistry) -> None:
    """Import every backend module in this package and let it self-register."""
    package_dir = Path(__file__).parent
    for py_file in sorted(package_dir.glob("*.py")):
        if py_file.name.startswith("_"):
            continue
        module = importlib.import_module(f".{py_file.stem}", __package__)
        module.register(registry)
