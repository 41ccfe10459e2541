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
Composition root: configuration file -> protected ASGI application.

The TOML file names the application to protect (``server.app``, an
import string ``"package.module:attribute"``), the enabled middleware and
the rules. ``build_app`` loads everything once, before serving starts::

    config = load_config("reauth-asgi.toml")
    app = build_app(config)

``run`` serves the result with uvicorn. In reload mode uvicorn needs an
import string, so the config path travels through the
``REAUTH_ASGI_CONFIG`` environment variable to ``app_factory``.
"""

from __future__ import annotations

import importlib
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .backends import BackendRegistry
from .config import load_config, rules_from_config
from .exceptions import ConfigError
from .middleware import middleware_chain
from .rules import RuleSet
from .types import ASGIApp

__all__ = ["app_factory", "build_app", "describe", "import_app", "run"]

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
CONFIG_ENV = "REAUTH_ASGI_CONFIG"


def import_app(target: str) -> ASGIApp:
    """
    Import an ASGI application from a ``"module:attribute"`` string.

    Raises:
        ConfigError: Malformed string, missing module or attribute.
    """
    module_name, sep, attribute = target.partition(":")
    if not sep or not module_name or not attribute:
        raise ConfigError(f"app must be 'module:attribute', got {target!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"cannot import {module_name!r}: {e}") from e
    app: Any = module
    for part in attribute.split("."):
        try:
            app = getattr(app, part)
        except AttributeError:
            raise ConfigError(f"{module_name!r} has no attribute {attribute!r}") from None
    return app


def build_app(
    config: Mapping[str, Any],
    app: ASGIApp | None = None,
    registry: BackendRegistry | None = None,
    filename: str | None = None,
) -> ASGIApp:
    """
    Wrap an application with the middleware chain described by config.

    Args:
        config: Loaded configuration (see ``reauth_asgi.config``).
        app: Application to protect. Default: imported from ``server.app``.
        registry: Backend registry. Default: builtin backends.
        filename: Config file name for error messages.

    Raises:
        ConfigError: Invalid configuration. Nothing is served.
    """
    if app is None:
        target = config.get("server", {}).get("app")
        if not target:
            raise ConfigError("server.app is required", filename)
        app = import_app(target)

    rules = rules_from_config(config, registry or BackendRegistry.with_builtins(), filename)
    logger.info("loaded %d reauth rules", len(rules))

    full_config: dict[str, Any] = {
        key: value for key, value in config.items() if key.endswith("_middleware")
    }
    reauth_config = dict(full_config.get("reauth_middleware") or {})
    reauth_config["rules"] = rules
    full_config["reauth_middleware"] = reauth_config

    try:
        return middleware_chain(config.get("middleware"), app, full_config)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid middleware configuration: {e}", filename) from e


def app_factory() -> ASGIApp:
    """Build the application from the file named by REAUTH_ASGI_CONFIG."""
    path = os.environ.get(CONFIG_ENV)
    if not path:
        raise ConfigError(f"{CONFIG_ENV} is not set")
    return build_app(load_config(path), filename=path)


def run(
    config_path: str | Path,
    host: str | None = None,
    port: int | None = None,
    reload: bool = False,
) -> None:
    """Run the protected application using Uvicorn."""
    import uvicorn

    config = load_config(config_path)
    server = config.get("server", {})
    host = host or server.get("host", DEFAULT_HOST)
    port = port or server.get("port", DEFAULT_PORT)

    logger.info("Starting server on %s:%s", host, port)
    if reload:
        # Uvicorn requires import string for reload mode
        os.environ[CONFIG_ENV] = str(Path(config_path).resolve())
        uvicorn.run(
            "reauth_asgi.server:app_factory",
            host=host,
            port=port,
            reload=True,
            factory=True,
        )
    else:
        uvicorn.run(build_app(config, filename=str(config_path)), host=host, port=port)


def describe(rules: RuleSet) -> list[str]:
    """One human readable line per rule, in evaluation order."""
    return [f"{index}: {rule}" for index, rule in enumerate(rules, start=1)]
