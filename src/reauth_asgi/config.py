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
Configuration loading for reauth-asgi.

Rules can be written in two forms.

Block grammar
=============
One ``reauth { ... }`` block per rule, one directive per line::

    reauth {
        path /private
        except /private/public
        failure redirect target=https://login.example.com/?next={uri}
        simple bob=secret
        upstream url=https://sso.example.com/check,timeout=5s
    }

Tokens are separated by whitespace. A token starting with ``#`` starts a
comment running to the end of the line. A token starting with ``"`` runs
to the next unescaped ``"`` (spaces and newlines included) and ``\\"``
inside it is a literal quote. The arguments of a directive are the tokens
on the same line.

- ``path <prefix>``: exactly one argument, repeatable, at least once.
- ``except <prefix>``: exactly one argument, repeatable.
- ``failure <name> [<options>]``: at most once per rule.
- ``<backend> <options>``: any other directive, exactly one argument.

Errors carry the file name and line: ``reauth.conf:4 - unknown backend foo``.

TOML file
=========
The server configuration file is TOML. Environment variables are expanded
in string values (``${VAR}`` required, ``${VAR:-default}`` optional) so
secrets can stay out of the file::

    [server]
    host = "127.0.0.1"
    port = 8000
    app = "myproject.main:app"

    [middleware]
    logging = true

    [[reauth]]
    path = ["/private"]
    except = ["/private/public"]
    failure = { name = "status", options = "code=403" }
    backends = [ { name = "simple", options = "bob=${BOB_PASSWORD}" } ]

``[reauth]`` may instead hold the block grammar: ``rules = \"\"\"...\"\"\"``.
"""

from __future__ import annotations

import os
import re
import sys
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

from .backends import Backend, BackendRegistry
from .exceptions import ArgumentCountError, ConfigError, DuplicateFailure
from .failures import FAILURE_HANDLERS, FailureHandler, build_failure
from .rules import Rule, RuleSet

# Python 3.11+ has tomllib in stdlib
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

__all__ = [
    "Token",
    "build_rules",
    "find_config_file",
    "load_config",
    "parse_rules",
    "rules_from_config",
    "rules_from_mappings",
    "tokenize",
]


class Token:
    """A word of the block grammar and the line it starts on."""

    __slots__ = ("value", "line", "quoted")

    def __init__(self, value: str, line: int, quoted: bool = False) -> None:
        self.value = value
        self.line = line
        self.quoted = quoted

    def __repr__(self) -> str:
        return f"Token({self.value!r}, line={self.line})"


def tokenize(text: str) -> Iterator[Token]:
    """Split block grammar text into tokens."""
    line = 1
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        if char == "\n":
            line += 1
            index += 1
        elif char.isspace():
            index += 1
        elif char == "#":
            while index < length and text[index] != "\n":
                index += 1
        elif char == '"':
            start_line = line
            value: list[str] = []
            index += 1
            while True:
                if index >= length:
                    raise ConfigError("unterminated quoted string", line=start_line)
                char = text[index]
                if char == "\\" and index + 1 < length and text[index + 1] == '"':
                    value.append('"')
                    index += 2
                    continue
                if char == '"':
                    index += 1
                    break
                if char == "\n":
                    line += 1
                value.append(char)
                index += 1
            yield Token("".join(value), start_line, quoted=True)
        else:
            start = index
            while index < length and not text[index].isspace():
                index += 1
            yield Token(text[start:index], line)


def _lines(tokens: Iterable[Token]) -> Iterator[list[Token]]:
    """Group tokens by the line they start on."""
    current: list[Token] = []
    for token in tokens:
        if current and token.line != current[0].line:
            yield current
            current = []
        current.append(token)
    if current:
        yield current


def _is_brace(token: Token, brace: str) -> bool:
    return not token.quoted and token.value == brace


def _relocate(exc: ConfigError, context: str, filename: str | None, line: int | None) -> ConfigError:
    """Same error type with a directive context and a location."""
    located = type(exc)(f"{exc.message} for {context}")
    return located.at(exc.filename or filename, exc.line if exc.line is not None else line)


def _build_backend(
    name: str, options: str, registry: BackendRegistry, filename: str | None, line: int | None
) -> Backend:
    try:
        constructor = registry.lookup(name)
    except ConfigError as exc:
        exc.at(filename, line)
        raise
    try:
        return constructor(options)
    except ConfigError as exc:
        raise _relocate(exc, name, filename, line) from exc


def _build_failure(name: str, options: str, filename: str | None, line: int | None) -> FailureHandler:
    if name not in FAILURE_HANDLERS:
        raise ConfigError(f"unknown failure handler {name}", filename, line)
    try:
        return build_failure(name, options)
    except ConfigError as exc:
        raise _relocate(exc, f"failure {name}", filename, line) from exc


def _args_error(directive: str, args: list[Token], filename: str | None, line: int) -> ArgumentCountError:
    values = [arg.value for arg in args]
    return ArgumentCountError(f"wrong number of arguments for {directive}: {values}", filename, line)


def _parse_block(
    lines: Iterator[list[Token]], registry: BackendRegistry, filename: str | None, line: int
) -> Rule:
    paths: list[str] = []
    exceptions: list[str] = []
    backends: list[Backend] = []
    on_failure: FailureHandler | None = None

    for tokens in lines:
        directive, args = tokens[0], tokens[1:]
        where = directive.line
        if _is_brace(directive, "}"):
            if args:
                raise ConfigError(f"unexpected {args[0].value!r} after }}", filename, where)
            break
        name = directive.value
        if name in ("path", "except"):
            if len(args) != 1:
                raise _args_error(name, args, filename, where)
            (paths if name == "path" else exceptions).append(args[0].value)
        elif name == "failure":
            if on_failure is not None:
                raise DuplicateFailure("duplicate failure directive", filename, where)
            if not 1 <= len(args) <= 2:
                raise _args_error(name, args, filename, where)
            options = args[1].value if len(args) == 2 else ""
            on_failure = _build_failure(args[0].value, options, filename, where)
        else:
            if len(args) != 1:
                raise _args_error(name, args, filename, where)
            backends.append(_build_backend(name, args[0].value, registry, filename, where))
    else:
        raise ConfigError("unexpected end of input, missing }", filename, line)

    try:
        return Rule(
            paths=tuple(paths),
            backends=tuple(backends),
            exceptions=tuple(exceptions),
            on_failure=on_failure or build_failure("basicauth"),
        )
    except ConfigError as exc:
        exc.at(filename, line)
        raise


def parse_rules(
    text: str, registry: BackendRegistry, filename: str | None = None
) -> RuleSet:
    """
    Parse block grammar text into a RuleSet.

    Args:
        text: One or more ``reauth { ... }`` blocks.
        registry: Registry used to look up backend names.
        filename: Reported in error locations.

    Raises:
        ConfigError: Any syntax or validation error, with location.
    """
    rules: list[Rule] = []
    try:
        lines = _lines(tokenize(text))
        for tokens in lines:
            head, args = tokens[0], tokens[1:]
            if head.quoted or head.value != "reauth":
                raise ConfigError(f"unexpected {head.value!r}, expected reauth", filename, head.line)
            if not args or not _is_brace(args[-1], "{"):
                raise ConfigError("expected { after reauth", filename, head.line)
            if len(args) > 1:
                raise _args_error("reauth", args[:-1], filename, head.line)
            rules.append(_parse_block(lines, registry, filename, head.line))
    except ConfigError as exc:
        exc.at(filename, None)
        raise
    return RuleSet(rules)


def _as_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    raise ConfigError(f"{key} must be a string or a list of strings")


def _name_and_options(value: Any, key: str) -> tuple[str, str]:
    if isinstance(value, str):
        return value, ""
    if isinstance(value, Mapping) and isinstance(value.get("name"), str):
        options = value.get("options", "")
        if not isinstance(options, str):
            raise ConfigError(f"{key} options must be a string")
        return value["name"], options
    raise ConfigError(f"{key} must be a name or a table with name and options")


def _rule_from_mapping(data: Mapping[str, Any], registry: BackendRegistry) -> Rule:
    backends: list[Backend] = []
    for entry in data.get("backends") or []:
        name, options = _name_and_options(entry, "backend")
        backends.append(_build_backend(name, options, registry, None, None))

    failure = data.get("failure")
    if failure is None:
        on_failure = build_failure("basicauth")
    else:
        name, options = _name_and_options(failure, "failure")
        on_failure = _build_failure(name, options, None, None)

    return Rule(
        paths=tuple(_as_list(data.get("path"), "path")),
        backends=tuple(backends),
        exceptions=tuple(_as_list(data.get("except"), "except")),
        on_failure=on_failure,
    )


def rules_from_mappings(
    entries: Iterable[Mapping[str, Any]], registry: BackendRegistry, filename: str | None = None
) -> RuleSet:
    """
    Build a RuleSet from ``[[reauth]]`` tables.

    Raises:
        ConfigError: Invalid entry. The message names the rule index.
    """
    rules = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            raise ConfigError(f"reauth[{index}]: rule must be a table", filename)
        try:
            rules.append(_rule_from_mapping(entry, registry))
        except ConfigError as exc:
            exc.message = f"reauth[{index}]: {exc.message}"
            exc.filename = exc.filename or filename
            raise
    return RuleSet(rules)


def build_rules(source: Any, registry: BackendRegistry | None = None) -> RuleSet:
    """
    Build a RuleSet from any supported source.

    Args:
        source: A RuleSet (returned as is), block grammar text, a list of
            rule mappings, or a ``[reauth]`` table holding ``rules``.
        registry: Backend registry. Defaults to the builtin backends.
    """
    if isinstance(source, RuleSet):
        return source
    if registry is None:
        registry = BackendRegistry.with_builtins()
    if isinstance(source, str):
        return parse_rules(source, registry)
    if isinstance(source, Mapping):
        return rules_from_config({"reauth": source}, registry)
    if isinstance(source, (list, tuple)):
        return rules_from_mappings(source, registry)
    raise ConfigError(f"cannot build rules from {type(source).__name__}")


def rules_from_config(
    config: Mapping[str, Any], registry: BackendRegistry, filename: str | None = None
) -> RuleSet:
    """RuleSet from the ``reauth`` section of a loaded configuration."""
    section = config.get("reauth")
    if section is None:
        return RuleSet()
    if isinstance(section, list):
        return rules_from_mappings(section, registry, filename)
    if isinstance(section, Mapping) and isinstance(section.get("rules"), str):
        return parse_rules(section["rules"], registry, filename)
    raise ConfigError("reauth must be a list of rules or a table with a rules string", filename)


def load_config(path: str | Path) -> dict[str, Any]:
    """
    Load configuration from TOML file.

    Args:
        path: Path to TOML configuration file.

    Returns:
        Parsed configuration dict, environment variables expanded.

    Raises:
        ConfigError: If file not found, invalid TOML, or a required
            environment variable is not set.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(path, "rb") as f:
            config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse TOML: {e}", str(path)) from e

    return dict(_expand_env_vars(config))


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in string values."""
    if isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return _expand_string(obj)
    return obj


def _expand_string(s: str) -> str:
    pattern = r"\$\{([^}]+)\}"

    def replace(match: re.Match[str]) -> str:
        expr = match.group(1)

        if ":-" in expr:
            var_name, default = expr.split(":-", 1)
            return os.environ.get(var_name, default)
        value = os.environ.get(expr)
        if value is None:
            raise ConfigError(f"Required environment variable not set: {expr}")
        return value

    return re.sub(pattern, replace, s)


def find_config_file() -> Path | None:
    """
    Find configuration file in standard locations.

    Searches:
    1. REAUTH_ASGI_CONFIG environment variable
    2. ./reauth-asgi.toml
    3. ./config.toml
    4. ~/.config/reauth-asgi/config.toml

    Returns:
        Path to config file or None if not found.
    """
    env_config = os.environ.get("REAUTH_ASGI_CONFIG")
    if env_config:
        path = Path(env_config)
        if path.exists():
            return path

    locations = [
        Path.cwd() / "reauth-asgi.toml",
        Path.cwd() / "config.toml",
        Path.home() / ".config" / "reauth-asgi" / "config.toml",
    ]

    for path in locations:
        if path.exists():
            return path

    return None
