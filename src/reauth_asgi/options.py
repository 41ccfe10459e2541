# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Options string parser shared by every backend and failure handler.

An options string is a comma separated list of ``key=value`` pairs::

    url=https://sso.example.com/check,timeout=5s,insecure=true

A value may be double-quoted to carry literal commas and ``=``::

    filter="(&(objectClass=user)(uid=%s))",base="ou=people,dc=example,dc=com"

Parsing is a two-state machine (OUTSIDE / INSIDE a quoted value) over the
comma-split segments. Segments consumed while INSIDE are glued back onto
the open value with the comma restored. Quoted values are unquoted once
the whole string has been read.

Typed helpers (``option_bool``, ``option_int``, ``option_duration``) turn
raw strings into values and raise ``MalformedOptions`` naming the key.
Durations accept unit suffixes (``300ms``, ``5s``, ``1m30s``, ``3h``) and
booleans accept ``1 t T TRUE true True`` and their negative counterparts.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from .exceptions import MalformedOptions

__all__ = [
    "option_bool",
    "option_duration",
    "option_int",
    "option_required",
    "parse_duration",
    "parse_options",
]

_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE = frozenset({"0", "f", "F", "FALSE", "false", "False"})

_ESCAPES = {'"': '"', "\\": "\\", "n": "\n", "t": "\t", "r": "\r"}

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def _closes_quote(segment: str, start: int = 0) -> bool:
    """True if segment ends with a double quote not escaped by a backslash."""
    if len(segment) <= start or not segment.endswith('"'):
        return False
    backslashes = 0
    index = len(segment) - 2
    while index >= start and segment[index] == "\\":
        backslashes += 1
        index -= 1
    return backslashes % 2 == 0


def _unquote(value: str) -> str:
    """Strip surrounding quotes and undo backslash escapes."""
    inner = value[1:-1]
    result: list[str] = []
    chars = iter(inner)
    for char in chars:
        if char != "\\":
            result.append(char)
            continue
        escaped = next(chars, "")
        result.append(_ESCAPES.get(escaped, "\\" + escaped))
    return "".join(result)


def parse_options(config: str) -> dict[str, str]:
    """
    Parse a ``key=value,key2="quoted,value"`` options string.

    Args:
        config: The raw options string.

    Returns:
        Mapping of option names to values. Duplicate keys: last one wins.

    Raises:
        MalformedOptions: A segment has no ``=`` outside a quoted value
            (this includes the empty string), or a quoted value is never
            closed.

    Example:
        >>> parse_options('a=1,b="x,y"')
        {'a': '1', 'b': 'x,y'}
    """
    options: dict[str, str] = {}
    quoted: set[str] = set()
    open_key: str | None = None

    for segment in config.split(","):
        if open_key is not None:
            options[open_key] += "," + segment
            if _closes_quote(segment):
                open_key = None
            continue

        key, sep, value = segment.partition("=")
        if not sep:
            raise MalformedOptions("unable to parse options string, missing pair")

        options[key] = value
        quoted.discard(key)
        if value.startswith('"'):
            quoted.add(key)
            if not _closes_quote(value, start=1):
                open_key = key

    if open_key is not None:
        raise MalformedOptions(f"unterminated quoted value for option {open_key!r}")

    for key in quoted:
        options[key] = _unquote(options[key])
    return options


def option_required(options: Mapping[str, str], key: str) -> str:
    """Return a required option or raise MalformedOptions."""
    if key not in options:
        raise MalformedOptions(f"{key} is a required parameter")
    return options[key]


def option_bool(options: Mapping[str, str], key: str, default: bool = False) -> bool:
    """Parse a boolean option (1/t/true/0/f/false and their capitalizations)."""
    if key not in options:
        return default
    value = options[key]
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise MalformedOptions(f"unable to parse {key} {value}: invalid boolean")


def option_int(options: Mapping[str, str], key: str, default: int) -> int:
    """Parse a base-10 integer option."""
    if key not in options:
        return default
    value = options[key]
    try:
        return int(value, 10)
    except ValueError:
        raise MalformedOptions(f"unable to parse {key} {value}: invalid integer") from None


def parse_duration(value: str) -> float:
    """
    Parse a duration ("300ms", "1m30s", "1.5h") into seconds.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    text = value.strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return 0.0
    if not text:
        raise ValueError(f"invalid duration {value!r}")
    total = 0.0
    position = 0
    while position < len(text):
        match = _DURATION_PART.match(text, position)
        if match is None:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    return sign * total


def option_duration(options: Mapping[str, str], key: str, default: float) -> float:
    """Parse a duration option into seconds."""
    if key not in options:
        return default
    value = options[key]
    try:
        return parse_duration(value)
    except ValueError:
        raise MalformedOptions(f"unable to parse {key} {value}: invalid duration") from None
