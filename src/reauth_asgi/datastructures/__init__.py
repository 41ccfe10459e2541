# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Data structures wrapping raw ASGI values.

Mapping from ASGI to reauth-asgi::

    scope["headers"] = [(b"...", b"...")]   ->  Headers (case-insensitive)
    "Basic dXNlcjpwdw=="                    ->  ("basic", "dXNlcjpwdw==")
    "a=1; b=2"                              ->  {"a": "1", "b": "2"}
"""

from .headers import Headers, headers_from_scope, parse_authorization, parse_cookies

__all__ = [
    "Headers",
    "headers_from_scope",
    "parse_authorization",
    "parse_cookies",
]
