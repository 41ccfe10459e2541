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

"""reauth-asgi - Rule based authentication middleware for ASGI applications.

Main components:
    ReauthMiddleware: ASGI entry point, evaluates the rules per request
    RuleSet / Rule: Ordered path prefix -> backends bindings
    BackendRegistry: Name -> constructor mapping of authentication backends
    FailureHandler: Response for denied requests (basicauth, status, redirect)

Backends:
    simple: Static username/password map
    upstream: GET check against another HTTP service
    gitlabci: GitLab CI job tokens
    ldap: Search and bind against a directory (extra: ldap)
    refresh: Bearer tokens checked by an OAuth-style auth service

Usage:
    from reauth_asgi import ReauthMiddleware

    app = ReauthMiddleware(app, rules='''
        reauth {
            path /private
            simple bob=secret
        }
    ''')
"""

__version__ = "0.1.0"

from .backends import Backend, BackendRegistry
from .config import build_rules, load_config, parse_rules
from .exceptions import (
    ArgumentCountError,
    BackendError,
    ConfigError,
    DuplicateBackend,
    DuplicateFailure,
    HTTPException,
    HTTPForbidden,
    HTTPUnauthorized,
    MalformedOptions,
    Redirect,
    UnknownBackend,
)
from .failures import (
    BasicAuthFailure,
    FailureHandler,
    RedirectFailure,
    StatusFailure,
    build_failure,
)
from .middleware import BaseMiddleware, middleware_chain
from .middleware.errors import ErrorMiddleware
from .middleware.logging import LoggingMiddleware
from .middleware.reauth import ReauthMiddleware
from .options import parse_options
from .request import HttpRequest
from .response import Response
from .rules import Evaluation, Outcome, Rule, RuleSet
from .server import build_app
from .types import ASGIApp, Message, Receive, Scope, Send

__all__ = [
    # Middleware
    "BaseMiddleware",
    "ErrorMiddleware",
    "LoggingMiddleware",
    "ReauthMiddleware",
    "middleware_chain",
    # Rules
    "Evaluation",
    "Outcome",
    "Rule",
    "RuleSet",
    # Backends
    "Backend",
    "BackendRegistry",
    # Failure handlers
    "BasicAuthFailure",
    "FailureHandler",
    "RedirectFailure",
    "StatusFailure",
    "build_failure",
    # Configuration
    "build_app",
    "build_rules",
    "load_config",
    "parse_options",
    "parse_rules",
    # Request/Response
    "HttpRequest",
    "Response",
    # Exceptions
    "ArgumentCountError",
    "BackendError",
    "ConfigError",
    "DuplicateBackend",
    "DuplicateFailure",
    "HTTPException",
    "HTTPForbidden",
    "HTTPUnauthorized",
    "MalformedOptions",
    "Redirect",
    "UnknownBackend",
    # Types
    "ASGIApp",
    "Message",
    "Receive",
    "Scope",
    "Send",
    # Version
    "__version__",
]
