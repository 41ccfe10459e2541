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
Rules and the per-request evaluation algorithm.

A ``Rule`` binds path prefixes to an ordered list of backends and a failure
handler. A ``RuleSet`` is the ordered list of rules built at startup and
shared read-only by every request.

Evaluation of one request
=========================
1. Scan the rules in declared order. A rule is a candidate when the
   request path matches one of its ``paths``.
2. A candidate whose ``exceptions`` also match the path is skipped and the
   scan goes on with the next rule.
3. The first candidate not skipped is THE rule. No rule: pass-through.
4. Backends run in order. The first ``True`` forwards the request and the
   remaining backends are not called. ``False`` moves to the next backend.
   A ``BackendError`` stops everything: internal error, the failure
   handler is not called.
5. All backends said ``False``: the failure handler answers.

Rules never combine: with ``/a`` declared before ``/a/b``, a request for
``/a/b`` is handled by the ``/a`` rule. Declare specific paths first.

Path matching
=============
Prefix match on cleaned paths (``.``/``..`` resolved, repeated slashes
collapsed, trailing slash kept). Case-sensitive. The patterns ``/`` and
``""`` match every path.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .exceptions import BackendError, ConfigError
from .failures import BasicAuthFailure, FailureHandler

if TYPE_CHECKING:
    from .backends import Backend
    from .request import HttpRequest
    from .response import Response

__all__ = ["Evaluation", "Outcome", "Rule", "RuleSet", "clean_path", "path_matches"]

logger = logging.getLogger(__name__)


def clean_path(path: str) -> str:
    """Resolve ``.``/``..`` and repeated slashes, keeping a trailing slash."""
    trailing = path.endswith("/")
    cleaned = posixpath.normpath(path)
    # normpath keeps exactly two leading slashes (POSIX implementation-defined)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    if trailing and not cleaned.endswith("/"):
        cleaned += "/"
    return cleaned


def path_matches(path: str, pattern: str) -> bool:
    """True if the request path falls under pattern (prefix semantics)."""
    if pattern in ("/", ""):
        return True
    return clean_path(path).startswith(clean_path(pattern))


@dataclass(frozen=True)
class Rule:
    """
    One protected area.

    Attributes:
        paths: Path prefixes this rule protects (at least one).
        backends: Backends tried in order (at least one).
        exceptions: Path prefixes excluded from protection.
        on_failure: Handler answering when no backend allows the request.
    """

    paths: tuple[str, ...]
    backends: tuple[Backend, ...]
    exceptions: tuple[str, ...] = ()
    on_failure: FailureHandler = field(default_factory=BasicAuthFailure)

    def __post_init__(self) -> None:
        object.__setattr__(self, "paths", tuple(self.paths))
        object.__setattr__(self, "backends", tuple(self.backends))
        object.__setattr__(self, "exceptions", tuple(self.exceptions))
        if not self.paths:
            raise ConfigError("at least one path is required")
        if not self.backends:
            raise ConfigError("at least one backend required")

    def protects(self, path: str) -> bool:
        return any(path_matches(path, pattern) for pattern in self.paths)

    def excepts(self, path: str) -> bool:
        return any(path_matches(path, pattern) for pattern in self.exceptions)

    def __str__(self) -> str:
        names = ", ".join(b.backend_name or type(b).__name__ for b in self.backends)
        text = f"path {' '.join(self.paths)}"
        if self.exceptions:
            text += f" except {' '.join(self.exceptions)}"
        return f"{text} -> [{names}] on failure {self.on_failure!r}"


class Outcome(Enum):
    """Terminal outcome of evaluating one request."""

    FORWARD = "forward"
    HANDLED = "handled"
    ERROR = "error"


@dataclass(frozen=True)
class Evaluation:
    """
    Result of ``RuleSet.evaluate``.

    Attributes:
        outcome: What the middleware must do with the request.
        rule: The rule that matched, None on pass-through.
        backend: The backend that allowed the request or failed.
        status_code: Failure handler status (HANDLED only).
        error: The backend error (ERROR only).
    """

    outcome: Outcome
    rule: Rule | None = None
    backend: Backend | None = None
    status_code: int | None = None
    error: BackendError | None = None


class RuleSet(Sequence[Rule]):
    """Ordered, immutable list of rules. Safe to share between requests."""

    __slots__ = ("_rules",)

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self._rules: tuple[Rule, ...] = tuple(rules)

    def __getitem__(self, index):  # type: ignore[no-untyped-def]
        return self._rules[index]

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __repr__(self) -> str:
        return f"RuleSet({len(self._rules)} rules)"

    def backends(self) -> Iterator[Backend]:
        """Every backend instance, each yielded once."""
        seen: set[int] = set()
        for rule in self._rules:
            for backend in rule.backends:
                if id(backend) not in seen:
                    seen.add(id(backend))
                    yield backend

    def select(self, path: str) -> Rule | None:
        """First rule protecting path and not excepting it."""
        for rule in self._rules:
            if rule.protects(path) and not rule.excepts(path):
                return rule
        return None

    async def evaluate(self, request: HttpRequest, response: Response) -> Evaluation:
        """
        Run the evaluation algorithm for one request.

        The failure handler, when reached, writes on ``response`` and its
        status is returned in the evaluation. Exceptions other than
        ``BackendError`` raised by a backend propagate unchanged.
        """
        rule = self.select(request.path)
        if rule is None:
            logger.debug("%s %s: no rule, passing through", request.method, request.path)
            return Evaluation(Outcome.FORWARD)

        for backend in rule.backends:
            try:
                allowed = await backend.authenticate(request)
            except BackendError as exc:
                logger.error(
                    "%s %s: backend %s failed", request.method, request.path, backend, exc_info=True
                )
                return Evaluation(Outcome.ERROR, rule=rule, backend=backend, error=exc)
            if allowed:
                logger.debug("%s %s: allowed by %s", request.method, request.path, backend)
                return Evaluation(Outcome.FORWARD, rule=rule, backend=backend)

        status_code = rule.on_failure.handle(request, response)
        logger.info(
            "%s %s: denied, %r answered %d",
            request.method,
            request.path,
            rule.on_failure,
            status_code,
        )
        return Evaluation(Outcome.HANDLED, rule=rule, status_code=status_code)
