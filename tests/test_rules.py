# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Tests for path matching, rules and the evaluation algorithm."""

from __future__ import annotations

import pytest

from reauth_asgi.backends import Backend
from reauth_asgi.exceptions import BackendError, ConfigError
from reauth_asgi.failures import BasicAuthFailure, FailureHandler, StatusFailure
from reauth_asgi.request import HttpRequest
from reauth_asgi.response import Response
from reauth_asgi.rules import Outcome, Rule, RuleSet, clean_path, path_matches


class CountingBackend(Backend):
    """Backend returning a fixed verdict and counting its calls."""

    backend_name = "counting"

    __slots__ = ("verdict", "calls")

    def __init__(self, verdict: bool | Exception) -> None:
        self.verdict = verdict
        self.calls = 0

    async def authenticate(self, request: HttpRequest) -> bool:
        self.calls += 1
        if isinstance(self.verdict, Exception):
            raise self.verdict
        return self.verdict


class CountingFailure(FailureHandler):
    __slots__ = ("calls",)

    def __init__(self) -> None:
        self.calls = 0

    def handle(self, request: HttpRequest, response: Response) -> int:
        self.calls += 1
        response.set_header("X-Denied", "yes")
        return 418


async def evaluate(rules: RuleSet, scope: dict):
    response = Response()
    return await rules.evaluate(HttpRequest(scope), response), response


class TestPathMatching:
    @pytest.mark.parametrize(
        "path, expected",
        [
            ("/a/b/../c", "/a/c"),
            ("/a//b", "/a/b"),
            ("/a/./b/", "/a/b/"),
            ("//a", "/a"),
            ("/", "/"),
        ],
    )
    def test_clean_path(self, path: str, expected: str) -> None:
        assert clean_path(path) == expected

    def test_root_matches_everything(self) -> None:
        assert path_matches("/anything/at/all", "/")
        assert path_matches("/anything", "")

    def test_prefix_semantics(self) -> None:
        assert path_matches("/private", "/private")
        assert path_matches("/private/doc", "/private")
        assert path_matches("/privateer", "/private")
        assert not path_matches("/private", "/private/")
        assert not path_matches("/public", "/private")

    def test_case_sensitive(self) -> None:
        assert not path_matches("/Private", "/private")

    def test_dot_segments_cannot_escape(self) -> None:
        assert path_matches("/public/../private/x", "/private")
        assert not path_matches("/private/../public", "/private")


class TestRule:
    def test_requires_path(self) -> None:
        with pytest.raises(ConfigError, match="at least one path is required"):
            Rule(paths=(), backends=(CountingBackend(True),))

    def test_requires_backend(self) -> None:
        with pytest.raises(ConfigError, match="at least one backend required"):
            Rule(paths=("/",), backends=())

    def test_defaults(self) -> None:
        rule = Rule(paths=["/a"], backends=[CountingBackend(True)])

        assert rule.paths == ("/a",)
        assert rule.exceptions == ()
        assert isinstance(rule.on_failure, BasicAuthFailure)
        assert rule.on_failure.realm == ""

    def test_protects_and_excepts(self) -> None:
        rule = Rule(paths=("/app",), backends=(CountingBackend(True),), exceptions=("/app/public",))

        assert rule.protects("/app/admin")
        assert rule.excepts("/app/public/logo.png")
        assert not rule.excepts("/app/admin")

    def test_str(self) -> None:
        rule = Rule(paths=("/a", "/b"), backends=(CountingBackend(True),), exceptions=("/a/x",))
        assert str(rule).startswith("path /a /b except /a/x -> [counting]")


class TestEvaluate:
    """Tests for RuleSet.evaluate."""

    @pytest.mark.asyncio
    async def test_no_rule_passes_through(self, http_scope) -> None:
        backend = CountingBackend(False)
        rules = RuleSet([Rule(paths=("/private",), backends=(backend,))])

        evaluation, _ = await evaluate(rules, http_scope("/public"))

        assert evaluation.outcome is Outcome.FORWARD
        assert evaluation.rule is None
        assert backend.calls == 0

    @pytest.mark.asyncio
    async def test_short_circuit_on_first_allow(self, http_scope) -> None:
        """Backends after the first True are never called."""
        first, second, third = CountingBackend(False), CountingBackend(True), CountingBackend(True)
        rules = RuleSet([Rule(paths=("/",), backends=(first, second, third))])

        evaluation, response = await evaluate(rules, http_scope("/x"))

        assert evaluation.outcome is Outcome.FORWARD
        assert evaluation.backend is second
        assert (first.calls, second.calls, third.calls) == (1, 1, 0)
        assert response.headers == []

    @pytest.mark.asyncio
    async def test_all_deny_calls_failure_once(self, http_scope) -> None:
        failure = CountingFailure()
        backends = (CountingBackend(False), CountingBackend(False))
        rules = RuleSet([Rule(paths=("/",), backends=backends, on_failure=failure)])

        evaluation, response = await evaluate(rules, http_scope("/x"))

        assert evaluation.outcome is Outcome.HANDLED
        assert evaluation.status_code == 418
        assert failure.calls == 1
        assert response.get_header("X-Denied") == "yes"
        assert all(b.calls == 1 for b in backends)

    @pytest.mark.asyncio
    async def test_backend_error_skips_failure_handler(self, http_scope) -> None:
        """A backend error stops evaluation: no later backend, no failure handler."""
        failure = CountingFailure()
        broken = CountingBackend(BackendError("counting", "unreachable"))
        later = CountingBackend(True)
        rules = RuleSet([Rule(paths=("/",), backends=(broken, later), on_failure=failure)])

        evaluation, response = await evaluate(rules, http_scope("/x"))

        assert evaluation.outcome is Outcome.ERROR
        assert evaluation.backend is broken
        assert isinstance(evaluation.error, BackendError)
        assert later.calls == 0
        assert failure.calls == 0
        assert response.headers == []

    @pytest.mark.asyncio
    async def test_error_after_denial_is_error(self, http_scope) -> None:
        """A denial followed by a backend error ends in ERROR, not in the failure handler."""
        failure = CountingFailure()
        deny = CountingBackend(False)
        broken = CountingBackend(BackendError("counting", "unreachable"))
        allow = CountingBackend(True)
        rules = RuleSet([Rule(paths=("/",), backends=(deny, broken, allow), on_failure=failure)])

        evaluation, response = await evaluate(rules, http_scope("/x"))

        assert evaluation.outcome is Outcome.ERROR
        assert evaluation.backend is broken
        assert (deny.calls, broken.calls, allow.calls) == (1, 1, 0)
        assert failure.calls == 0
        assert response.headers == []

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate(self, http_scope) -> None:
        rules = RuleSet([Rule(paths=("/",), backends=(CountingBackend(RuntimeError("bug")),))])

        with pytest.raises(RuntimeError, match="bug"):
            await evaluate(rules, http_scope("/x"))

    @pytest.mark.asyncio
    async def test_first_declared_rule_wins(self, http_scope) -> None:
        """A broad rule declared first shadows a more specific one."""
        broad, specific = CountingBackend(False), CountingBackend(True)
        rules = RuleSet(
            [
                Rule(paths=("/a",), backends=(broad,), on_failure=StatusFailure(403)),
                Rule(paths=("/a/b",), backends=(specific,)),
            ]
        )

        evaluation, _ = await evaluate(rules, http_scope("/a/b/c"))

        assert evaluation.outcome is Outcome.HANDLED
        assert evaluation.status_code == 403
        assert specific.calls == 0

    @pytest.mark.asyncio
    async def test_exception_falls_through_to_next_rule(self, http_scope) -> None:
        first, second = CountingBackend(False), CountingBackend(True)
        rules = RuleSet(
            [
                Rule(paths=("/app",), backends=(first,), exceptions=("/app/public",)),
                Rule(paths=("/",), backends=(second,)),
            ]
        )

        evaluation, _ = await evaluate(rules, http_scope("/app/public/index.html"))

        assert evaluation.outcome is Outcome.FORWARD
        assert evaluation.rule is rules[1]
        assert (first.calls, second.calls) == (0, 1)

    @pytest.mark.asyncio
    async def test_excepted_path_without_other_rule(self, http_scope) -> None:
        backend = CountingBackend(False)
        rules = RuleSet([Rule(paths=("/app",), backends=(backend,), exceptions=("/app/health",))])

        evaluation, _ = await evaluate(rules, http_scope("/app/health"))

        assert evaluation.outcome is Outcome.FORWARD
        assert backend.calls == 0

    @pytest.mark.asyncio
    async def test_default_failure_is_basic_challenge(self, http_scope) -> None:
        rules = RuleSet([Rule(paths=("/",), backends=(CountingBackend(False),))])

        evaluation, response = await evaluate(rules, http_scope("/x", host="intranet.local"))

        assert evaluation.status_code == 401
        assert response.get_header("WWW-Authenticate") == 'Basic realm="intranet.local"'


class TestRuleSet:
    def test_sequence_protocol(self) -> None:
        rule = Rule(paths=("/",), backends=(CountingBackend(True),))
        rules = RuleSet([rule])

        assert len(rules) == 1
        assert rules[0] is rule
        assert list(rules) == [rule]

    def test_backends_deduplicated(self) -> None:
        shared, other = CountingBackend(True), CountingBackend(True)
        rules = RuleSet(
            [
                Rule(paths=("/a",), backends=(shared,)),
                Rule(paths=("/b",), backends=(other, shared)),
            ]
        )

        assert list(rules.backends()) == [shared, other]

    def test_select(self) -> None:
        a = Rule(paths=("/a",), backends=(CountingBackend(True),))
        rules = RuleSet([a])

        assert rules.select("/a/x") is a
        assert rules.select("/b") is None
