# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Tests for the options string parser and typed option helpers."""

import pytest

from reauth_asgi.exceptions import ConfigError, MalformedOptions
from reauth_asgi.options import (
    option_bool,
    option_duration,
    option_int,
    option_required,
    parse_duration,
    parse_options,
)


class TestParseOptions:
    """Tests for parse_options()."""

    def test_simple_pairs(self) -> None:
        """Plain key=value pairs."""
        assert parse_options("a=1,b=2") == {"a": "1", "b": "2"}

    def test_quoted_value_with_comma(self) -> None:
        """A quoted value keeps its commas."""
        assert parse_options('a=1,b="x,y"') == {"a": "1", "b": "x,y"}

    def test_quoted_value_with_equals(self) -> None:
        """A quoted value keeps embedded '=' and commas."""
        options = parse_options('base="ou=people,dc=example,dc=com",port=389')
        assert options == {"base": "ou=people,dc=example,dc=com", "port": "389"}

    def test_quoted_value_many_commas(self) -> None:
        """Several commas inside one quoted value."""
        assert parse_options('a="1,2,3,4",b=5') == {"a": "1,2,3,4", "b": "5"}

    def test_quoted_value_without_comma(self) -> None:
        """Quotes are removed even when not needed."""
        assert parse_options('realm="example"') == {"realm": "example"}

    def test_escaped_quote_inside_value(self) -> None:
        """Backslash-escaped quotes are unescaped."""
        assert parse_options(r'a="say \"hi\", bye"') == {"a": 'say "hi", bye'}

    def test_escaped_backslash_at_end(self) -> None:
        """An escaped backslash before the closing quote closes the value."""
        assert parse_options(r'a="x\\",b=1') == {"a": "x\\", "b": "1"}

    def test_value_with_equals_unquoted(self) -> None:
        """Only the first '=' splits key and value."""
        assert parse_options("url=https://x/?a=b") == {"url": "https://x/?a=b"}

    def test_empty_value(self) -> None:
        """key= gives an empty value."""
        assert parse_options("realm=") == {"realm": ""}

    def test_whitespace_preserved(self) -> None:
        """Unquoted values are not trimmed."""
        assert parse_options("a= 1 ") == {"a": " 1 "}

    def test_duplicate_key_last_wins(self) -> None:
        """On duplicate keys the last value wins."""
        assert parse_options("a=1,a=2") == {"a": "2"}

    def test_missing_pair(self) -> None:
        """A segment without '=' is an error."""
        with pytest.raises(MalformedOptions, match="missing pair"):
            parse_options("a")

    def test_missing_pair_after_valid_pair(self) -> None:
        """The error is raised wherever the bad segment is."""
        with pytest.raises(MalformedOptions):
            parse_options("a=1,username")

    def test_empty_string(self) -> None:
        """The empty string has no pair."""
        with pytest.raises(MalformedOptions):
            parse_options("")

    def test_unterminated_quote(self) -> None:
        """A quoted value never closed is an error."""
        with pytest.raises(MalformedOptions, match="unterminated"):
            parse_options('a="x,y')

    def test_lone_quote(self) -> None:
        """A value made of a single quote is unterminated."""
        with pytest.raises(MalformedOptions):
            parse_options('a="')

    def test_malformed_is_config_error(self) -> None:
        """MalformedOptions is a configuration error."""
        with pytest.raises(ConfigError):
            parse_options("nope")


class TestTypedOptions:
    """Tests for option_required/bool/int/duration."""

    def test_required_present(self) -> None:
        assert option_required({"url": "http://x"}, "url") == "http://x"

    def test_required_missing(self) -> None:
        with pytest.raises(MalformedOptions, match="url is a required parameter"):
            option_required({}, "url")

    @pytest.mark.parametrize("value", ["1", "t", "T", "TRUE", "true", "True"])
    def test_bool_true(self, value: str) -> None:
        assert option_bool({"x": value}, "x") is True

    @pytest.mark.parametrize("value", ["0", "f", "F", "FALSE", "false", "False"])
    def test_bool_false(self, value: str) -> None:
        assert option_bool({"x": value}, "x", default=True) is False

    def test_bool_default(self) -> None:
        assert option_bool({}, "x") is False
        assert option_bool({}, "x", default=True) is True

    def test_bool_invalid(self) -> None:
        with pytest.raises(MalformedOptions, match="insecure"):
            option_bool({"insecure": "yes"}, "insecure")

    def test_int(self) -> None:
        assert option_int({"code": "403"}, "code", 401) == 403
        assert option_int({}, "code", 401) == 401

    def test_int_invalid(self) -> None:
        with pytest.raises(MalformedOptions, match="code"):
            option_int({"code": "abc"}, "code", 401)

    def test_duration(self) -> None:
        assert option_duration({"timeout": "5s"}, "timeout", 60.0) == 5.0
        assert option_duration({}, "timeout", 60.0) == 60.0

    def test_duration_invalid(self) -> None:
        with pytest.raises(MalformedOptions, match="timeout"):
            option_duration({"timeout": "5"}, "timeout", 60.0)


class TestParseDuration:
    """Tests for parse_duration()."""

    @pytest.mark.parametrize(
        "text,seconds",
        [
            ("300ms", 0.3),
            ("5s", 5.0),
            ("1m", 60.0),
            ("1m30s", 90.0),
            ("3h", 10800.0),
            ("1.5h", 5400.0),
            ("0", 0.0),
            ("-2s", -2.0),
            ("100us", 0.0001),
        ],
    )
    def test_valid(self, text: str, seconds: float) -> None:
        assert parse_duration(text) == pytest.approx(seconds)

    @pytest.mark.parametrize("text", ["", "5", "s", "5x", "1h-5m", "abc"])
    def test_invalid(self, text: str) -> None:
        with pytest.raises(ValueError):
            parse_duration(text)
