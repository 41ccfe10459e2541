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

"""Tests for Headers and the header grammars."""

import pytest

from reauth_asgi.datastructures import (
    Headers,
    headers_from_scope,
    parse_authorization,
    parse_cookies,
)


class TestHeaders:
    """Test Headers class."""

    def test_case_insensitive_get(self):
        """Header lookup should ignore case."""
        headers = Headers([(b"Content-Type", b"text/plain")])
        assert headers.get("content-type") == "text/plain"
        assert headers.get("CONTENT-TYPE") == "text/plain"

    def test_get_default(self):
        headers = Headers([])
        assert headers.get("x-missing") is None
        assert headers.get("x-missing", "fallback") == "fallback"

    def test_getlist_preserves_order(self):
        """Repeated headers keep arrival order."""
        headers = Headers([(b"Cookie", b"a=1"), (b"X-Other", b"x"), (b"cookie", b"b=2")])
        assert headers.getlist("cookie") == ["a=1", "b=2"]

    def test_getitem(self):
        headers = Headers([(b"host", b"example.com")])
        assert headers["Host"] == "example.com"
        with pytest.raises(KeyError):
            headers["x-missing"]

    def test_contains(self):
        headers = Headers([(b"Authorization", b"Basic abc")])
        assert "authorization" in headers
        assert "cookie" not in headers
        assert 42 not in headers

    def test_iter_unique_names(self):
        headers = Headers([(b"A", b"1"), (b"a", b"2"), (b"B", b"3")])
        assert list(headers) == ["a", "b"]
        assert len(headers) == 3

    def test_latin1_values(self):
        """Values are decoded as Latin-1, as ASGI requires."""
        headers = Headers([(b"x-name", "caf\xe9".encode("latin-1"))])
        assert headers.get("x-name") == "caf\xe9"

    def test_items(self):
        headers = Headers([(b"X-A", b"1")])
        assert headers.items() == [("x-a", "1")]


class TestHeadersFromScope:
    def test_from_scope(self):
        headers = headers_from_scope({"headers": [(b"host", b"example.com")]})
        assert headers.get("host") == "example.com"

    def test_scope_without_headers(self):
        assert len(headers_from_scope({})) == 0


class TestParseAuthorization:
    """Test parse_authorization()."""

    def test_basic(self):
        assert parse_authorization("Basic dXNlcjpwdw==") == ("basic", "dXNlcjpwdw==")

    def test_scheme_lowercased(self):
        assert parse_authorization("BEARER tk_1") == ("bearer", "tk_1")

    def test_extra_spaces(self):
        assert parse_authorization("  Bearer   tk_1  ") == ("bearer", "tk_1")

    @pytest.mark.parametrize("value", [None, "", "Bearer", "   "])
    def test_missing_credentials(self, value):
        assert parse_authorization(value) is None


class TestParseCookies:
    """Test parse_cookies()."""

    def test_single_header(self):
        assert parse_cookies("a=1; b=2") == {"a": "1", "b": "2"}

    def test_multiple_headers(self):
        assert parse_cookies("a=1", "b=2") == {"a": "1", "b": "2"}

    def test_first_wins(self):
        assert parse_cookies("sid=new; sid=old") == {"sid": "new"}

    def test_quoted_value(self):
        assert parse_cookies('token="abc"') == {"token": "abc"}

    def test_value_with_equals(self):
        assert parse_cookies("data=a=b") == {"data": "a=b"}

    def test_invalid_pairs_ignored(self):
        assert parse_cookies("novalue; =x; ok=1", None, "") == {"ok": "1"}


class TestExports:
    def test_all(self):
        from reauth_asgi import datastructures

        assert set(datastructures.__all__) == {
            "Headers",
            "headers_from_scope",
            "parse_authorization",
            "parse_cookies",
        }
