"""
Unit tests for HTTP request parsing.
"""

from dataclasses import FrozenInstanceError

import pytest

from jiranotes.http.request import (
    Request,
    default_request,
    parse_query,
    parse_request,
    percent_decode,
)


class TestParseRequest:
    """Tests for parse_request()."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Test parsing a simple GET request."""
        request = parse_request(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/load"
        assert request.get_query("ticketId") == "ABC-123"
        assert request.client_address == ("127.0.0.1", 12345)

    def test_get_without_body_has_empty_body(self, sample_get_request: bytes):
        """Bytes after the separator are the body, even when there are none."""
        request = parse_request(sample_get_request)

        assert request.body == b""

    def test_parse_post_with_body(self, sample_post_request: bytes, sample_note: bytes):
        """Test parsing POST request with JSON body."""
        request = parse_request(sample_post_request)

        assert request.method == "POST"
        assert request.path == "/save"
        assert request.body == sample_note
        assert request.body_text.startswith('{"ticketId"')

    def test_body_is_none_without_separator(self):
        request = parse_request(b"GET /ping HTTP/1.1\r\nHost: x")

        assert request.path == "/ping"
        assert request.body is None

    def test_method_is_uppercased(self):
        request = parse_request(b"options /save HTTP/1.1\r\n\r\n")

        assert request.method == "OPTIONS"

    def test_missing_target_defaults_to_root(self):
        request = parse_request(b"GET\r\n\r\n")

        assert request.method == "GET"
        assert request.path == "/"

    def test_path_is_percent_decoded(self):
        request = parse_request(b"GET /lo%61d HTTP/1.1\r\n\r\n")

        assert request.path == "/load"

    def test_body_bytes_are_kept_verbatim(self):
        body = b'{"text":"caf\xc3\xa9\r\n\r\nmore"}'
        request = parse_request(b"POST /save?ticketId=A-1 HTTP/1.1\r\n\r\n" + body)

        assert request.body == body

    @pytest.mark.parametrize("raw", [
        b"",
        b"\r\n\r\n",
        b"   \r\nHost: x\r\n\r\n",
        b"\xff\xfe GET /ping\r\n\r\n",
    ])
    def test_unparseable_input_falls_back(self, raw: bytes):
        """Garbage never raises; it becomes GET / with nothing else."""
        request = parse_request(raw, ("127.0.0.1", 1))

        assert request == default_request()
        assert request.query == {}
        assert request.body is None
        assert request.client_address == ("127.0.0.1", 1)


class TestParseQuery:
    """Tests for query string handling."""

    def test_simple_pairs(self):
        assert parse_query("ticketId=ABC-1&x=2") == {"ticketId": "ABC-1", "x": "2"}

    def test_values_are_percent_decoded(self):
        assert parse_query("q=hello%20world") == {"q": "hello world"}

    def test_utf8_escapes(self):
        assert parse_query("q=caf%C3%A9") == {"q": "café"}

    def test_plus_is_not_a_space(self):
        assert parse_query("q=a+b") == {"q": "a+b"}

    def test_keys_are_not_decoded(self):
        assert parse_query("ticket%49d=1") == {"ticket%49d": "1"}

    def test_split_on_first_equals(self):
        assert parse_query("a=b=c") == {"a": "b=c"}

    def test_last_duplicate_wins(self):
        assert parse_query("ticketId=A-1&ticketId=B-2") == {"ticketId": "B-2"}

    @pytest.mark.parametrize("qs", ["", "flag", "=value", "key=", "&&", "a&=&b="])
    def test_incomplete_pairs_are_dropped(self, qs: str):
        assert parse_query(qs) == {}

    def test_invalid_escape_keeps_raw_value(self):
        assert parse_query("q=100%") == {"q": "100%"}
        assert parse_query("q=%zz") == {"q": "%zz"}

    def test_invalid_utf8_keeps_raw_value(self):
        assert parse_query("q=%FF%FE") == {"q": "%FF%FE"}


class TestPercentDecode:
    def test_passthrough(self):
        assert percent_decode("ABC-123") == "ABC-123"

    def test_decodes_reserved(self):
        assert percent_decode("a%2Fb%3Fc") == "a/b?c"

    def test_mixed_case_hex(self):
        assert percent_decode("%2f%2F") == "//"


class TestRequest:
    """Tests for the Request value."""

    def test_query_is_read_only(self):
        request = Request(query={"ticketId": "A-1"})

        with pytest.raises(TypeError):
            request.query["ticketId"] = "B-2"

    def test_request_is_frozen(self):
        request = Request()

        with pytest.raises(FrozenInstanceError):
            request.method = "POST"

    def test_equality_ignores_client_address(self):
        assert Request(client_address=("127.0.0.1", 1)) == Request(client_address=("127.0.0.1", 2))

    def test_get_query_default(self):
        request = Request()

        assert request.get_query("ticketId") is None
        assert request.get_query("ticketId", "X-1") == "X-1"

    def test_body_text_for_binary_body(self):
        assert Request(body=b"\xff").body_text is None
        assert Request(body=None).body_text is None
