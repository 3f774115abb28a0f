"""Tests for request serialization."""

import io

import pytest

from keepwire import (
    ConnectionConfig,
    ProxyConfig,
    TextBody,
    build_headers,
    encode_query,
    normalize_path,
    serialize_head,
)
from keepwire._request import request_target, write_request
from keepwire._transport import SocketHandle
from tests.conftest import FakeStream


def make_params(method: str = "GET", **overrides):
    config = ConnectionConfig(scheme="http", host="example.com", port=80)
    return config.merge(method, **overrides)


class TestQuery:
    """Query string encoding."""

    def test_sequence_and_null_values(self):
        assert encode_query({"a": [1, 2], "b": None}) == "a=1&a=2&b"

    def test_values_are_form_encoded(self):
        assert encode_query({"q": "a b&c", "x": "é"}) == "q=a+b%26c&x=%C3%A9"

    def test_string_is_verbatim(self):
        assert encode_query("raw=%20&x") == "raw=%20&x"

    def test_order_follows_mapping(self):
        assert encode_query({"z": 1, "a": 2, "m": 3}) == "z=1&a=2&m=3"

    def test_empty_mapping_adds_no_question_mark(self):
        params = make_params(path="/search", query={})
        assert request_target(params) == "/search"

    def test_only_empty_sequences_add_no_question_mark(self):
        params = make_params(path="/p", query={"a": []})
        assert request_target(params) == "/p"

    def test_target_with_mapping_query(self):
        params = make_params(path="/search", query={"a": [1, 2], "b": None})
        assert request_target(params) == "/search?a=1&a=2&b"


class TestPath:
    """Path normalization."""

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("", "/"),
            (None, "/"),
            ("items", "/items"),
            ("/items", "/items"),
        ],
    )
    def test_normalize_path(self, path, expected):
        assert normalize_path(path) == expected

    def test_request_line_uses_normalized_path(self):
        head = serialize_head(make_params(path="status"))
        assert head.startswith(b"GET /status HTTP/1.1\r\n")

    def test_config_path_is_not_mutated(self):
        config = ConnectionConfig(scheme="http", host="example.com", port=80, path="v1")
        serialize_head(config.merge("GET"))
        assert config.path == "v1"


class TestProxyFraming:
    """Request line differences with and without a proxy."""

    def test_absolute_uri_through_proxy(self):
        params = make_params(path="/a/b", query="x=1")
        target = request_target(params, ProxyConfig("proxy.local", 3128))
        assert target == "http://example.com:80/a/b?x=1"

    def test_relative_path_without_proxy(self):
        params = make_params(path="/a/b", query="x=1")
        assert request_target(params) == "/a/b?x=1"

    def test_proxy_connection_header_only_with_proxy(self):
        params = make_params()
        assert "Proxy-Connection" not in build_headers(params)
        assert build_headers(params, ProxyConfig("proxy.local"))["Proxy-Connection"] == "Keep-Alive"


class TestHeaders:
    """Computed and merged headers."""

    def test_defaults(self):
        headers = build_headers(make_params())
        assert headers["Host"] == "example.com:80"
        assert headers["Content-Length"] == "0"
        assert headers["Accept"] == "*/*"

    def test_caller_host_and_accept_are_kept(self):
        headers = build_headers(make_params(headers={"host": "api.example.com", "Accept": "application/json"}))
        assert headers["host"] == "api.example.com"
        assert "Host" not in headers
        assert headers["Accept"] == "application/json"

    def test_multibyte_text_length_counts_bytes(self):
        body = "€" * 5
        headers = build_headers(make_params("POST", body=body))
        assert headers["Content-Length"] == "15"

    def test_file_body_length_is_size_on_disk(self, tmp_path):
        path = tmp_path / "payload.bin"
        path.write_bytes(b"x" * 2048)
        with path.open("rb") as fh:
            headers = build_headers(make_params("PUT", body=fh))
        assert headers["Content-Length"] == "2048"

    def test_caller_content_length_is_replaced(self):
        headers = build_headers(make_params("POST", body=b"abc", headers={"content-length": "99"}))
        assert headers["content-length"] == "3"

    def test_call_headers_win_and_defaults_survive(self):
        config = ConnectionConfig(
            scheme="http",
            host="example.com",
            port=80,
            headers={"X-Token": "default", "User-Agent": "keepwire"},
        )
        params = config.merge("GET", headers={"x-token": "call"})
        headers = build_headers(params)
        assert headers["x-token"] == "call"
        assert "X-Token" not in headers
        assert headers["User-Agent"] == "keepwire"
        assert config.headers["X-Token"] == "default"

    def test_multiple_values_render_one_line_each(self):
        head = serialize_head(make_params(headers={"Cookie": ["a=1", "b=2"]}))
        assert b"Cookie: a=1\r\nCookie: b=2\r\n" in head

    def test_line_breaks_are_rejected(self):
        with pytest.raises(ValueError):
            serialize_head(make_params(headers={"X-Evil": "a\r\nInjected: 1"}))


class TestWire:
    """Exact bytes on the wire."""

    def test_full_head(self):
        params = make_params("post", path="upload", query={"v": 2}, headers={"X-Id": 7}, body="hi")
        assert serialize_head(params) == (
            b"POST /upload?v=2 HTTP/1.1\r\n"
            b"X-Id: 7\r\n"
            b"Host: example.com:80\r\n"
            b"Content-Length: 2\r\n"
            b"Accept: */*\r\n"
            b"\r\n"
        )

    def test_non_ascii_target_is_utf8(self):
        head = serialize_head(make_params(path="/café", query="q=日本"))
        assert head.startswith("GET /café?q=日本 HTTP/1.1\r\n".encode())
        assert b"Host: example.com:80\r\n" in head

    def test_non_latin1_header_is_rejected(self):
        with pytest.raises(UnicodeEncodeError):
            serialize_head(make_params(headers={"X-Name": "日本"}))

    def test_text_body_is_one_write(self):
        stream = FakeStream()
        handle = SocketHandle("example.com:80", stream)
        params = make_params("POST", body="payload")
        write_request(handle, serialize_head(params), params.body)
        assert stream.writes[1:] == [b"payload"]

    def test_stream_body_is_chunked_and_rewound(self, monkeypatch):
        monkeypatch.setattr("keepwire._request.CHUNK_SIZE", 4)
        data = io.BytesIO(b"0123456789")
        params = make_params("PUT", body=data)
        stream = FakeStream()
        handle = SocketHandle("example.com:80", stream)

        write_request(handle, serialize_head(params), params.body)
        write_request(handle, serialize_head(params), params.body)

        body_writes = [w for w in stream.writes if not w.startswith(b"PUT")]
        assert body_writes == [b"0123", b"4567", b"89"] * 2

    def test_empty_text_body_writes_nothing(self):
        stream = FakeStream()
        handle = SocketHandle("example.com:80", stream)
        write_request(handle, b"GET / HTTP/1.1\r\n\r\n", TextBody(b""))
        assert stream.writes == [b"GET / HTTP/1.1\r\n\r\n"]
