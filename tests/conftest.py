"""Shared fakes for keepwire tests.

The fakes implement httpcore's network interfaces in memory, so the engine
runs unchanged while tests inspect exactly which bytes were written and
how many connections were opened.
"""

from collections.abc import Callable

import httpcore
import pytest

from keepwire import SocketHandle


def http_response(
    status: int = 200,
    body: bytes = b"",
    headers: dict[str, str] | None = None,
    reason: str = "OK",
) -> bytes:
    """Build raw HTTP/1.1 response bytes with a Content-Length."""
    lines = [f"HTTP/1.1 {status} {reason}\r\n"]
    for name, value in (headers or {}).items():
        lines.append(f"{name}: {value}\r\n")
    lines.append(f"Content-Length: {len(body)}\r\n\r\n")
    return "".join(lines).encode("latin-1") + body


class FakeStream(httpcore.NetworkStream):
    """An in-memory stream that records writes and replays scripted reads."""

    def __init__(self, reads: list[bytes] | None = None) -> None:
        self.reads = list(reads or [])
        self.written = bytearray()
        self.writes: list[bytes] = []
        self.closed = False
        self.readable = False
        self.tls: tuple | None = None
        self.fail_write: Exception | None = None

    def read(self, max_bytes: int, timeout: float | None = None) -> bytes:
        if self.closed:
            raise httpcore.ReadError("stream closed")
        if not self.reads:
            return b""
        return self.reads.pop(0)

    def write(self, buffer: bytes, timeout: float | None = None) -> None:
        if self.closed:
            raise httpcore.WriteError("stream closed")
        if self.fail_write is not None:
            raise self.fail_write
        self.writes.append(bytes(buffer))
        self.written += buffer

    def close(self) -> None:
        self.closed = True

    def start_tls(self, ssl_context, server_hostname=None, timeout=None):
        self.tls = (ssl_context, server_hostname)
        return self

    def get_extra_info(self, info: str):
        if info == "is_readable":
            return self.readable
        return None


class FakeBackend(httpcore.NetworkBackend):
    """Hands out a new FakeStream for every connect_tcp call.

    ``script`` holds, per connection, the list of chunks the server sends.
    A connection past the end of the script gets an empty stream.
    ``connect_error`` makes every connection attempt fail.
    """

    def __init__(
        self,
        script: list[list[bytes]] | None = None,
        connect_error: Exception | None = None,
    ) -> None:
        self.script = list(script or [])
        self.connect_error = connect_error
        self.connects: list[tuple] = []
        self.streams: list[FakeStream] = []

    def connect_tcp(
        self,
        host,
        port,
        timeout=None,
        local_address=None,
        socket_options=None,
    ) -> FakeStream:
        self.connects.append((host, port))
        if self.connect_error is not None:
            raise self.connect_error
        reads = self.script.pop(0) if self.script else []
        stream = FakeStream(reads)
        self.streams.append(stream)
        return stream


@pytest.fixture
def make_handle() -> Callable[..., SocketHandle]:
    def factory(reads: list[bytes] | None = None, key: str = "example.com:80") -> SocketHandle:
        return SocketHandle(key, FakeStream(reads))

    return factory


@pytest.fixture(autouse=True)
def no_env_proxy(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's http_proxy out of the tests."""
    monkeypatch.delenv("http_proxy", raising=False)
