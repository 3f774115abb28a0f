import contextlib
import dataclasses as dc
import functools
import logging
import os
import socket
import ssl

import httpcore

from keepwire._models import Destination, ProxyConfig

logger = logging.getLogger(__name__)


def default_socket_options() -> list[tuple]:
    '''
    cross platform socket options for long lived TCP connections

    Returns
    -------
    list[SockOpt]
    '''
    opts = []

    if hasattr(socket, "TCP_NODELAY"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_NODELAY, 1))

    if hasattr(socket, "SO_KEEPALIVE"):
        opts.append((socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1))

    if hasattr(socket, "TCP_KEEPIDLE"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, 60))

    if hasattr(socket, "TCP_KEEPINTVL"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, 10))

    if hasattr(socket, "TCP_KEEPCNT"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_KEEPCNT, 5))

    return opts


@dc.dataclass(slots=True)
class ConnectionOptions:
    '''
    Transport and retry settings for a Connection.
    Timeouts of None block until the operating system gives up.
    '''
    ssl_verify_peer: bool = True
    ssl_ca_path: str | None = None
    connect_timeout: float | None = None
    read_timeout: float | None = None
    retries: int = 4
    retry_delay: float = 0.0
    retry_jitter: float = 0.0
    socket_options: list[tuple] = dc.field(default_factory=default_socket_options)


TLS_1_3_CIPHERS = [
    "TLS_AES_128_GCM_SHA256",
    "TLS_AES_256_GCM_SHA384",
    "TLS_CHACHA20_POLY1305_SHA256",
]


@functools.lru_cache(maxsize=8)
def tls_context(verify_peer: bool = True, ca_path: str | None = None) -> ssl.SSLContext:
    '''
    creates the SSL context used to wrap https connections, allowing
    TLS 1.2 and 1.3 and only offering http/1.1. TLS 1.2 keeps the
    platform default cipher list.

    - with `verify_peer` the certificate chain is checked against `ca_path`
      (a directory of hashed certs or a bundle file) or the platform store,
      and the certificate must match the destination host
    - without it, chain and hostname checks are skipped entirely

    Parameters
    ----------
    verify_peer : bool, optional
        by default True
    ca_path : str | None, optional
        by default None

    Returns
    -------
    ssl.SSLContext
    '''
    if verify_peer and ca_path:
        if os.path.isdir(ca_path):
            ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, capath=ca_path)
        else:
            ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=ca_path)
    else:
        ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)

    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    ctx.maximum_version = ssl.TLSVersion.MAXIMUM_SUPPORTED

    if verify_peer:
        ctx.check_hostname = True
        ctx.verify_mode = ssl.CERT_REQUIRED
    else:
        # check_hostname has to go first, CERT_NONE is refused while it is on
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE

    with contextlib.suppress(NotImplementedError):
        ctx.set_alpn_protocols(["http/1.1"])

    ctx.options |= ssl.OP_NO_COMPRESSION

    set_ciphersuites = getattr(ctx, "set_ciphersuites", None)
    if callable(set_ciphersuites):
        # for tls 1.3
        with contextlib.suppress(ssl.SSLError):
            set_ciphersuites(":".join(TLS_1_3_CIPHERS))

    return ctx


class SocketHandle:
    '''
    An open byte stream to one destination, optionally TLS wrapped.
    '''
    __slots__ = (
        'key',
        '_stream',
        '_timeout',
        '_closed',
    )

    def __init__(
        self,
        key: str,
        stream: httpcore.NetworkStream,
        timeout: float | None = None,
    ) -> None:
        self.key: str = key
        self._stream = stream
        self._timeout = timeout
        self._closed = False

    @property
    def stream(self) -> httpcore.NetworkStream:
        return self._stream

    @property
    def closed(self) -> bool:
        '''
        True once closed locally, when the socket is gone, or when an idle
        connection turned readable because the peer hung up.
        '''
        if self._closed:
            return True

        sock = self._stream.get_extra_info('socket')
        if sock is not None and sock.fileno() == -1:
            return True

        return bool(self._stream.get_extra_info('is_readable'))

    def read(self, max_bytes: int) -> bytes:
        return self._stream.read(max_bytes, timeout=self._timeout)

    def write(self, data: bytes) -> None:
        self._stream.write(data, timeout=self._timeout)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stream.close()

    def __repr__(self) -> str:
        state = 'closed' if self._closed else 'open'
        return f'<SocketHandle {self.key} {state}>'


def open_transport(
    destination: Destination,
    *,
    proxy: ProxyConfig | None = None,
    options: ConnectionOptions | None = None,
    backend: httpcore.NetworkBackend | None = None,
) -> SocketHandle:
    '''
    Connect to the proxy when one is configured, otherwise to the destination,
    and start TLS when the destination scheme is https.

    Parameters
    ----------
    destination : Destination
    proxy : ProxyConfig | None, optional
    options : ConnectionOptions | None, optional
    backend : httpcore.NetworkBackend | None, optional
        by default `httpcore.SyncBackend()`

    Returns
    -------
    SocketHandle

    Raises
    ------
    httpcore.ConnectError
        When the TCP connection or TLS handshake fails.
    httpcore.ConnectTimeout
    '''
    options = options or ConnectionOptions()
    backend = backend or httpcore.SyncBackend()

    if proxy is not None:
        host, port = proxy.host, proxy.port
    else:
        host, port = destination.host, destination.port

    logger.debug(f'Opening connection to {host}:{port} for {destination.key}')
    stream = backend.connect_tcp(
        host,
        port,  # type: ignore[arg-type]
        timeout=options.connect_timeout,
        socket_options=options.socket_options,
    )

    if destination.is_secure:
        ctx = tls_context(options.ssl_verify_peer, options.ssl_ca_path)
        stream = stream.start_tls(
            ctx,
            server_hostname=destination.host,
            timeout=options.connect_timeout,
        )

    return SocketHandle(destination.key, stream, timeout=options.read_timeout)
