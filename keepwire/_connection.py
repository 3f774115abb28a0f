import functools
import logging
from collections.abc import Iterable, Mapping
from typing import Self

import h11
import httpcore
import httpx

from keepwire._errors import HTTPStatusError, SocketError
from keepwire._models import (
    ConnectionConfig,
    HeaderValue,
    ProxyConfig,
    Query,
    RequestParams,
    as_body,
)
from keepwire._proxy import resolve_proxy
from keepwire._registry import SocketRegistry
from keepwire._request import request_target, serialize_head, write_request
from keepwire._response import Response, ResponseBlock, parse_response
from keepwire._retry import retry_policy
from keepwire._transport import ConnectionOptions, open_transport

logger = logging.getLogger(__name__)


DEFAULT_PORTS = {
    'http': 80,
    'https': 443,
}

TRANSPORT_ERRORS = (
    OSError,
    httpcore.NetworkError,
    httpcore.TimeoutException,
    httpcore.ProtocolError,
    h11.ProtocolError,
)


def _split_url(url: str) -> tuple[str, str, int, str, str | None]:
    parsed = httpx.URL(url)
    scheme = parsed.scheme or 'http'
    port = parsed.port or DEFAULT_PORTS.get(scheme, 80)
    path, _, _ = parsed.raw_path.decode('ascii').partition('?')
    query = parsed.query.decode('ascii') or None
    return scheme, parsed.host, port, path, query


class Connection:
    '''
    A keep-alive HTTP/1.1 connection to one destination.

    Requests reuse the socket registered for `host:port` in `registry`. Give
    every thread (or task, or process) its own registry; a Connection built
    without one gets a private registry and closes it on `close()`.
    '''

    def __init__(
        self,
        url: str,
        *,
        scheme: str | None = None,
        host: str | None = None,
        port: int | None = None,
        path: str | None = None,
        query: Query | None = None,
        headers: Mapping[str, HeaderValue] | None = None,
        body: object = None,
        proxy_host: str | None = None,
        proxy_port: int | str | None = None,
        options: ConnectionOptions | None = None,
        registry: SocketRegistry | None = None,
        backend: httpcore.NetworkBackend | None = None,
    ) -> None:
        url_scheme, url_host, url_port, url_path, url_query = _split_url(url)

        self._config = ConnectionConfig(
            scheme=scheme or url_scheme,
            host=host or url_host,
            port=port or url_port,
            path=path if path is not None else url_path,
            query=query if query is not None else url_query,
            headers=headers or {},
            body=as_body(body),
        )
        self._proxy: ProxyConfig | None = resolve_proxy(proxy_host, proxy_port)
        self._options: ConnectionOptions = options or ConnectionOptions()
        self._owns_registry = registry is None
        self._registry: SocketRegistry = registry if registry is not None else SocketRegistry()
        self._backend: httpcore.NetworkBackend = backend or httpcore.SyncBackend()
        self._retry = retry_policy(
            retries=self._options.retries,
            delay=self._options.retry_delay,
            jitter=self._options.retry_jitter,
        )

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def proxy(self) -> ProxyConfig | None:
        return self._proxy

    @property
    def registry(self) -> SocketRegistry:
        return self._registry

    @property
    def socket_key(self) -> str:
        return self._config.destination.key

    def request(
        self,
        method: str,
        *,
        scheme: str | None = None,
        host: str | None = None,
        port: int | None = None,
        path: str | None = None,
        query: Query | None = None,
        headers: Mapping[str, HeaderValue] | None = None,
        body: object = None,
        expects: int | Iterable[int] | None = None,
        idempotent: bool = False,
        response_block: ResponseBlock | None = None,
    ) -> Response:
        '''
        Send a request and read its response.

        Parameters
        ----------
        method : str
        scheme, host, port, path, query, headers, body : optional
            Override the connection defaults for this call. Headers are
            merged over the defaults rather than replacing them.
        expects : int | Iterable[int] | None, optional
            Statuses that count as success; anything else raises
            HTTPStatusError. By default every status is accepted.
        idempotent : bool, optional
            Allow up to `options.retries` re-attempts on failure, by default False
        response_block : ResponseBlock | None, optional
            Receives `(chunk, remaining, total)` as body bytes arrive,
            instead of buffering them in `Response.body`.

        Returns
        -------
        Response

        Raises
        ------
        SocketError
            The connection, TLS handshake or socket I/O failed.
        HTTPStatusError
            The response status is not in `expects`.
        '''
        params = self._config.merge(
            method,
            scheme=scheme,
            host=host,
            port=port,
            path=path,
            query=query,
            headers=headers,
            body=body,
            expects=expects,
            idempotent=idempotent,
        )
        return self._retry.call_with_retries(
            self._attempt,
            params,
            response_block,
            idempotent=params.idempotent,
        )

    def _attempt(
        self,
        params: RequestParams,
        response_block: ResponseBlock | None,
    ) -> Response:
        key = params.socket_key
        head = serialize_head(params, self._proxy)
        connect = functools.partial(
            open_transport,
            params.destination,
            proxy=self._proxy,
            options=self._options,
            backend=self._backend,
        )

        try:
            handle = self._registry.acquire(key, connect)
            logger.debug(f'{params.method} {key} {request_target(params, self._proxy)}')
            write_request(handle, head, params.body)
            response = parse_response(handle, params, response_block)
        except TRANSPORT_ERRORS as exc:
            self._registry.invalidate(key)
            raise SocketError(exc) from exc
        except BaseException:
            self._registry.invalidate(key)
            raise

        connection_header = response.headers.get('Connection', '')
        if connection_header.lower() == 'close' or not response.keep_alive:
            self._registry.invalidate(key)

        if params.expects is not None and response.status not in params.expects:
            self._registry.invalidate(key)
            raise HTTPStatusError.from_response(params, response)

        return response

    def reset(self) -> None:
        '''
        Close the socket for the configured destination, if there is one.
        '''
        self._registry.invalidate(self.socket_key)

    def close(self) -> None:
        if self._owns_registry:
            self._registry.close()
        else:
            self.reset()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return f'<Connection {self._config.scheme}://{self.socket_key}>'
