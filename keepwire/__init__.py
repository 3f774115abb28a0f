'''
**keepwire**
---------

A small HTTP/1.1 client engine: it owns the socket to each destination,
negotiates TLS, writes wire-exact requests, keeps one reusable connection per
`host:port` in an explicit `SocketRegistry`, and retries idempotent requests
a bounded number of times. See `keepwire._connection.Connection`.
'''
from keepwire._connection import Connection
from keepwire._errors import HTTPStatusError, KeepwireError, SocketError
from keepwire._models import (
    ConnectionConfig,
    Destination,
    ProxyConfig,
    RequestParams,
    StreamBody,
    TextBody,
    as_body,
    merge_headers,
)
from keepwire._proxy import resolve_proxy
from keepwire._registry import SocketRegistry
from keepwire._request import build_headers, encode_query, normalize_path, serialize_head
from keepwire._response import Response, parse_response
from keepwire._retry import FailureKind, classify, retry_policy
from keepwire._transport import ConnectionOptions, SocketHandle, open_transport, tls_context

__all__ = [
    'Connection',
    'HTTPStatusError',
    'KeepwireError',
    'SocketError',
    'ConnectionConfig',
    'Destination',
    'ProxyConfig',
    'RequestParams',
    'StreamBody',
    'TextBody',
    'as_body',
    'merge_headers',
    'resolve_proxy',
    'SocketRegistry',
    'build_headers',
    'encode_query',
    'normalize_path',
    'serialize_head',
    'Response',
    'parse_response',
    'FailureKind',
    'classify',
    'retry_policy',
    'ConnectionOptions',
    'SocketHandle',
    'open_transport',
    'tls_context',
]
