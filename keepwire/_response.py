import dataclasses as dc
import logging
from collections.abc import Callable

import h11
import httpx

from keepwire._models import RequestParams
from keepwire._transport import SocketHandle

logger = logging.getLogger(__name__)


READ_SIZE = 16_384

ResponseBlock = Callable[[bytes, int | None, int | None], None]


@dc.dataclass(slots=True)
class Response:
    '''
    A parsed HTTP/1.1 response.

    `body` is empty when the body was streamed to a `response_block`.
    `keep_alive` is False when the server will not accept another request
    on the same connection.
    '''
    status: int
    reason: str = ''
    headers: httpx.Headers = dc.field(default_factory=httpx.Headers)
    body: bytes = b''
    http_version: str = '1.1'
    keep_alive: bool = True

    @property
    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace')


def _content_length(headers: httpx.Headers) -> int | None:
    value = headers.get('Content-Length')
    if value is None or not value.isdigit():
        return None
    return int(value)


def _prime(params: RequestParams) -> h11.Connection:
    '''
    Create a client side h11 state machine that believes the request has
    been sent, so it frames the response for the right method.
    '''
    conn = h11.Connection(our_role=h11.CLIENT)
    headers = [('Host', params.host)]
    for key, value in params.headers.items():
        if key.lower() == 'connection' and isinstance(value, str):
            headers.append(('Connection', value))
    conn.send(h11.Request(method=params.method, target='/', headers=headers))
    conn.send(h11.EndOfMessage())
    return conn


def parse_response(
    handle: SocketHandle,
    params: RequestParams,
    response_block: ResponseBlock | None = None,
) -> Response:
    '''
    Read one response from `handle`, leaving the stream positioned right
    after it so the connection can be reused.

    Parameters
    ----------
    handle : SocketHandle
    params : RequestParams
        The request the response answers.
    response_block : ResponseBlock | None, optional
        Called as `response_block(chunk, remaining, total)` for every body
        chunk instead of buffering the body. `remaining` and `total` are
        None when the server did not send a Content-Length.

    Returns
    -------
    Response

    Raises
    ------
    h11.RemoteProtocolError
        If the server sends something that is not valid HTTP/1.1 or closes
        the connection mid response.
    '''
    conn = _prime(params)
    response: Response | None = None
    chunks: list[bytes] = []
    total: int | None = None
    received = 0

    while True:
        event = conn.next_event()

        if event is h11.NEED_DATA:
            conn.receive_data(handle.read(READ_SIZE))
            continue

        if isinstance(event, h11.InformationalResponse):
            logger.debug(f'Skipping informational response {event.status_code}')
            continue

        if isinstance(event, h11.Response):
            headers = httpx.Headers(list(event.headers.raw_items()))
            response = Response(
                status=event.status_code,
                reason=event.reason.decode('latin-1'),
                headers=headers,
                http_version=event.http_version.decode('ascii'),
            )
            total = _content_length(headers)
            continue

        if isinstance(event, h11.Data):
            received += len(event.data)
            if response_block is None:
                chunks.append(event.data)
            else:
                remaining = total - received if total is not None else None
                response_block(event.data, remaining, total)
            continue

        if isinstance(event, h11.EndOfMessage):
            break

        raise h11.RemoteProtocolError(f'unexpected event while reading response: {event!r}')

    assert response is not None
    response.body = b''.join(chunks)
    response.keep_alive = conn.our_state is h11.DONE and conn.their_state is h11.DONE
    return response
