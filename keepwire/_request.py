'''
**keepwire._request**
---------

Builds the exact bytes of an HTTP/1.1 request: the request line (origin-form,
or absolute-form when talking to a proxy), the query string, the header block
and the body framing.
'''
from collections.abc import Mapping
from urllib.parse import quote_plus

from keepwire._models import (
    Body,
    HeaderValue,
    ProxyConfig,
    Query,
    RequestParams,
    StreamBody,
    TextBody,
)
from keepwire._transport import SocketHandle


CR_NL = '\r\n'
HTTP_1_1 = ' HTTP/1.1\r\n'
CHUNK_SIZE = 1_048_576


def normalize_path(path: str | None) -> str:
    '''
    Ensure the path starts with "/".
    '''
    if not path or not path.startswith('/'):
        return '/' + (path or '')
    return path


def encode_query(query: Query | None) -> str:
    '''
    Serialize a query to the text that follows the "?".

    A string is used verbatim. For a mapping, None values become a bare key,
    sequences repeat the key once per element and anything else is a single
    `key=value` pair. Values are form encoded, keys are not.

    Parameters
    ----------
    query : Query | None

    Returns
    -------
    str
        Empty when there is nothing to append.
    '''
    if query is None:
        return ''
    if isinstance(query, str):
        return query

    parts: list[str] = []
    for key, values in query.items():
        if values is None:
            parts.append(str(key))
        elif isinstance(values, (list, tuple)):
            for value in values:
                parts.append(f'{key}={quote_plus(str(value))}')
        else:
            parts.append(f'{key}={quote_plus(str(values))}')
    return '&'.join(parts)


def request_target(params: RequestParams, proxy: ProxyConfig | None = None) -> str:
    '''
    The second field of the request line. Proxies are sent the absolute URI.
    '''
    target = normalize_path(params.path)
    if proxy is not None:
        target = f'{params.scheme}://{params.host}:{params.port}{target}'

    if isinstance(params.query, str):
        target += '?' + params.query
    elif encoded := encode_query(params.query):
        target += '?' + encoded

    return target


def _find_header(headers: Mapping[str, HeaderValue], name: str) -> str | None:
    folded = name.lower()
    for key in headers:
        if key.lower() == folded:
            return key
    return None


def build_headers(
    params: RequestParams,
    proxy: ProxyConfig | None = None,
) -> dict[str, HeaderValue]:
    '''
    Compute the final header mapping for a request.

    - `Host` defaults to the destination `host:port`
    - `Content-Length` is always the byte length of the body
    - `Accept` defaults to `*/*`
    - `Proxy-Connection: Keep-Alive` is added when a proxy is used

    Parameters
    ----------
    params : RequestParams
    proxy : ProxyConfig | None, optional

    Returns
    -------
    dict[str, HeaderValue]
        A new mapping, `params.headers` is left untouched.
    '''
    headers = dict(params.headers)

    if _find_header(headers, 'Host') is None:
        headers['Host'] = params.socket_key

    length = params.body.length if params.body is not None else 0
    headers[_find_header(headers, 'Content-Length') or 'Content-Length'] = str(length)

    if _find_header(headers, 'Accept') is None:
        headers['Accept'] = '*/*'

    if proxy is not None:
        headers[_find_header(headers, 'Proxy-Connection') or 'Proxy-Connection'] = 'Keep-Alive'

    return headers


def _check_field(text: str) -> str:
    if '\r' in text or '\n' in text:
        raise ValueError(f'line breaks are not allowed in headers: {text!r}')
    return text


def serialize_head(params: RequestParams, proxy: ProxyConfig | None = None) -> bytes:
    '''
    Serialize the request line and header block, including the blank line
    that ends it.

    Parameters
    ----------
    params : RequestParams
    proxy : ProxyConfig | None, optional

    Returns
    -------
    bytes

    Raises
    ------
    ValueError
        If the method or a header contains a line break.
    '''
    request_line = _check_field(params.method) + ' ' + _check_field(request_target(params, proxy)) + HTTP_1_1

    lines = []
    for key, values in build_headers(params, proxy).items():
        if isinstance(values, (list, tuple)):
            items = values
        else:
            items = (values,)
        for value in items:
            lines.append(f'{_check_field(str(key))}: {_check_field(str(value))}{CR_NL}')

    lines.append(CR_NL)
    # the target goes out as raw utf-8, header values stay latin-1
    return request_line.encode('utf-8') + ''.join(lines).encode('latin-1')


def write_body(handle: SocketHandle, body: Body | None) -> None:
    match body:
        case None:
            return
        case TextBody(data=data):
            if data:
                handle.write(data)
        case StreamBody():
            body.rewind()
            for chunk in body.chunks(CHUNK_SIZE):
                handle.write(chunk)


def write_request(handle: SocketHandle, head: bytes, body: Body | None) -> None:
    '''
    Write a serialized head in one write, then the body.
    '''
    handle.write(head)
    write_body(handle, body)
