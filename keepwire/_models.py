import dataclasses as dc
import io
import os
import stat
from collections.abc import Iterable, Iterator, Mapping, Sequence
from types import MappingProxyType
from typing import IO, NamedTuple, TypeAlias


HeaderValue: TypeAlias = str | int | Sequence[str | int]
QueryValue: TypeAlias = str | int | float | Sequence[str | int | float] | None
Query: TypeAlias = str | Mapping[str, QueryValue]


class Destination(NamedTuple):
    '''
    Where a request is logically addressed, independent of any proxy.
    '''
    scheme: str
    host: str
    port: int | str

    @property
    def key(self) -> str:
        return f'{self.host}:{self.port}'

    @property
    def is_secure(self) -> bool:
        return self.scheme == 'https'


@dc.dataclass(slots=True, frozen=True)
class ProxyConfig:
    host: str
    port: int | str = 8080


@dc.dataclass(slots=True, frozen=True)
class TextBody:
    '''
    An in-memory body, already encoded to bytes.
    '''
    data: bytes

    @property
    def length(self) -> int:
        return len(self.data)

    def rewind(self) -> None:
        return None

    def chunks(self, size: int) -> Iterator[bytes]:
        if self.data:
            yield self.data


@dc.dataclass(slots=True)
class StreamBody:
    '''
    A binary file-like body that is read in bounded chunks.

    `start` is the offset the stream was at when the body was built,
    or None when the stream cannot seek.
    '''
    stream: IO[bytes]
    length: int
    start: int | None = None

    def rewind(self) -> None:
        if self.start is not None:
            self.stream.seek(self.start)

    def chunks(self, size: int) -> Iterator[bytes]:
        while chunk := self.stream.read(size):
            yield chunk


Body: TypeAlias = TextBody | StreamBody


def _tell(stream: IO[bytes]) -> int | None:
    try:
        return stream.tell()
    except (AttributeError, OSError):
        return None


def _file_size(stream: IO[bytes]) -> int | None:
    '''
    Size on disk, only trusted for regular files.
    '''
    try:
        st = os.fstat(stream.fileno())
    except (AttributeError, OSError):
        return None
    return st.st_size if stat.S_ISREG(st.st_mode) else None


def stream_body(stream: IO) -> StreamBody:
    '''
    Wrap a readable stream, measuring how many bytes it will yield.

    Parameters
    ----------
    stream : IO
        A binary file-like object. Text-mode files are unwrapped to
        their underlying binary buffer.

    Returns
    -------
    StreamBody

    Raises
    ------
    TypeError
        If the stream is text-only or its size cannot be determined.
    '''
    stream = getattr(stream, 'buffer', stream)
    if isinstance(stream, io.TextIOBase):
        raise TypeError('text streams cannot be sent as a body, open the file in binary mode')

    start = _tell(stream)
    size = _file_size(stream)
    if size is None:
        if start is None:
            raise TypeError(
                f'cannot determine the size of a {type(stream).__name__} body'
            )
        size = stream.seek(0, io.SEEK_END)
        stream.seek(start)

    return StreamBody(
        stream=stream,
        length=max(0, size - (start or 0)),
        start=start,
    )


def as_body(value: object) -> Body | None:
    '''
    Convert whatever the caller passed as a body into a `TextBody`
    or `StreamBody`.
    '''
    match value:
        case None:
            return None
        case TextBody() | StreamBody():
            return value
        case str():
            return TextBody(value.encode('utf-8'))
        case bytes() | bytearray() | memoryview():
            return TextBody(bytes(value))

    if callable(getattr(value, 'read', None)):
        return stream_body(value)  # type: ignore[arg-type]

    raise TypeError(f'unsupported body type: {type(value).__name__}')


def merge_headers(
    defaults: Mapping[str, HeaderValue],
    overrides: Mapping[str, HeaderValue] | None = None,
) -> dict[str, HeaderValue]:
    '''
    Merge call headers over the connection defaults without touching either.
    Header names collide case-insensitively and the call site wins.

    Parameters
    ----------
    defaults : Mapping[str, HeaderValue]
    overrides : Mapping[str, HeaderValue] | None, optional

    Returns
    -------
    dict[str, HeaderValue]
        A new mapping owned by the caller.
    '''
    merged = dict(defaults)
    for name, value in (overrides or {}).items():
        folded = name.lower()
        for existing in [key for key in merged if key.lower() == folded]:
            del merged[existing]
        merged[name] = value
    return merged


def normalize_expects(expects: int | Iterable[int] | None) -> frozenset[int] | None:
    if expects is None:
        return None
    if isinstance(expects, int):
        return frozenset((expects,))
    return frozenset(int(status) for status in expects)


@dc.dataclass(slots=True, frozen=True)
class RequestParams:
    '''
    The effective parameters of one call: the connection defaults with the
    call-site overrides merged on top. Rebuilt for every request.
    '''
    method: str
    scheme: str
    host: str
    port: int | str
    path: str = ''
    query: Query | None = None
    headers: Mapping[str, HeaderValue] = dc.field(default_factory=dict)
    body: Body | None = None
    expects: frozenset[int] | None = None
    idempotent: bool = False

    @property
    def destination(self) -> Destination:
        return Destination(self.scheme, self.host, self.port)

    @property
    def socket_key(self) -> str:
        return self.destination.key


@dc.dataclass(slots=True, frozen=True)
class ConnectionConfig:
    '''
    Defaults captured when a Connection is built. Every field can be
    overridden per call through `merge`.
    '''
    scheme: str
    host: str
    port: int | str
    path: str = ''
    query: Query | None = None
    headers: Mapping[str, HeaderValue] = dc.field(default_factory=dict)
    body: Body | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, 'headers', MappingProxyType(dict(self.headers)))

    @property
    def destination(self) -> Destination:
        return Destination(self.scheme, self.host, self.port)

    def merge(
        self,
        method: str,
        *,
        scheme: str | None = None,
        host: str | None = None,
        port: int | str | None = None,
        path: str | None = None,
        query: Query | None = None,
        headers: Mapping[str, HeaderValue] | None = None,
        body: object = None,
        expects: int | Iterable[int] | None = None,
        idempotent: bool = False,
    ) -> RequestParams:
        '''
        Build the parameters of a single request. Arguments left as None
        fall back to this config.
        '''
        return RequestParams(
            method=method.upper(),
            scheme=scheme if scheme is not None else self.scheme,
            host=host if host is not None else self.host,
            port=port if port is not None else self.port,
            path=path if path is not None else self.path,
            query=query if query is not None else self.query,
            headers=merge_headers(self.headers, headers),
            body=as_body(body) if body is not None else self.body,
            expects=normalize_expects(expects),
            idempotent=idempotent,
        )
