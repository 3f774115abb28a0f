'''
error kinds raised by a keepwire Connection

Raises
------
SocketError
    _transport failure: connect, TLS handshake, socket I/O or response framing_
HTTPStatusError
    _a response arrived but its status is not one the caller expects_
'''
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from keepwire._models import RequestParams
    from keepwire._response import Response


class KeepwireError(Exception):
    ...


class SocketError(KeepwireError):
    '''
    Wraps the lower level exception that broke the transport.

    Parent: KeepwireError
    '''

    def __init__(self, socket_error: BaseException) -> None:
        self.socket_error: BaseException = socket_error
        super().__init__(f'{socket_error} ({type(socket_error).__name__})')


class HTTPStatusError(KeepwireError):
    '''
    Raised when the response status is outside of the `expects` set.

    Parent: KeepwireError
    '''

    def __init__(
        self,
        message: str,
        request: RequestParams,
        response: Response,
    ) -> None:
        super().__init__(message)
        self.request = request
        self.response = response

    @classmethod
    def from_response(
        cls,
        request: RequestParams,
        response: Response,
    ) -> HTTPStatusError:
        expected = ', '.join(str(status) for status in sorted(request.expects or ()))
        actual = f'{response.status} {response.reason}'.strip()
        return cls(
            f'Expected({expected}) <=> Actual({actual})',
            request,
            response,
        )
