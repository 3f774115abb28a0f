import logging
from collections.abc import Callable

from keepwire._transport import SocketHandle

logger = logging.getLogger(__name__)


class SocketRegistry:
    '''
    At most one live SocketHandle per `host:port` key.

    A registry belongs to a single execution context (one thread, task or
    process). It does no locking, so it must not be shared between callers
    that run concurrently.
    '''
    __slots__ = (
        '_sockets',
    )

    def __init__(self) -> None:
        self._sockets: dict[str, SocketHandle] = {}

    def acquire(self, key: str, connect: Callable[[], SocketHandle]) -> SocketHandle:
        '''
        Return the live handle for `key`, replacing it through `connect`
        when it is missing or closed.

        Parameters
        ----------
        key : str
        connect : Callable[[], SocketHandle]
            Opens a new handle; nothing is registered if it raises.

        Returns
        -------
        SocketHandle
        '''
        handle = self._sockets.get(key)
        if handle is not None:
            if not handle.closed:
                logger.debug(f'Reusing connection for {key}')
                return handle
            self.invalidate(key)

        handle = connect()
        self._sockets[key] = handle
        return handle

    def invalidate(self, key: str) -> None:
        '''
        Close and forget the handle for `key`. Safe to call for keys
        that are absent or already closed.
        '''
        handle = self._sockets.pop(key, None)
        if handle is None:
            return
        logger.debug(f'Discarding connection for {key}')
        handle.close()

    def close(self) -> None:
        for key in list(self._sockets):
            self.invalidate(key)

    def __contains__(self, key: object) -> bool:
        return key in self._sockets

    def __len__(self) -> int:
        return len(self._sockets)
