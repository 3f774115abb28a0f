'''
retry policy for keepwire requests

Only requests the caller marked idempotent are retried. Transport failures
always qualify, status failures qualify unless the server answered 404.
Once the attempts run out the last failure is raised unchanged.
'''
import enum
import functools
import logging
import random
import time
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from keepwire._errors import HTTPStatusError, SocketError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


class FailureKind(enum.Enum):
    TRANSPORT = 'transport'
    STATUS = 'status'


def classify(exc: BaseException) -> FailureKind | None:
    if isinstance(exc, SocketError):
        return FailureKind.TRANSPORT
    if isinstance(exc, HTTPStatusError):
        return FailureKind.STATUS
    return None


class retry_policy:

    NOT_RETRYABLE_STATUS = 404

    def __init__(
        self,
        *,
        retries: int = 4,
        delay: float = 0.0,
        jitter: float = 0.0,
    ) -> None:
        '''
        Parameters
        ----------
        retries : int, optional
            Re-attempts after the first failure, by default 4
        delay : float, optional
            The base delay between attempts, by default 0.0 (retry at once)
        jitter : float, optional
            The jitter factor to apply to the delay, by default 0.0
        '''
        self.retries: int = retries
        self.delay: float = delay
        self.jitter: float = jitter

    @property
    def attempts(self) -> int:
        return self.retries + 1

    def get_timeout(self, attempt_no: int) -> float:
        base = self.delay * attempt_no

        if self.jitter:
            j = base * self.jitter
            base += random.uniform(-j, j)

        return max(0.0, base)

    def should_retry(self, exc: BaseException, *, idempotent: bool) -> bool:
        '''
        Decide whether a failed attempt may be made again.

        Parameters
        ----------
        exc : BaseException
            The failure of the attempt.
        idempotent : bool
            Whether the caller said resending the request is safe.

        Returns
        -------
        bool
        '''
        if not idempotent:
            return False

        kind = classify(exc)
        if kind is FailureKind.TRANSPORT:
            return True
        if kind is FailureKind.STATUS:
            return exc.response.status != self.NOT_RETRYABLE_STATUS  # type: ignore[attr-defined]
        return False

    def call_with_retries(
        self,
        func: Callable[P, R],
        *args,
        idempotent: bool = False,
        **kwargs
    ) -> R:
        attempt_no = 1
        while True:
            try:
                return func(*args, **kwargs)
            except (SocketError, HTTPStatusError) as exc:
                if attempt_no >= self.attempts or not self.should_retry(exc, idempotent=idempotent):
                    raise
                logger.warning(
                    f'Attempt {attempt_no}/{self.attempts} failed, retrying: {exc}'
                )
                timeout = self.get_timeout(attempt_no)
                if timeout:
                    time.sleep(timeout)
                attempt_no += 1

    def __call__(self, func: Callable[P, R]) -> Callable[P, R]:
        '''
        Decorator form, for functions whose every call is idempotent.
        '''

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            return self.call_with_retries(func, *args, idempotent=True, **kwargs)

        return wrapper
