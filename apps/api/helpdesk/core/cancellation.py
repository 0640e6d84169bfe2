import threading
import time

from .errors import OperationCancelled


class CancelToken:
    """Request-scoped cancellation signal with an optional deadline.

    Engines check it before persisting and again just before commit.
    """

    def __init__(self, timeout: float | None = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled("operation cancelled")


def check_cancelled(token: CancelToken | None) -> None:
    if token is not None:
        token.raise_if_cancelled()


def is_cancelled(token: CancelToken | None) -> bool:
    return token is not None and token.cancelled
