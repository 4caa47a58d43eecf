"""
Cooperative cancellation shared by every blocking operation of the client
"""

import threading
import time
from typing import Optional

from .error_classifier import CMSClientError


class Cancelled(CMSClientError):
    """Raised when an operation stops because its token was cancelled"""
    pass


class CancellationToken:
    """Thread-safe cancellation flag checked at every suspend point"""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        """Request cancellation and wake up any pending wait"""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled(self.reason or "Operation cancelled")

    def wait(self, seconds: float) -> None:
        """
        Sleep for the given duration unless cancelled first

        Raises:
            Cancelled: If the token is cancelled before or during the wait
        """
        self.raise_if_cancelled()
        if self._event.wait(max(seconds, 0.0)):
            self.raise_if_cancelled()


def interruptible_sleep(seconds: float, cancel_token: Optional[CancellationToken] = None) -> None:
    """Sleep that wakes early with Cancelled when a token is given and fires"""
    if seconds <= 0:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        return

    if cancel_token is None:
        time.sleep(seconds)
    else:
        cancel_token.wait(seconds)
