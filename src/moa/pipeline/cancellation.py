"""
Cancellation and deadlines for a single pipeline run.

The hosting layer owns the token. When the client disconnects it calls
cancel(); when a timeout was given the token fires on its own once the
deadline passes. The pipeline checks the token between stages and
registers a callback that seals the in-flight response the moment the
token fires, so a stage still running cannot write to it afterwards.

Stages are not interrupted mid-call: a thread cannot be safely killed.
A long-running stage may poll ``token.cancelled`` itself.
"""

from typing import Callable, List, Optional
import logging
import threading
import time


logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Thread-safe, one-shot cancellation signal with an optional deadline.

    Args:
        timeout: Seconds from now after which the token counts as cancelled.
        clock: Monotonic time source, injected by tests.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._deadline = clock() + timeout if timeout is not None else None
        self._event = threading.Event()
        self._reason = "cancelled"
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        """True once cancel() was called or the deadline has passed."""
        if self._event.is_set():
            return True
        if self._deadline is not None and self._clock() >= self._deadline:
            self.cancel("timed out")
            return True
        return False

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Fire the token. Callbacks run once, in registration order."""
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception:
                # The canceller must not be the one to crash
                logger.exception("Cancellation callback failed")

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run callback when the token fires (immediately if it already has)."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
