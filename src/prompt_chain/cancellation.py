"""Cancellation token shared by a run and its step executions."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from prompt_chain.errors import DEFAULT_ABORT_REASON


logger = logging.getLogger(__name__)

CancelCallback = Callable[[str], None]


class CancellationToken:
    """
    One-shot cancellation signal.

    Once cancelled it stays cancelled. Callbacks run synchronously, exactly once,
    on the thread that calls cancel().
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reason: str | None = None
        self._callbacks: list[CancelCallback] = []
        self._claimed = False

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> bool:
        with self._lock:
            if self._reason is not None:
                return False
            self._reason = reason or DEFAULT_ABORT_REASON
            callbacks = self._callbacks
            self._callbacks = []
        for callback in callbacks:
            self._fire(callback)
        return True

    def claim(self) -> None:
        """Mark the token as owned by a run; a token drives at most one run."""
        with self._lock:
            if self._claimed:
                raise RuntimeError("Cancellation token is already bound to a run.")
            self._claimed = True

    def add_callback(self, callback: CancelCallback) -> Callable[[], None]:
        with self._lock:
            fire_now = self._reason is not None
            if not fire_now:
                self._callbacks.append(callback)
        if fire_now:
            self._fire(callback)

        def remove() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return remove

    def _fire(self, callback: CancelCallback) -> None:
        reason = self._reason or DEFAULT_ABORT_REASON
        try:
            callback(reason)
        except Exception:
            logger.exception("Cancellation callback failed")
