"""Deadline and cancellation token threaded through storage calls."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from loguru import logger

from src.catalog.core.errors import StorageTimeoutError


class Deadline:
    """A point in time after which work should stop, plus a cancel switch.

    Deadlines form a chain: a child derived from a parent expires no later
    than the parent and is cancelled whenever the parent is.
    """

    def __init__(
        self,
        timeout: float | None = None,
        parent: Deadline | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._parent = parent
        self._lock = threading.Lock()
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

        expires_at = None if timeout is None else clock() + timeout
        if parent is not None and parent.expires_at is not None:
            if expires_at is None or parent.expires_at < expires_at:
                expires_at = parent.expires_at
        self._expires_at = expires_at

    @classmethod
    def after(cls, seconds: float | None) -> Deadline:
        """Deadline expiring ``seconds`` from now (unbounded for None)."""
        return cls(timeout=seconds)

    @classmethod
    def derive(cls, parent: Deadline | None, seconds: float | None) -> Deadline:
        """Child of ``parent`` bounded by ``seconds`` from now."""
        if parent is None:
            return cls(timeout=seconds)
        return cls(timeout=seconds, parent=parent, clock=parent._clock)

    @property
    def expires_at(self) -> float | None:
        return self._expires_at

    def remaining(self) -> float | None:
        """Seconds left before expiry, never negative; None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def done(self) -> bool:
        """True once the deadline has expired or been cancelled."""
        return self.cancelled or self.expired

    def cancel(self) -> None:
        """Cancel this deadline and run its callbacks once."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Deadline cancel callback failed")

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` to run on cancellation.

        Returns a function that unregisters it. When the deadline is already
        cancelled the callback runs immediately.
        """
        with self._lock:
            run_now = self._cancelled
            if not run_now:
                self._callbacks.append(callback)

        if run_now:
            callback()
            return lambda: None

        unregister_parent = (
            self._parent.on_cancel(callback) if self._parent is not None else None
        )

        def unregister() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)
            if unregister_parent is not None:
                unregister_parent()

        return unregister

    def check(self) -> None:
        """Raise StorageTimeoutError when the deadline is done."""
        if self.cancelled:
            raise StorageTimeoutError("Operation cancelled")
        if self.expired:
            raise StorageTimeoutError("Operation timed out")

    def __repr__(self) -> str:
        return (
            f"Deadline(remaining={self.remaining()!r}, cancelled={self.cancelled!r})"
        )
