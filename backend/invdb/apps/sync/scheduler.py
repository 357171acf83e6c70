from __future__ import annotations

import threading
from typing import Any, Callable, Optional, Tuple


class DebouncedTask:
    """
    Run `callback` once, `delay` seconds after the last `schedule()` call.

    Each `schedule()` cancels the pending run and starts a new timer with the
    latest arguments. A run that has already started is never interrupted.
    `timer_factory` matches `threading.Timer(interval, function, args=...)`.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[..., Any],
        *,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self.delay = delay
        self._callback = callback
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Optional[Any] = None
        self._pending_args: Optional[Tuple[Any, ...]] = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending_args is not None

    def schedule(self, *args: Any) -> None:
        with self._lock:
            self._cancel_locked()
            self._generation += 1
            self._pending_args = args
            timer = self._timer_factory(self.delay, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> bool:
        with self._lock:
            had_pending = self._pending_args is not None
            self._cancel_locked()
            return had_pending

    def flush(self) -> bool:
        """Run the pending call now, on the calling thread."""
        with self._lock:
            args = self._pending_args
            self._cancel_locked()
        if args is None:
            return False
        self._callback(*args)
        return True

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._pending_args = None
        self._generation += 1

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._pending_args is None:
                return
            args = self._pending_args
            self._timer = None
            self._pending_args = None
        self._callback(*args)
