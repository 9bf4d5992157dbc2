# apimanager/signal.py
"""
Event delivery for issued requests.

Signal:
- Multi-subscriber channel carrying zero or more progress events and then
  exactly one terminal outcome.
- Anything fired after the terminal outcome is dropped.

MainContext:
- The single delivery context every outcome is dispatched on (one thread,
  FIFO), so a listener never runs concurrently with itself.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Any, Callable, Generic, List, Optional, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")
Listener = Callable[[T], None]


def _is_terminal(event: Any) -> bool:
    return bool(getattr(event, "is_terminal", False))


class Signal(Generic[T]):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []
        self._events: List[T] = []
        self._result: Optional[T] = None
        self._done = threading.Event()

    # -----------------------------
    # Subscription
    # -----------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register listener for future events.

        A listener added after the terminal outcome gets that outcome
        immediately. Returns a callable that removes the listener.
        """
        with self._lock:
            terminal = self._result
            if terminal is None:
                self._listeners.append(listener)

        if terminal is not None:
            self._notify(listener, terminal)
            return lambda: None

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # -----------------------------
    # Delivery
    # -----------------------------
    def fire(self, event: T) -> bool:
        """Deliver event to every listener. Returns False if it was dropped."""
        with self._lock:
            if self._result is not None:
                log.debug("Signal already resolved, dropping %s", type(event).__name__)
                return False
            self._events.append(event)
            listeners = list(self._listeners)
            terminal = _is_terminal(event)
            if terminal:
                self._result = event
                self._listeners.clear()

        for listener in listeners:
            self._notify(listener, event)

        if terminal:
            self._done.set()
        return True

    def _notify(self, listener: Listener, event: T) -> None:
        try:
            listener(event)
        except Exception:
            log.exception("Signal listener %r raised on %s", listener, type(event).__name__)

    # -----------------------------
    # Inspection
    # -----------------------------
    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def result(self) -> Optional[T]:
        return self._result

    @property
    def events(self) -> List[T]:
        with self._lock:
            return list(self._events)

    def wait(self, timeout: Optional[float] = None) -> Optional[T]:
        """Block until the terminal outcome was delivered; None on timeout."""
        if not self._done.wait(timeout):
            return None
        return self._result


class MainContext:
    def __init__(self, name: str = "main") -> None:
        self.name = name
        self._pool = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)

    def dispatch(self, fn: Callable[..., Any], *args: Any) -> concurrent.futures.Future:
        return self._pool.submit(self._run, fn, args)

    def _run(self, fn: Callable[..., Any], args: tuple) -> None:
        try:
            fn(*args)
        except Exception:
            log.exception("[%s] dispatched callable %r raised", self.name, fn)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until everything dispatched so far has run."""
        marker = self._pool.submit(lambda: None)
        try:
            marker.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            return False
        return True

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)


_MAIN: Optional[MainContext] = None
_MAIN_LOCK = threading.Lock()


def main_context() -> MainContext:
    global _MAIN
    with _MAIN_LOCK:
        if _MAIN is None:
            _MAIN = MainContext()
        return _MAIN
