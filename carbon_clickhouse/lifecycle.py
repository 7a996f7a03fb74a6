"""Start/stop lifecycle shared by long-running components."""

from __future__ import annotations

import threading
from collections.abc import Callable


class Service:
    """A component that runs background threads until stopped.

    Threads started with go() receive the stop event; stop() sets it and
    waits for every such thread to finish.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._threads_lock = threading.Lock()
        self._threads: set[threading.Thread] = set()
        self._stop_event: threading.Event | None = None

    @property
    def running(self) -> bool:
        return self._stop_event is not None

    @property
    def stop_event(self) -> threading.Event:
        """The current stop event, or a never-set one when not running."""
        event = self._stop_event
        return event if event is not None else threading.Event()

    def start_func(self, start_procedure: Callable[[], None]) -> None:
        """Start once, running start_procedure; stop again if it raises."""
        with self._lock:
            if self._stop_event is not None:
                return
            self._stop_event = threading.Event()
            try:
                start_procedure()
            except BaseException:
                self._do_stop(None)
                raise

    def start(self) -> None:
        self.start_func(lambda: None)

    def go(self, target: Callable[[threading.Event], None]) -> None:
        """Run target(stop_event) in a tracked thread; no-op when stopped."""
        event = self._stop_event
        if event is None:
            return

        def run() -> None:
            try:
                target(event)
            finally:
                with self._threads_lock:
                    self._threads.discard(thread)

        thread = threading.Thread(target=run, daemon=True)
        with self._threads_lock:
            self._threads.add(thread)
        thread.start()

    def _wait(self) -> None:
        current = threading.current_thread()
        while True:
            with self._threads_lock:
                pending = [t for t in self._threads if t is not current]
                if not pending:
                    return
                thread = pending[0]
                self._threads.discard(thread)
            thread.join()

    def _do_stop(self, procedure: Callable[[], None] | None) -> None:
        event = self._stop_event
        if event is None:
            return
        event.set()
        if procedure is not None:
            procedure()
        self._wait()
        self._stop_event = None

    def stop_func(self, procedure: Callable[[], None]) -> None:
        """Signal stop, run procedure, then wait for all threads."""
        with self._lock:
            if self._stop_event is None:
                return
            self._do_stop(procedure)

    def stop(self) -> None:
        self.stop_func(lambda: None)