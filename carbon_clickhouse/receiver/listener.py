"""Shared receiver machinery: drop rules, counters and line buffers."""

from __future__ import annotations

import logging
import math
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from ..lifecycle import Service
from ..rowbinary import WriteBuffer
from ..tags import TagConfig

BUFFER_SIZE = 262144
DROPPED_LIST_SIZE = 1000

_MASK32 = 0xFFFFFFFF
_COUNTERS = (
    "samplesReceived",
    "messagesReceived",
    "metricsReceived",
    "errors",
    "incompleteReceived",
    "futureDropped",
    "pastDropped",
    "tooLongDropped",
)
_GAUGES = ("active",)


@dataclass
class Buffer:
    """Raw received bytes together with the time they arrived."""

    time: int = 0
    body: bytearray = field(default_factory=bytearray)

    @property
    def used(self) -> int:
        return len(self.body)

    def write(self, p) -> None:
        """Append p, silently truncated at the buffer capacity."""
        space = BUFFER_SIZE - len(self.body)
        if space > 0:
            self.body += bytes(p[:space])


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def _name_length(name) -> int:
    if isinstance(name, str):
        return len(name.encode("utf-8", "surrogateescape"))
    return len(name)


def _name_text(name) -> str:
    if isinstance(name, str):
        return name
    return bytes(name).decode("utf-8", "surrogateescape")


class Receiver(Service):
    """Base of all metric receivers."""

    def __init__(
        self,
        tag_config: TagConfig | None = None,
        *,
        write_queue: queue.Queue | None = None,
        parse_threads: int = 1,
        drop_future: int = 0,
        drop_past: int = 0,
        drop_longer_than: int = 0,
        read_timeout: int = 0,
        concat: str = "",
    ) -> None:
        super().__init__()
        self.tags = tag_config if tag_config is not None else TagConfig()
        self.write_queue = write_queue if write_queue is not None else queue.Queue()
        self.parse_threads = parse_threads
        self.drop_future = drop_future
        self.drop_past = drop_past
        self.drop_longer_than = drop_longer_than
        self.read_timeout = read_timeout
        self.concat = concat
        self.address: tuple[str, int] | None = None
        self.logger = logging.getLogger(
            f"carbon_clickhouse.receiver.{type(self).__name__.lower()}"
        )
        self._stat_lock = threading.Lock()
        self._stats = dict.fromkeys(_COUNTERS + _GAUGES, 0)
        self._dropped_lock = threading.Lock()
        self._dropped = [""] * DROPPED_LIST_SIZE
        self._dropped_next = 0

    def _add_stat(self, name: str, n: int = 1) -> None:
        with self._stat_lock:
            self._stats[name] += n

    @staticmethod
    def _now() -> int:
        return int(time.time()) & _MASK32

    def _send(self, wb: WriteBuffer) -> bool:
        """Hand a buffer to the writer; False if stopped meanwhile."""
        stop = self.stop_event
        while not stop.is_set():
            try:
                self.write_queue.put(wb, timeout=0.1)
                return True
            except queue.Full:
                continue
        return False

    def is_drop(self, now: int, metric_time: int) -> bool:
        """Whether a point is too far in the future or the past."""
        if self.drop_future and metric_time > (now + self.drop_future) & _MASK32:
            self._add_stat("futureDropped")
            return True
        if self.drop_past and now > (metric_time + self.drop_past) & _MASK32:
            self._add_stat("pastDropped")
            return True
        return False

    def is_drop_name_too_long(self, name) -> bool:
        if self.drop_longer_than and _name_length(name) > self.drop_longer_than:
            self._add_stat("tooLongDropped")
            return True
        return False

    def is_drop_point(self, name, now: int, metric_time: int, value: float) -> bool:
        """Apply all drop rules and remember the point when it is dropped."""
        if not self.is_drop(now, metric_time) and not self.is_drop_name_too_long(name):
            return False
        line = (
            f"rcv:{now}\tname:{_name_text(name)}\t"
            f"timestamp:{metric_time}\tvalue:{_format_value(value)}"
        )
        with self._dropped_lock:
            self._dropped[self._dropped_next % DROPPED_LIST_SIZE] = line
            self._dropped_next += 1
        return True

    def dropped_report(self) -> str:
        """The most recently dropped points, sorted, one per line."""
        with self._dropped_lock:
            entries = [entry for entry in self._dropped if entry]
        return "".join(entry + "\n" for entry in sorted(entries))

    def send_stat(self, send: Callable[[str, float], None], *args: str) -> None:
        """Report the named counters (resetting them) and gauges."""
        for name in args:
            if name in _COUNTERS:
                with self._stat_lock:
                    value = self._stats[name]
                    self._stats[name] = 0
            elif name in _GAUGES:
                with self._stat_lock:
                    value = self._stats[name]
            else:
                continue
            send(name, float(value))

    def _serve_http(
        self,
        host: str,
        port: int,
        handle: Callable[[bytes], tuple[int, str]],
    ) -> None:
        receiver = self

        class Handler(BaseHTTPRequestHandler):
            timeout = 10

            def _handle(self) -> None:
                length = int(self.headers.get("Content-Length") or 0)
                body = self.rfile.read(length) if length > 0 else b""
                status, message = handle(body)
                payload = (message + "\n").encode("utf-8") if message else b""
                self.send_response(int(status))
                if message:
                    self.send_header("Content-Type", "text/plain; charset=utf-8")
                self.send_header("Content-Length", str(len(payload)))
                self.end_headers()
                self.wfile.write(payload)

            do_POST = _handle
            do_PUT = _handle
            do_GET = _handle

            def log_message(self, format: str, *args) -> None:  # noqa: A002
                receiver.logger.debug(format, *args)

        def start() -> None:
            server = ThreadingHTTPServer((host, port), Handler)
            server.daemon_threads = True
            self.address = server.server_address[:2]

            def watch(event: threading.Event) -> None:
                event.wait()
                server.shutdown()
                server.server_close()

            self.go(lambda event: server.serve_forever(poll_interval=0.1))
            self.go(watch)

        self.start_func(start)