"""Receiver of the plain graphite protocol over TCP."""

from __future__ import annotations

import queue
import socket
import threading

from .listener import BUFFER_SIZE, Buffer, Receiver
from .plain import run_parser


class TCP(Receiver):
    """Reads newline-terminated lines from TCP connections."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.parse_queue: queue.Queue = queue.Queue()
        self._conns: set[socket.socket] = set()
        self._conns_lock = threading.Lock()

    def stat(self, send) -> None:
        self.send_stat(
            send, "metricsReceived", "errors", "active", "futureDropped", "pastDropped",
            "tooLongDropped",
        )

    def handle_connection(self, conn: socket.socket) -> None:
        """Read conn until it closes, queueing complete lines for parsing."""
        self._add_stat("active")
        with self._conns_lock:
            self._conns.add(conn)
        try:
            self._read_loop(conn)
        finally:
            with self._conns_lock:
                self._conns.discard(conn)
            self._add_stat("active", -1)
            conn.close()

    def _read_loop(self, conn: socket.socket) -> None:
        conn.settimeout(self.read_timeout or None)
        pending = bytearray()
        while True:
            try:
                data = conn.recv(BUFFER_SIZE - len(pending))
            except OSError as exc:
                if not self.stop_event.is_set():
                    self._add_stat("errors")
                    self.logger.error("read failed: %s", exc)
                return
            if not data:
                if pending:
                    self.logger.warning("unfinished line: %r", bytes(pending))
                return
            pending += data
            cut = pending.rfind(b"\n") + 1
            if cut > 0:
                self.parse_queue.put(Buffer(time=self._now(), body=bytearray(pending[:cut])))
                del pending[:cut]
            elif len(pending) >= BUFFER_SIZE:
                self._add_stat("errors")
                self.logger.warning("line too long, dropped")
                pending.clear()

    def _accept_loop(self, sock: socket.socket, event: threading.Event) -> None:
        try:
            while not event.is_set():
                try:
                    conn, _ = sock.accept()
                except socket.timeout:
                    continue
                except OSError as exc:
                    if event.is_set():
                        break
                    self.logger.warning("failed to accept connection: %s", exc)
                    continue
                conn.settimeout(None)
                self.go(lambda _event, c=conn: self.handle_connection(c))
        finally:
            sock.close()

    def listen(self, host: str, port: int) -> None:
        """Bind host:port and start accepting and parsing."""

        def start() -> None:
            sock = socket.create_server((host, port))
            sock.settimeout(0.1)
            self.address = sock.getsockname()[:2]
            self.go(lambda event: self._accept_loop(sock, event))
            for _ in range(self.parse_threads):
                self.go(lambda event: run_parser(self, self.parse_queue))

        self.start_func(start)

    def _close_connections(self) -> None:
        with self._conns_lock:
            conns = list(self._conns)
        for conn in conns:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

    def stop(self) -> None:
        self.stop_func(self._close_connections)