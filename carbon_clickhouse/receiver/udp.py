"""Receiver of the plain graphite protocol over UDP."""

from __future__ import annotations

import queue
import socket
import threading

from .listener import BUFFER_SIZE, Buffer, Receiver
from .plain import run_parser


class UDP(Receiver):
    """Reads graphite lines from UDP datagrams."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.parse_queue: queue.Queue = queue.Queue()

    def stat(self, send) -> None:
        self.send_stat(
            send, "metricsReceived", "errors", "incompleteReceived", "futureDropped",
            "pastDropped", "tooLongDropped",
        )

    def _receive_loop(self, sock: socket.socket, event: threading.Event) -> None:
        try:
            while not event.is_set():
                try:
                    data, _peer = sock.recvfrom(BUFFER_SIZE)
                except socket.timeout:
                    continue
                except OSError as exc:
                    if event.is_set():
                        break
                    self._add_stat("errors")
                    self.logger.error("recvfrom failed: %s", exc)
                    continue
                cut = data.rfind(b"\n") + 1
                if cut > 0:
                    self.parse_queue.put(Buffer(time=self._now(), body=bytearray(data[:cut])))
        finally:
            sock.close()

    def listen(self, host: str, port: int) -> None:
        """Bind host:port and start receiving and parsing."""

        def start() -> None:
            family, kind, proto, _, addr = socket.getaddrinfo(
                host or None, port, type=socket.SOCK_DGRAM, flags=socket.AI_PASSIVE
            )[0]
            sock = socket.socket(family, kind, proto)
            try:
                sock.bind(addr)
            except OSError:
                sock.close()
                raise
            sock.settimeout(0.1)
            self.address = sock.getsockname()[:2]
            for _ in range(self.parse_threads):
                self.go(lambda event: run_parser(self, self.parse_queue))
            self.go(lambda event: self._receive_loop(sock, event))

        self.start_func(start)