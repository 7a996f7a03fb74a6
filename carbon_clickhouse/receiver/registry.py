"""Creation of receivers from "proto://host:port" addresses."""

from __future__ import annotations

from urllib.parse import urlsplit

from ..tags import TagConfig
from .listener import Receiver
from .prometheus import PrometheusRemoteWrite
from .tcp import TCP
from .telegraf import TelegrafHttpJson
from .udp import UDP

_KINDS: dict[str, type[Receiver]] = {
    "tcp": TCP,
    "udp": UDP,
    "prometheus": PrometheusRemoteWrite,
    "telegraf+http+json": TelegrafHttpJson,
}


def _host_port(netloc: str) -> tuple[str, int]:
    host, sep, port = netloc.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid address {netloc!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


def new_receiver(dsn: str, tag_config: TagConfig | None, **kwargs) -> Receiver:
    """Create and start the receiver named by the DSN scheme.

    kwargs are the Receiver options (write_queue, drop_past, ...).
    """
    parts = urlsplit(dsn)
    kind = _KINDS.get(parts.scheme)
    if kind is None:
        raise ValueError(f'unknown proto "{parts.scheme}"')
    host, port = _host_port(parts.netloc)
    receiver = kind(tag_config, **kwargs)
    receiver.listen(host, port)
    return receiver