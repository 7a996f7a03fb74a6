"""Parser for the plain-text graphite line protocol."""

from __future__ import annotations

import math
import queue
import re

from .. import tags as tagslib
from ..rowbinary import WriteBuffer
from ..tags import TagConfig
from .listener import Buffer, Receiver

_MASK32 = 0xFFFFFFFF
_DOTS_BYTES = re.compile(rb"\.{2,}")
_DOTS_STR = re.compile(r"\.{2,}")
_FLOAT = re.compile(
    rb"[+-]?(?:inf|infinity|nan|(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:e[+-]?[0-9]+)?)",
    re.IGNORECASE,
)
_INF_WORD = re.compile(rb"[+-]?inf(?:inity)?", re.IGNORECASE)


def has_double_dot(p) -> bool:
    """Whether p contains two consecutive dots."""
    return (".." if isinstance(p, str) else b"..") in p


def remove_double_dot(p):
    """Collapse every run of dots into a single dot."""
    if not has_double_dot(p):
        return p
    if isinstance(p, str):
        return _DOTS_STR.sub(".", p)
    return _DOTS_BYTES.sub(b".", bytes(p))


def _bad(line: bytes) -> ValueError:
    return ValueError(f"bad message: {line.decode('utf-8', 'replace')!r}")


def _parse_float(text: bytes) -> float:
    if not _FLOAT.fullmatch(text):
        raise ValueError(text)
    value = float(text)
    if math.isinf(value) and not _INF_WORD.fullmatch(text):
        raise ValueError(text)
    return value


def parse_line(line, now: int, tag_config: TagConfig | None = None) -> tuple[bytes, float, int]:
    """Parse "name value timestamp\\n" into (name, value, timestamp).

    A timestamp of -1 means now. Raises ValueError on a bad line.
    """
    line = bytes(line)
    i1 = line.find(b" ")
    if i1 < 1:
        raise _bad(line)
    i2 = line.find(b" ", i1 + 1)
    if i2 <= i1 + 1:
        raise _bad(line)

    i3 = len(line)
    if line[i3 - 1 : i3] == b"\n":
        i3 -= 1
    if line[i3 - 1 : i3] == b"\r":
        i3 -= 1

    try:
        value = _parse_float(line[i1 + 1 : i2])
    except ValueError:
        raise _bad(line) from None
    if math.isnan(value):
        raise _bad(line)

    if i3 - i2 == 3 and line[i2 + 1 : i2 + 3] == b"-1":
        timestamp = now
    else:
        try:
            tsf = _parse_float(line[i2 + 1 : i3])
            if math.isnan(tsf):
                raise ValueError(tsf)
            timestamp = int(tsf) & _MASK32
        except (ValueError, OverflowError):
            raise _bad(line) from None

    raw = remove_double_dot(line[:i1])
    name = tagslib.graphite(
        tag_config if tag_config is not None else TagConfig(),
        raw.decode("utf-8", "surrogateescape"),
    )
    return name.encode("utf-8", "surrogateescape"), value, timestamp


def parse_buffer(receiver: Receiver, buffer: Buffer) -> None:
    """Parse every complete line of buffer and queue the points."""
    lines = bytes(buffer.body[: buffer.used]).split(b"\n")
    unfinished = lines.pop()
    metrics = 0
    errors = 1 if unfinished else 0
    wb = WriteBuffer()

    for line in lines:
        if not line:
            continue
        try:
            name, value, timestamp = parse_line(line + b"\n", buffer.time, receiver.tags)
        except ValueError:
            errors += 1
            continue
        if receiver.is_drop_point(name, buffer.time, timestamp, value):
            continue
        wb.write_graphite_point(name, value, timestamp, buffer.time)
        metrics += 1

    if metrics:
        receiver._add_stat("metricsReceived", metrics)
    if errors:
        receiver._add_stat("errors", errors)

    if not wb.empty():
        receiver._send(wb)


def run_parser(receiver: Receiver, in_queue: queue.Queue) -> None:
    """Parse buffers from in_queue until stopped or a None arrives."""
    stop = receiver.stop_event
    while not stop.is_set():
        try:
            buffer = in_queue.get(timeout=0.1)
        except queue.Empty:
            continue
        if buffer is None:
            return
        parse_buffer(receiver, buffer)