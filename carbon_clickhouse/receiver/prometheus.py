"""Receiver for the Prometheus remote-write protocol."""

from __future__ import annotations

import math
from http import HTTPStatus

from .. import escape, pb
from ..rowbinary import PointWriter
from .listener import Receiver

_MASK32 = 0xFFFFFFFF


class SnappyError(ValueError):
    """Corrupt snappy-compressed input."""

    def __init__(self, message: str = "snappy: corrupt input") -> None:
        super().__init__(message)


def snappy_decode(data) -> bytes:
    """Decode a snappy block (not the framed stream format)."""
    src = memoryview(bytes(data))
    try:
        length, rest = pb.uint64(src)
    except pb.ProtobufError:
        raise SnappyError() from None
    pos = len(src) - len(rest)
    end = len(src)
    out = bytearray()

    while pos < end:
        tag = src[pos]
        kind = tag & 0x03
        if kind == 0:
            n = tag >> 2
            if n < 60:
                pos += 1
            else:
                extra = n - 59
                if pos + 1 + extra > end:
                    raise SnappyError()
                n = int.from_bytes(src[pos + 1 : pos + 1 + extra], "little")
                pos += 1 + extra
            n += 1
            if pos + n > end:
                raise SnappyError()
            out += src[pos : pos + n]
            pos += n
        else:
            if kind == 1:
                if pos + 2 > end:
                    raise SnappyError()
                n = 4 + ((tag >> 2) & 0x07)
                offset = ((tag & 0xE0) << 3) | src[pos + 1]
                pos += 2
            elif kind == 2:
                if pos + 3 > end:
                    raise SnappyError()
                n = (tag >> 2) + 1
                offset = int.from_bytes(src[pos + 1 : pos + 3], "little")
                pos += 3
            else:
                if pos + 5 > end:
                    raise SnappyError()
                n = (tag >> 2) + 1
                offset = int.from_bytes(src[pos + 1 : pos + 5], "little")
                pos += 5
            if offset <= 0 or offset > len(out):
                raise SnappyError()
            start = len(out) - offset
            chunk = bytes(out[start:])
            if offset >= n:
                out += chunk[:n]
            else:
                out += (chunk * (n // offset + 1))[:n]
        if len(out) > length:
            raise SnappyError()

    if len(out) != length:
        raise SnappyError()
    return bytes(out)


def _text(b) -> str:
    return bytes(b).decode("utf-8", "surrogateescape")


def _div_trunc(a: int, b: int) -> int:
    q = abs(a) // b
    return q if a >= 0 else -q


class MetricBuffer:
    """Decodes TimeSeries label sets, caching escaped label strings."""

    def __init__(self) -> None:
        self._escaped: dict[str, str] = {}

    def _query_escape(self, b) -> str:
        s = _text(b)
        cached = self._escaped.get(s)
        if cached is None:
            cached = self._escaped[s] = escape.query(s)
        return cached

    def time_series(self, body) -> tuple[list[str], int]:
        """Return (["name", "key1", "value1", ...], offset of first sample).

        Raises ValueError when no "__name__" label exists and
        pb.ProtobufError on malformed input.
        """
        rest = memoryview(body)
        total = len(rest)
        labels: list[tuple[bytes, bytes]] = []
        samples_offset = 0

        while rest:
            tag = rest[0]
            if tag == 0x0A:  # repeated Label labels = 1
                label, rest = pb.read_bytes(rest[1:])
                name = value = None
                while label:
                    field = label[0]
                    if field == 0x0A:
                        name, label = pb.read_bytes(label[1:])
                    elif field == 0x12:
                        value, label = pb.read_bytes(label[1:])
                    else:
                        label = pb.skip(label)
                if name is not None and value is not None:
                    labels.append((bytes(name), bytes(value)))
                continue
            if tag == 0x12 and samples_offset == 0:  # repeated Sample samples = 2
                samples_offset = total - len(rest)
            rest = pb.skip(rest)

        for i, (name, _) in enumerate(labels):
            if name == b"__name__":
                labels[0], labels[i] = labels[i], labels[0]
                break
        else:
            raise ValueError("__name__ not found")

        metric = [_text(labels[0][1])]
        for name, value in sorted(labels[1:], key=lambda label: label[0]):
            metric.append(self._query_escape(name))
            metric.append(self._query_escape(value))
        return metric, samples_offset


class PrometheusRemoteWrite(Receiver):
    """Accepts snappy-compressed remote-write requests over HTTP."""

    def unpack(self, body) -> None:
        """Decode a WriteRequest and queue its samples."""
        writer = PointWriter(self.write_queue, self.stop_event)
        metric_buffer = MetricBuffer()
        rest = memoryview(body)

        while rest:
            if rest[0] != 0x0A:  # repeated TimeSeries timeseries = 1
                rest = pb.skip(rest)
                continue
            ts, rest = pb.read_bytes(rest[1:])
            metric, samples_offset = metric_buffer.time_series(ts)
            ts = ts[samples_offset:]

            while ts:
                if ts[0] != 0x12:
                    ts = pb.skip(ts)
                    continue
                sample, ts = pb.read_bytes(ts[1:])
                value = 0.0
                timestamp = 0
                while sample:
                    field = sample[0]
                    if field == 0x09:  # double value = 1
                        value, sample = pb.double(sample[1:])
                    elif field == 0x10:  # int64 timestamp = 2
                        timestamp, sample = pb.int64(sample[1:])
                    else:
                        sample = pb.skip(sample)

                if math.isnan(value):
                    continue
                seconds = _div_trunc(timestamp, 1000)
                if self.is_drop_point("", writer.now, seconds & _MASK32, value):
                    continue
                writer.write_point_tagged(metric, value, seconds)

        writer.flush()
        if writer.points_written:
            self._add_stat("samplesReceived", writer.points_written)
        if writer.write_errors:
            self._add_stat("errors", writer.write_errors)

    def handle_request(self, compressed) -> tuple[int, str]:
        """Process a request body; return (HTTP status, error text)."""
        try:
            body = snappy_decode(compressed)
        except ValueError as exc:
            return HTTPStatus.BAD_REQUEST, str(exc)
        try:
            self.unpack(body)
        except ValueError as exc:
            return HTTPStatus.INTERNAL_SERVER_ERROR, str(exc)
        return HTTPStatus.OK, ""

    def listen(self, host: str, port: int) -> None:
        """Serve HTTP on host:port until stopped."""
        self._serve_http(host, port, self.handle_request)

    def stat(self, send) -> None:
        self.send_stat(
            send, "samplesReceived", "errors", "futureDropped", "pastDropped", "tooLongDropped"
        )