"""ClickHouse RowBinary encoding of graphite points.

A point record is: uvarint name length, name, float64 value, uint32
timestamp, uint16 days since epoch, uint32 version; all little-endian.
"""

from __future__ import annotations

import queue
import struct
import threading
import time
from datetime import date, datetime, timedelta
from functools import lru_cache
from typing import BinaryIO, NamedTuple

import lz4.frame

WRITE_BUFFER_SIZE = 524288
LZ4_EXTENSION = ".lz4"

_LINE_SIZE = 524288
_TAIL_SIZE = 18
_MASK16 = 0xFFFF
_MASK32 = 0xFFFFFFFF
_EPOCH_DATE = date(1970, 1, 1)
_TAIL = struct.Struct("<dIHI")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")
_F64 = struct.Struct("<d")

try:
    _LOCAL_EPOCH_START = int(datetime(1970, 1, 1).timestamp())
except (OSError, OverflowError, ValueError):
    _LOCAL_EPOCH_START = 0


class CorruptedRecordError(ValueError):
    """A record in a RowBinary file is truncated or inconsistent."""


def slow_timestamp_to_days(timestamp: int) -> int:
    """Days since 1970-01-01 of the local date of timestamp."""
    return (date.fromtimestamp(timestamp) - _EPOCH_DATE).days & _MASK16


@lru_cache(maxsize=1 << 16)
def timestamp_to_days(timestamp: int) -> int:
    """Like slow_timestamp_to_days, but 0 before the local epoch start."""
    if timestamp < _LOCAL_EPOCH_START:
        return 0
    return slow_timestamp_to_days(timestamp)


def reverse_metric(name):
    """Reverse the dot-separated segments of a path ("a.b.c" -> "c.b.a")."""
    sep = "." if isinstance(name, str) else b"."
    return sep.join(reversed(name.split(sep)))


def _uvarint(value: int) -> bytes:
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def _as_bytes(p) -> bytes:
    return p.encode("utf-8") if isinstance(p, str) else bytes(p)


def write_uint16(out: BinaryIO, value: int) -> None:
    out.write(_U16.pack(value))


def write_uint32(out: BinaryIO, value: int) -> None:
    out.write(_U32.pack(value))


def write_bytes(out: BinaryIO, p) -> None:
    data = _as_bytes(p)
    out.write(_uvarint(len(data)))
    out.write(data)


class Record(NamedTuple):
    """One point read from a RowBinary file."""

    name: bytes
    value: float
    timestamp: int
    days: int
    version: int

    @property
    def days_string(self) -> str:
        return (_EPOCH_DATE + timedelta(days=self.days)).isoformat()


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _read_uvarint(stream: BinaryIO) -> int:
    result = 0
    shift = 0
    for i in range(10):
        b = stream.read(1)
        if not b:
            if i == 0:
                raise EOFError("end of file")
            raise CorruptedRecordError("name length truncated")
        c = b[0]
        if c < 0x80:
            if i == 9 and c > 1:
                raise CorruptedRecordError("varint overflows a 64-bit integer")
            return result | (c << shift)
        result |= (c & 0x7F) << shift
        shift += 7
    raise CorruptedRecordError("varint overflows a 64-bit integer")


class Reader:
    """Read all good records from a possibly unfinished RowBinary file.

    Files ending in ".lz4" are decompressed. Iteration stops at the end
    of the file or at the first corrupted record.
    """

    def __init__(self, filename, reverse: bool = False) -> None:
        self._raw = open(filename, "rb")
        self._lz4 = None
        if str(filename).endswith(LZ4_EXTENSION):
            self._lz4 = lz4.frame.LZ4FrameFile(self._raw, mode="rb")
        self._stream: BinaryIO = self._lz4 if self._lz4 is not None else self._raw
        self.reverse = reverse
        self.zero_version = False
        self._eof = False
        self._line = b""
        self._offset = 0

    def _read_record(self) -> Record:
        stream = self._stream
        name_len = _read_uvarint(stream)
        if name_len > _LINE_SIZE - 10 - _TAIL_SIZE:
            raise CorruptedRecordError("name too long")

        name = _read_exact(stream, name_len)
        if len(name) != name_len:
            raise CorruptedRecordError("name truncated")

        if self.reverse and b"?" not in name:
            name = reverse_metric(name)

        tail = _read_exact(stream, _TAIL_SIZE)
        if len(tail) != _TAIL_SIZE:
            raise CorruptedRecordError("record truncated")

        if self.zero_version:
            tail = tail[:14] + b"\x00\x00\x00\x00"

        value, timestamp, days, version = _TAIL.unpack(tail)
        if days != timestamp_to_days(timestamp):
            raise CorruptedRecordError("date and timestamp mismatch")

        self._line = _uvarint(name_len) + name + tail
        self._offset = 0
        return Record(name, value, timestamp, days, version)

    def read_record(self) -> Record:
        """Return the next record.

        Raises EOFError at the end and CorruptedRecordError on bad data;
        after either, every later call raises EOFError.
        """
        if self._eof:
            raise EOFError("end of file")
        try:
            return self._read_record()
        except (EOFError, CorruptedRecordError):
            self._fail()
            raise
        except (OSError, RuntimeError) as exc:
            self._fail()
            raise CorruptedRecordError(str(exc)) from exc

    def _fail(self) -> None:
        self._eof = True
        self._line = b""
        self._offset = 0

    def read(self, size: int = -1) -> bytes:
        """Return up to size raw bytes of good records (all when negative)."""
        out = bytearray()
        while size < 0 or len(out) < size:
            available = len(self._line) - self._offset
            if available > 0:
                take = available if size < 0 else min(available, size - len(out))
                out += self._line[self._offset:self._offset + take]
                self._offset += take
                continue
            try:
                self.read_record()
            except (EOFError, CorruptedRecordError):
                break
        return bytes(out)

    def close(self) -> None:
        if self._lz4 is not None:
            self._lz4.close()
        self._raw.close()

    def __iter__(self):
        while True:
            try:
                yield self.read_record()
            except (EOFError, CorruptedRecordError):
                return

    def __enter__(self) -> Reader:
        return self

    def __exit__(self, *args) -> None:
        self.close()


class WriteConfirmation:
    """Tracks buffers that must be written before a sender continues."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._pending = 0
        self._error: BaseException | None = None

    def add(self) -> None:
        with self._cond:
            self._pending += 1

    def done(self, error: BaseException | None = None) -> None:
        with self._cond:
            if error is not None and self._error is None:
                self._error = error
            self._pending -= 1
            if self._pending <= 0:
                self._cond.notify_all()

    def wait(self, timeout: float | None = None) -> None:
        """Wait for every buffer; raise the first reported failure."""
        with self._cond:
            if not self._cond.wait_for(lambda: self._pending <= 0, timeout):
                raise TimeoutError("write confirmation timed out")
            error = self._error
        if error is not None:
            raise error


class WriteBuffer:
    """A chunk of RowBinary-encoded rows on its way to the writer."""

    def __init__(self, confirm: WriteConfirmation | None = None) -> None:
        self._data = bytearray()
        self._confirmation = confirm
        if confirm is not None:
            confirm.add()

    @property
    def used(self) -> int:
        return len(self._data)

    @property
    def body(self) -> bytes:
        return bytes(self._data)

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    @property
    def confirm_required(self) -> bool:
        return self._confirmation is not None

    def _require_confirmation(self) -> WriteConfirmation:
        if self._confirmation is None:
            raise RuntimeError("buffer does not require confirmation")
        return self._confirmation

    def confirm(self) -> None:
        self._require_confirmation().done()

    def fail(self, error: BaseException) -> None:
        self._require_confirmation().done(error)

    def reset(self) -> WriteBuffer:
        self._data.clear()
        self._confirmation = None
        return self

    def empty(self) -> bool:
        return not self._data

    def write(self, p) -> None:
        self._data += _as_bytes(p)

    def write_bytes(self, p) -> None:
        data = _as_bytes(p)
        self._data += _uvarint(len(data))
        self._data += data

    def write_string(self, s: str) -> None:
        self.write_bytes(s.encode("utf-8"))

    def write_tagged(self, tagged) -> None:
        """Write ["name", "k1", "v1", ...] as "name?k1=v1&..."."""
        parts = [_as_bytes(part) for part in tagged]
        if not parts:
            return
        out = bytearray(parts[0])
        for i, part in enumerate(parts[1:], 1):
            if i == 1:
                out += b"?"
            elif i % 2 == 1:
                out += b"&"
            else:
                out += b"="
            out += part
        self.write_bytes(out)

    def write_uvarint(self, value: int) -> None:
        self._data += _uvarint(value)

    def write_reverse_path(self, p) -> None:
        self.write_bytes(reverse_metric(_as_bytes(p)))

    def write_float64(self, value: float) -> None:
        self._data += _F64.pack(value)

    def write_uint16(self, value: int) -> None:
        self._data += _U16.pack(value)

    def write_uint32(self, value: int) -> None:
        self._data += _U32.pack(value)

    def write_uint64(self, value: int) -> None:
        self._data += _U64.pack(value)

    def _write_point_tail(self, value: float, timestamp: int, version: int) -> None:
        self.write_float64(value)
        self.write_uint32(timestamp)
        self.write_uint16(timestamp_to_days(timestamp))
        self.write_uint32(version)

    def write_graphite_point(self, name, value: float, timestamp: int, version: int) -> None:
        self.write_bytes(name)
        self._write_point_tail(value, timestamp, version)

    def write_graphite_point_tagged(self, labels, value: float, timestamp: int, version: int) -> None:
        self.write_tagged(labels)
        self._write_point_tail(value, timestamp, version)

    def can_write_graphite_point(self, metric_len: int) -> bool:
        # max varint 5, name, value 8, timestamp 4, days 2, version 4
        return WRITE_BUFFER_SIZE - len(self._data) > metric_len + 23


class PointWriter:
    """Packs points into WriteBuffers and hands full ones to a queue."""

    def __init__(self, write_queue: queue.Queue, stop_event: threading.Event | None = None) -> None:
        self._queue = write_queue
        self._stop_event = stop_event
        self._wb: WriteBuffer | None = None
        self.points_written = 0
        self.write_errors = 0
        self.now = int(time.time()) & _MASK32

    def _put(self, wb: WriteBuffer) -> None:
        while True:
            try:
                self._queue.put(wb, timeout=0.05)
                return
            except queue.Full:
                if self._stop_event is not None and self._stop_event.is_set():
                    return

    def flush(self) -> None:
        """Send the current buffer unless it is empty."""
        wb, self._wb = self._wb, None
        if wb is not None and not wb.empty():
            self._put(wb)

    def _prepare(self, length: int) -> bool:
        if self._wb is None:
            self._wb = WriteBuffer()
        if not self._wb.can_write_graphite_point(length):
            self.flush()
            if length > WRITE_BUFFER_SIZE - 50:
                self.write_errors += 1
                return False
            self._wb = WriteBuffer()
        return True

    def write_point(self, metric: str, value: float, timestamp: int) -> None:
        name = _as_bytes(metric)
        if not self._prepare(len(name)):
            return
        self._wb.write_graphite_point(name, value, timestamp & _MASK32, self.now)
        self.points_written += 1

    def write_point_tagged(self, metric, value: float, timestamp: int) -> None:
        parts = [_as_bytes(part) for part in metric]
        length = len(parts) - 1 + sum(len(part) for part in parts)
        if not self._prepare(length):
            return
        self._wb.write_graphite_point_tagged(parts, value, timestamp & _MASK32, self.now)
        self.points_written += 1