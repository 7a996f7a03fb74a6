import io
import queue
import struct
import threading
import time
from datetime import datetime

import lz4.frame
import pytest

from carbon_clickhouse.rowbinary import (
    WRITE_BUFFER_SIZE,
    CorruptedRecordError,
    PointWriter,
    Reader,
    WriteBuffer,
    WriteConfirmation,
    reverse_metric,
    slow_timestamp_to_days,
    timestamp_to_days,
    write_bytes,
    write_uint16,
    write_uint32,
)

NOON_2020 = int(datetime(2020, 1, 1, 12).timestamp())


def test_timestamp_to_days_matches_slow():
    end = int(time.time()) + 473040000
    ts = 2 * 86400
    while ts < end:
        assert timestamp_to_days(ts) == slow_timestamp_to_days(ts)
        ts += 3 * 86400 + 780


def test_timestamp_to_days_values():
    assert timestamp_to_days(0) == 0
    assert timestamp_to_days(NOON_2020) == 18262


@pytest.mark.parametrize(
    "source,expected",
    [
        (b"carbon.agents.carbon-clickhouse.graphite1.tcp.metricsReceived",
         b"metricsReceived.tcp.graphite1.carbon-clickhouse.agents.carbon"),
        (b"", b""),
        (b".", b"."),
        (b"carbon..xx", b"xx..carbon"),
        (b".hello..world.", b".world..hello."),
    ],
)
def test_reverse_metric(source, expected):
    assert reverse_metric(source) == expected
    assert reverse_metric(expected) == source


def test_write_reverse_path():
    wb = WriteBuffer()
    wb.write_reverse_path(b"a1.b2.c3")
    assert bytes(wb) == b"\x08c3.b2.a1"


def test_write_tagged():
    wb = WriteBuffer()
    wb.write_tagged(["name", "k1", "v1", "k2", "v2"])
    assert bytes(wb) == b"\x10name?k1=v1&k2=v2"


def test_write_graphite_point_layout():
    wb = WriteBuffer()
    wb.write_graphite_point(b"a.b", 1.5, NOON_2020, 7)
    data = bytes(wb)
    assert data[:4] == b"\x03a.b"
    assert struct.unpack("<dIHI", data[4:]) == (1.5, NOON_2020, 18262, 7)


def test_can_write_graphite_point_limit():
    wb = WriteBuffer()
    assert wb.can_write_graphite_point(WRITE_BUFFER_SIZE - 24)
    assert not wb.can_write_graphite_point(WRITE_BUFFER_SIZE - 23)


def test_reset_clears_buffer():
    wb = WriteBuffer()
    wb.write_uint64(1)
    assert wb.used == 8
    assert wb.reset().empty()


def test_stream_helpers():
    out = io.BytesIO()
    write_uint16(out, 0x0102)
    write_uint32(out, 0x03040506)
    write_bytes(out, b"abc")
    assert out.getvalue() == b"\x02\x01\x06\x05\x04\x03\x03abc"


def test_confirmation_success_and_failure():
    ok = WriteConfirmation()
    wb = WriteBuffer(ok)
    assert wb.confirm_required
    wb.confirm()
    ok.wait(timeout=1)

    bad = WriteConfirmation()
    first, second = WriteBuffer(bad), WriteBuffer(bad)
    first.fail(OSError("disk full"))
    second.confirm()
    with pytest.raises(OSError, match="disk full"):
        bad.wait(timeout=1)


def test_confirm_without_confirmation_fails():
    with pytest.raises(RuntimeError):
        WriteBuffer().confirm()


def _points_file(path, names):
    wb = WriteBuffer()
    for i, name in enumerate(names):
        wb.write_graphite_point(name, float(i), NOON_2020 + i, 100 + i)
    path.write_bytes(bytes(wb))
    return bytes(wb)


def test_reader_round_trip(tmp_path):
    path = tmp_path / "default.1"
    _points_file(path, [b"a.b.c", b"x.y?k=v"])
    with Reader(path) as reader:
        records = list(reader)
    assert [r.name for r in records] == [b"a.b.c", b"x.y?k=v"]
    assert records[1].value == 1.0
    assert records[1].timestamp == NOON_2020 + 1
    assert records[0].version == 100
    assert records[0].days_string == "2020-01-01"


def test_reader_reverse(tmp_path):
    path = tmp_path / "default.2"
    _points_file(path, [b"a.b.c", b"x.y?k=v"])
    with Reader(path, reverse=True) as reader:
        assert [r.name for r in reader] == [b"c.b.a", b"x.y?k=v"]


def test_reader_read_raw_and_zero_version(tmp_path):
    path = tmp_path / "default.3"
    data = _points_file(path, [b"a.b", b"c.d"])
    with Reader(path) as reader:
        assert reader.read(3) == data[:3]
        assert reader.read() == data[3:]
        assert reader.read() == b""

    with Reader(path) as reader:
        reader.zero_version = True
        records = list(reader)
    assert [r.version for r in records] == [0, 0]


def test_reader_truncated_file(tmp_path):
    path = tmp_path / "default.4"
    data = _points_file(path, [b"a.b", b"c.d"])
    path.write_bytes(data[:-5])
    reader = Reader(path)
    assert reader.read_record().name == b"a.b"
    with pytest.raises(CorruptedRecordError, match="record truncated"):
        reader.read_record()
    with pytest.raises(EOFError):
        reader.read_record()
    reader.close()


def test_reader_date_mismatch(tmp_path):
    buf = io.BytesIO()
    write_bytes(buf, b"a.b")
    buf.write(struct.pack("<d", 1.0))
    write_uint32(buf, NOON_2020)
    write_uint16(buf, 5)
    write_uint32(buf, 1)
    path = tmp_path / "default.5"
    path.write_bytes(buf.getvalue())
    with Reader(path) as reader:
        with pytest.raises(CorruptedRecordError, match="mismatch"):
            reader.read_record()


def test_reader_lz4(tmp_path):
    plain = tmp_path / "plain"
    data = _points_file(plain, [b"m.one", b"m.two"])
    path = tmp_path / "default.6.lz4"
    path.write_bytes(lz4.frame.compress(data))
    with Reader(path) as reader:
        assert [r.name for r in reader] == [b"m.one", b"m.two"]


def test_point_writer_flush_and_counts():
    q = queue.Queue()
    writer = PointWriter(q)
    writer.write_point("a.b", 1.0, NOON_2020)
    writer.write_point_tagged(["name", "k", "v"], 2.0, NOON_2020)
    writer.flush()
    assert writer.points_written == 2
    wb = q.get_nowait()
    assert bytes(wb).startswith(b"\x03a.b")
    assert b"\x0aname?k=v" in bytes(wb)
    assert q.empty()


def test_point_writer_too_long_metric():
    q = queue.Queue()
    writer = PointWriter(q)
    writer.write_point("a.b", 1.0, NOON_2020)
    writer.write_point("x" * (WRITE_BUFFER_SIZE + 10), 1.0, NOON_2020)
    assert writer.write_errors == 1
    assert writer.points_written == 1
    assert q.qsize() == 1


def test_point_writer_empty_flush_sends_nothing():
    q = queue.Queue()
    PointWriter(q).flush()
    assert q.empty()


def test_point_writer_stops_when_queue_full():
    q = queue.Queue(maxsize=1)
    q.put("busy")
    stop = threading.Event()
    stop.set()
    writer = PointWriter(q, stop)
    writer.write_point("a.b", 1.0, NOON_2020)
    writer.flush()
    assert q.qsize() == 1
    assert q.get_nowait() == "busy"