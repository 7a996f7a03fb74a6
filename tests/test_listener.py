import pytest

from carbon_clickhouse.receiver.listener import BUFFER_SIZE, DROPPED_LIST_SIZE, Buffer, Receiver
from carbon_clickhouse.tags import TagConfig


def _collect(receiver, *fields):
    out = []
    receiver.send_stat(lambda name, value: out.append((name, value)), *fields)
    return out


def test_buffer():
    b = Buffer()
    b.write(b"hello")
    b.write(b"world")
    assert bytes(b.body[: b.used]) == b"helloworld"


def test_buffer_truncates_at_capacity():
    b = Buffer()
    b.write(b"x" * (BUFFER_SIZE + 10))
    b.write(b"y")
    assert b.used == BUFFER_SIZE


def test_drop_future_counts_and_resets():
    rcv = Receiver(TagConfig(), drop_future=10)
    assert rcv.is_drop(100, 111) is True
    assert rcv.is_drop(100, 110) is False
    assert _collect(rcv, "futureDropped") == [("futureDropped", 1.0)]
    assert _collect(rcv, "futureDropped") == [("futureDropped", 0.0)]


def test_drop_past():
    rcv = Receiver(TagConfig(), drop_past=10)
    assert rcv.is_drop(200, 189) is True
    assert rcv.is_drop(200, 190) is False
    assert _collect(rcv, "pastDropped", "futureDropped") == [
        ("pastDropped", 1.0),
        ("futureDropped", 0.0),
    ]


def test_no_drop_when_disabled():
    rcv = Receiver(TagConfig())
    assert rcv.is_drop(100, 0) is False
    assert rcv.is_drop(100, 1_000_000) is False
    assert rcv.is_drop_name_too_long("x" * 10000) is False


def test_name_too_long():
    rcv = Receiver(TagConfig(), drop_longer_than=5)
    assert rcv.is_drop_name_too_long("abcdef") is True
    assert rcv.is_drop_name_too_long(b"abcde") is False
    assert _collect(rcv, "tooLongDropped") == [("tooLongDropped", 1.0)]


def test_dropped_report_lists_dropped_points():
    rcv = Receiver(TagConfig(), drop_future=10)
    assert rcv.is_drop_point("a.b", 100, 105, 1.5) is False
    assert rcv.is_drop_point(b"a.b", 100, 200, 1.5) is True
    assert rcv.dropped_report() == "rcv:100\tname:a.b\ttimestamp:200\tvalue:1.5\n"


def test_dropped_report_keeps_last_entries():
    rcv = Receiver(TagConfig(), drop_longer_than=1)
    for i in range(DROPPED_LIST_SIZE + 5):
        assert rcv.is_drop_point(f"name{i:05d}", 1, 1, 0.5)
    lines = rcv.dropped_report().splitlines()
    assert len(lines) == DROPPED_LIST_SIZE
    assert lines == sorted(lines)
    assert not any("name00000" in line for line in lines)


def test_send_stat_ignores_unknown_and_keeps_gauge():
    rcv = Receiver(TagConfig())
    rcv._add_stat("active", 3)
    assert _collect(rcv, "unknown", "active") == [("active", 3.0)]
    assert _collect(rcv, "active") == [("active", 3.0)]


@pytest.mark.parametrize("field", ["errors", "metricsReceived", "samplesReceived"])
def test_counter_fields(field):
    rcv = Receiver(TagConfig())
    rcv._add_stat(field, 7)
    assert _collect(rcv, field) == [(field, 7.0)]