import socket

from carbon_clickhouse.receiver.udp import UDP


def test_udp_receives_points():
    rcv = UDP()
    rcv.listen("127.0.0.1", 0)
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.sendto(b"udp.metric 7 1600000000\nincomplete", rcv.address)
        wb = rcv.write_queue.get(timeout=5)
        assert b"udp.metric" in wb.body
        assert b"incomplete" not in wb.body
    finally:
        rcv.stop()
    assert not rcv.running


def test_stat_reports_udp_fields():
    rcv = UDP()
    sent = {}
    rcv.stat(lambda k, v: sent.__setitem__(k, v))
    assert "incompleteReceived" in sent and "active" not in sent