import pytest

from carbon_clickhouse.filter import Blacklist


@pytest.fixture
def exact():
    return Blacklist(
        [
            "a.b.c.d.e",
            "a.b.c.d.f",
            "xxx.yyy.zz.tt",
            "1234.2345.3456.4567.5678.67890",
        ]
    )


@pytest.fixture
def wildcard():
    return Blacklist(["*", "aa.*.bb", "aa.bb.*", "aa.*.bb.*.cc", "*.*.*.*"])


@pytest.mark.parametrize(
    "value", ["a.b.c.d.e", "a.b.c.d.f", "xxx.yyy.zz.tt", "1234.2345.3456.4567.5678.67890"]
)
def test_exact_forward_match(exact, value):
    assert exact.contains(value, False) is True


@pytest.mark.parametrize(
    "value", ["e.d.c.b.a", "f.d.c.b.a", "tt.zz.yyy.xxx", "67890.5678.4567.3456.2345.1234"]
)
def test_exact_reverse_match(exact, value):
    assert exact.contains(value, True) is True


@pytest.mark.parametrize("value", ["", "a.b.c.d", "a.a.a.a.a", "a.b.c.a.e", "a.b.c.d.g"])
def test_exact_forward_miss(exact, value):
    assert exact.contains(value, False) is False


@pytest.mark.parametrize(
    "value", ["", "d.c.b.a", "a.a.a.a.a", "e.d.c.b.b", "f.d.c.a.a", "g.d.c.b.a"]
)
def test_exact_reverse_miss(exact, value):
    assert exact.contains(value, True) is False


@pytest.mark.parametrize(
    "value", ["xyz", "aa.bb.cc", "aa.cc.bb", "aa.xyz.bb.hhh.cc", "1.2.3.4"]
)
def test_wildcard_forward_match(wildcard, value):
    assert wildcard.contains(value, False) is True


@pytest.mark.parametrize(
    "value", ["abc", "cc.bb.aa", "bb.cc.aa", "cc.1234.bb.5678.aa", "1.2.3.4"]
)
def test_wildcard_reverse_match(wildcard, value):
    assert wildcard.contains(value, True) is True


@pytest.mark.parametrize("value", ["aa.bb", "aa.dd.bc", "aa.bb.bc.dd.cc"])
def test_wildcard_forward_miss(wildcard, value):
    assert wildcard.contains(value, False) is False


def test_patterns_kept():
    blacklist = Blacklist(["a.b", "c"])
    assert blacklist.patterns == ["a.b", "c"]
    assert blacklist.contains("c", False) is True
    assert blacklist.contains("b.a", True) is True
    assert blacklist.contains("b.a", False) is False