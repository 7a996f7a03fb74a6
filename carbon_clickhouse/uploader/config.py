"""Uploader settings, key hashing and path helpers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

_M = (1 << 64) - 1
_K0 = 0xC3A5C85C97CB3127
_K1 = 0xB492B66FBE98F273
_K2 = 0x9AE16A3B2F90404F
_KMUL = 0x9DDFEA08EB382D69


def keep_original(s: str) -> str:
    return s


def _f64(s: bytes, i: int) -> int:
    return int.from_bytes(s[i:i + 8], "little")


def _f32(s: bytes, i: int) -> int:
    return int.from_bytes(s[i:i + 4], "little")


def _rot(v: int, s: int) -> int:
    return v if s == 0 else ((v >> s) | (v << (64 - s))) & _M


def _shift_mix(v: int) -> int:
    return v ^ (v >> 47)


def _bswap(v: int) -> int:
    return int.from_bytes(v.to_bytes(8, "little"), "big")


def _hash16(u: int, v: int, mul: int = _KMUL) -> int:
    a = ((u ^ v) * mul) & _M
    a ^= a >> 47
    b = ((v ^ a) * mul) & _M
    b ^= b >> 47
    return (b * mul) & _M


def _len0to16(s: bytes) -> int:
    n = len(s)
    if n >= 8:
        mul = _K2 + n * 2
        a = (_f64(s, 0) + _K2) & _M
        b = _f64(s, n - 8)
        c = (_rot(b, 37) * mul + a) & _M
        d = ((_rot(a, 25) + b) * mul) & _M
        return _hash16(c, d, mul)
    if n >= 4:
        mul = _K2 + n * 2
        return _hash16((n + (_f32(s, 0) << 3)) & _M, _f32(s, n - 4), mul)
    if n > 0:
        y = (s[0] + (s[n >> 1] << 8)) & 0xFFFFFFFF
        z = n + (s[n - 1] << 2)
        return (_shift_mix(((y * _K2) ^ (z * _K0)) & _M) * _K2) & _M
    return _K2


def _len17to32(s: bytes) -> int:
    n = len(s)
    mul = _K2 + n * 2
    a = (_f64(s, 0) * _K1) & _M
    b = _f64(s, 8)
    c = (_f64(s, n - 8) * mul) & _M
    d = (_f64(s, n - 16) * _K2) & _M
    return _hash16(
        (_rot((a + b) & _M, 43) + _rot(c, 30) + d) & _M,
        (a + _rot((b + _K2) & _M, 18) + c) & _M,
        mul,
    )


def _len33to64(s: bytes) -> int:
    n = len(s)
    mul = _K2 + n * 2
    a = (_f64(s, 0) * _K2) & _M
    b = _f64(s, 8)
    c = _f64(s, n - 24)
    d = _f64(s, n - 32)
    e = (_f64(s, 16) * _K2) & _M
    f = (_f64(s, 24) * 9) & _M
    g = _f64(s, n - 8)
    h = (_f64(s, n - 16) * mul) & _M
    u = (_rot((a + g) & _M, 43) + (_rot(b, 30) + c) * 9) & _M
    v = ((((a + g) & _M) ^ d) + f + 1) & _M
    w = (_bswap(((u + v) * mul) & _M) + h) & _M
    x = (_rot((e + f) & _M, 42) + c) & _M
    y = ((_bswap(((v + w) * mul) & _M) + g) * mul) & _M
    z = (e + f + c) & _M
    a = (_bswap(((x + z) * mul + y) & _M) + b) & _M
    b = (_shift_mix(((z + a) * mul + d + h) & _M) * mul) & _M
    return (b + x) & _M


def _weak32(s: bytes, i: int, a: int, b: int) -> tuple[int, int]:
    w, x, y, z = _f64(s, i), _f64(s, i + 8), _f64(s, i + 16), _f64(s, i + 24)
    a = (a + w) & _M
    b = _rot((b + a + z) & _M, 21)
    c = a
    a = (a + x + y) & _M
    b = (b + _rot(a, 44)) & _M
    return (a + z) & _M, (b + c) & _M


def _city64(s: bytes) -> int:
    n = len(s)
    if n <= 16:
        return _len0to16(s)
    if n <= 32:
        return _len17to32(s)
    if n <= 64:
        return _len33to64(s)
    x = _f64(s, n - 40)
    y = (_f64(s, n - 16) + _f64(s, n - 56)) & _M
    z = _hash16((_f64(s, n - 48) + n) & _M, _f64(s, n - 24))
    v = _weak32(s, n - 64, n, z)
    w = _weak32(s, n - 32, (y + _K1) & _M, x)
    x = (x * _K1 + _f64(s, 0)) & _M
    remaining = (n - 1) & ~63
    pos = 0
    while True:
        x = (_rot((x + y + v[0] + _f64(s, pos + 8)) & _M, 37) * _K1) & _M
        y = (_rot((y + v[1] + _f64(s, pos + 48)) & _M, 42) * _K1) & _M
        x ^= w[1]
        y = (y + v[0] + _f64(s, pos + 40)) & _M
        z = (_rot((z + w[0]) & _M, 33) * _K1) & _M
        v = _weak32(s, pos, (v[1] * _K1) & _M, (x + w[0]) & _M)
        w = _weak32(s, pos + 32, (z + w[1]) & _M, (y + _f64(s, pos + 16)) & _M)
        z, x = x, z
        pos += 64
        remaining -= 64
        if remaining == 0:
            break
    return _hash16(
        (_hash16(v[0], w[0]) + _shift_mix(y) * _K1 + z) & _M,
        (_hash16(v[1], w[1]) + x) & _M,
    )


def city_hash64(s: str) -> str:
    """CityHash64 of s as 8 big-endian bytes, held in a latin-1 string."""
    h = _city64(s.encode("utf-8", "surrogateescape"))
    return h.to_bytes(8, "big").decode("latin-1")


KNOWN_HASH: dict[str, Callable[[str], str]] = {
    "": keep_original,
    "city64": city_hash64,
}


def path_level(name) -> int:
    """Number of dot-separated segments in a path."""
    return name.count("." if isinstance(name, str) else b".") + 1


@dataclass
class UploaderConfig:
    """Settings of one uploader; durations are in seconds."""

    type: str = ""
    table_name: str = ""
    timeout: float = 0.0
    date: str = ""
    tree_date: datetime | None = None
    zero_timestamp: bool = False
    threads: int = 0
    url: str = ""
    cache_ttl: float = 0.0
    ignored_patterns: list[str] = field(default_factory=list)
    compress_data: bool = False
    ignored_tagged_metrics: list[str] = field(default_factory=list)
    hash: str = ""
    disable_daily_index: bool = False
    hash_func: Callable[[str], str] = keep_original

    def parse(self) -> None:
        """Resolve the tree date and hash function; raise ValueError."""
        if self.date:
            self.tree_date = datetime.strptime(self.date, "%Y-%m-%d")
        func = KNOWN_HASH.get(self.hash)
        if func is None:
            raise ValueError(f'unknown hash function "{self.hash}"')
        self.hash_func = func