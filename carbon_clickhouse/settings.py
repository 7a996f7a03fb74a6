"""Value types used in the configuration file: durations, sizes,
compression algorithms and chunk auto-interval rules."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

_MAX_NS = (1 << 63) - 1

_UNIT_NS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}

_NUMBER = re.compile(r"([0-9]*)(?:\.([0-9]*))?")
_UNIT = re.compile(r"[^0-9.]*")
_INT = re.compile(r"[+-]?[0-9]+")


def _parse_duration_ns(text: str) -> int:
    s = text
    negative = False
    if s and s[0] in "+-":
        negative = s[0] == "-"
        s = s[1:]
    if s == "0":
        return 0
    if not s:
        raise ValueError(f'time: invalid duration "{text}"')

    total = 0
    while s:
        number = _NUMBER.match(s)
        whole, frac = number.group(1), number.group(2)
        if not whole and not frac:
            raise ValueError(f'time: invalid duration "{text}"')
        s = s[number.end():]

        unit = _UNIT.match(s).group()
        if not unit:
            raise ValueError(f'time: missing unit in duration "{text}"')
        if unit not in _UNIT_NS:
            raise ValueError(f'time: unknown unit "{unit}" in duration "{text}"')
        s = s[len(unit):]

        scale = _UNIT_NS[unit]
        ns = int(whole or "0") * scale
        if frac:
            ns += int(frac) * scale // 10 ** len(frac)
        total += ns
        if total > _MAX_NS:
            raise ValueError(f'time: invalid duration "{text}"')

    return -total if negative else total


def parse_duration(text: str) -> float:
    """Parse a duration such as "1m30s" or "1.5h" into seconds."""
    return _parse_duration_ns(text) / 1e9


def _frac(value: int, precision: int) -> str:
    base = 10**precision
    whole, rest = divmod(value, base)
    if rest == 0:
        return str(whole)
    digits = str(rest).rjust(precision, "0").rstrip("0")
    return f"{whole}.{digits}"


def format_duration(seconds: float) -> str:
    """Format seconds the way durations are written in the config file."""
    ns = round(seconds * 1e9)
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    u = abs(ns)

    if u < 1_000_000_000:
        if u < 1_000:
            return f"{sign}{u}ns"
        if u < 1_000_000:
            return f"{sign}{_frac(u, 3)}\u00b5s"
        return f"{sign}{_frac(u, 6)}ms"

    secs, nanos = divmod(u, 1_000_000_000)
    text = _frac(secs % 60 * 1_000_000_000 + nanos, 9) + "s"
    minutes = secs // 60
    if minutes > 0:
        text = f"{minutes % 60}m" + text
        hours = minutes // 60
        if hours > 0:
            text = f"{hours}h" + text
    return sign + text


_SIZE_MULTIPLIERS = {"k": 1024, "m": 1024**2, "g": 1024**3}


def parse_size(text: str) -> int:
    """Parse a byte size with an optional k, m or g suffix."""
    value = text.lower()
    if not value:
        raise ValueError("size is empty")
    multiplier = _SIZE_MULTIPLIERS.get(value[-1])
    digits = value[:-1] if multiplier else value
    if not _INT.fullmatch(digits):
        raise ValueError(f"invalid size {text!r}")
    size = int(digits) * (multiplier or 1)
    if size < 0:
        raise ValueError("size must be greater than 0")
    return size


class CompAlgo(Enum):
    """Compression applied to data chunk files."""

    NONE = "none"
    LZ4 = "lz4"

    def __str__(self) -> str:
        return self.value


def parse_compression(text: str) -> CompAlgo:
    """Map a config value to a compression algorithm."""
    try:
        return CompAlgo(text)
    except ValueError:
        raise ValueError(f"Compression algorithm '{text}' not supported") from None


@dataclass
class ChunkAutoInterval:
    """Chunk interval that grows with the number of unhandled files.

    Rules are (unhandled count, interval in seconds) pairs sorted by count.
    """

    rules: list[tuple[int, float]] = field(default_factory=list)
    default: float = 0.0

    @classmethod
    def parse(cls, text: str) -> ChunkAutoInterval:
        s = text.strip()
        rules: list[tuple[int, float]] = []
        if s:
            for item in s.split(","):
                kv = item.strip().split(":")
                if len(kv) != 2:
                    raise ValueError(f'can\'t parse "{s}"')
                if not _INT.fullmatch(kv[0]):
                    raise ValueError(f'can\'t parse "{s}": invalid number {kv[0]!r}')
                try:
                    interval = parse_duration(kv[1])
                except ValueError as exc:
                    raise ValueError(f'can\'t parse "{s}": {exc}') from None
                rules.append((int(kv[0]), interval))
        rules.sort(key=lambda rule: rule[0])
        return cls(rules=rules)

    def get_interval(self, unhandled_count: int) -> float:
        chosen = None
        for unhandled, interval in self.rules:
            if unhandled_count < unhandled:
                break
            chosen = interval
        return self.default if chosen is None else chosen

    def __str__(self) -> str:
        return ",".join(
            f"{unhandled}:{format_duration(interval)}" for unhandled, interval in self.rules
        )