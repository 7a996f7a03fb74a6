"""Percent-encoding of metric paths and tag components."""

from enum import Enum

_HEX = b"0123456789ABCDEF"
_UNRESERVED = frozenset(
    b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_.~"
)
_RESERVED = frozenset(b"$&+,/:;=?@")
_SPACE = ord(" ")
_QUESTION = ord("?")


class _Mode(Enum):
    PATH = "path"
    QUERY = "query"


def _should_escape(c: int, mode: _Mode) -> bool:
    if c in _UNRESERVED:
        return False
    if c in _RESERVED:
        if mode is _Mode.PATH:
            # the whole path is handled at once, so only '?' is special
            return c == _QUESTION
        return True
    return True


_ESCAPE_TABLE = {
    mode: tuple(_should_escape(c, mode) for c in range(256)) for mode in _Mode
}


def _escape(s: str, mode: _Mode) -> str:
    raw = s.encode("utf-8", "surrogateescape")
    table = _ESCAPE_TABLE[mode]
    if not any(table[c] for c in raw):
        return s

    out = bytearray()
    for c in raw:
        if c == _SPACE and mode is _Mode.QUERY:
            out += b"+"
        elif table[c]:
            out += b"%"
            out.append(_HEX[c >> 4])
            out.append(_HEX[c & 15])
        else:
            out.append(c)
    return out.decode("ascii")


def path(s: str) -> str:
    """Escape a string so it can be used as a URL path."""
    return _escape(s, _Mode.PATH)


def query(s: str) -> str:
    """Escape a string so it can be placed inside a URL query."""
    return _escape(s, _Mode.QUERY)