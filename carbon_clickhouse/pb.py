"""Minimal protobuf wire-format decoding primitives.

Every function takes a bytes-like object and returns the decoded value
together with the rest of the input.
"""

import struct

_MASK64 = (1 << 64) - 1
_SIGN64 = 1 << 63


class ProtobufError(ValueError):
    """Malformed protobuf data."""


class TruncatedError(ProtobufError):
    """The message ends in the middle of a field."""

    def __init__(self, message: str = "Message truncated") -> None:
        super().__init__(message)


class UnknownWireTypeError(ProtobufError):
    """A field key carries a wire type that is not supported."""

    def __init__(self, message: str = "Unknown wire type") -> None:
        super().__init__(message)


def _varint_end(p) -> int:
    for i, b in enumerate(p):
        if b & 0x80 == 0:
            return i + 1
    raise TruncatedError()


def wire_type(p):
    """Read a field key; return its wire type and the rest."""
    end = _varint_end(p)
    return p[0] & 0x07, p[end:]


def uint64(p):
    """Read an unsigned varint."""
    end = _varint_end(p)
    ret = 0
    for i in range(end):
        ret += (p[i] & 0x7F) << (7 * i)
    return ret & _MASK64, p[end:]


def int64(p):
    """Read a varint as a two's-complement 64-bit integer."""
    value, rest = uint64(p)
    if value >= _SIGN64:
        value -= 1 << 64
    return value, rest


def double(p):
    """Read a little-endian 64-bit float."""
    if len(p) < 8:
        raise TruncatedError()
    return struct.unpack_from("<d", p)[0], p[8:]


def skip_varint(p):
    """Skip a varint and return the rest."""
    return p[_varint_end(p):]


def read_bytes(p):
    """Read a length-delimited field body."""
    if len(p) < 1:
        raise TruncatedError()
    if p[0] < 128:
        length = p[0]
        p = p[1:]
    else:
        length, p = uint64(p)
    if len(p) < length:
        raise TruncatedError()
    return p[:length], p[length:]


def skip(p):
    """Skip a whole field (key and value) and return the rest."""
    wt, p = wire_type(p)
    if wt == 0:
        return skip_varint(p)
    if wt == 1:
        if len(p) < 8:
            raise TruncatedError()
        return p[8:]
    if wt == 2:
        _, rest = read_bytes(p)
        return rest
    if wt == 5:
        if len(p) < 4:
            raise TruncatedError()
        return p[4:]
    raise UnknownWireTypeError()