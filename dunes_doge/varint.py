"""Continuation-bit varints used inside Dune protocol messages.

Unlike LEB128, every continuation step subtracts one before the next shift.
That makes each encoding unique and minimal: ``0x80 0x00`` can never stand for
zero, so there is exactly one byte sequence per integer. Values are plain
Python ints and may exceed 64 bits (amounts and names routinely do).
"""

from __future__ import annotations

from typing import Tuple

LOW_BITS = 0b0111_1111
CONTINUATION = 0b1000_0000


class VarIntError(ValueError):
    """Raised when a varint cannot be encoded or decoded."""


def encode_varint(n: int) -> bytes:
    """Encode a non-negative integer, most significant group first."""

    n = int(n)
    if n < 0:
        raise VarIntError(f"cannot encode negative value {n}")
    out = bytearray([n & LOW_BITS])
    while n > LOW_BITS:
        n = n // 128 - 1
        out.insert(0, (n & LOW_BITS) | CONTINUATION)
    return bytes(out)


def encode_to_tuple(n: int) -> Tuple[int, ...]:
    """Encode ``n`` as a tuple of byte values.

    Dune names are serialised through this path. It builds the same byte
    sequence as :func:`encode_varint`, starting from the least significant
    group and unshifting each continuation byte in front of it.
    """

    n = int(n)
    if n < 0:
        raise VarIntError(f"cannot encode negative value {n}")
    groups = [n & LOW_BITS]
    while n > LOW_BITS:
        n = n // 128 - 1
        groups[0:0] = [(n & LOW_BITS) | CONTINUATION]
    return tuple(groups)


def decode_varint(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """Decode one varint from ``data`` starting at ``offset``.

    Returns ``(value, consumed)`` where ``consumed`` counts the bytes read.
    """

    value = 0
    position = offset
    while position < len(data):
        byte = data[position]
        position += 1
        value = value * 128 + (byte & LOW_BITS)
        if not byte & CONTINUATION:
            return value, position - offset
        value += 1
    if position == offset:
        raise VarIntError("cannot decode varint from empty input")
    raise VarIntError("truncated varint: missing terminating byte")


def encoded_length(n: int) -> int:
    """Return the number of bytes :func:`encode_varint` produces for ``n``."""

    return len(encode_varint(n))
