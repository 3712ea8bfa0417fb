"""Minimal script assembly for Dune outputs and P2PKH spends."""

from __future__ import annotations

from typing import Iterable, Sequence

OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_RETURN = 0x6A
OP_DUP = 0x76
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xA9
OP_CHECKSIG = 0xAC

MAX_SCRIPT_ELEMENT_SIZE = 520


def push_data(data: bytes) -> bytes:
    """Return the minimal push opcode sequence for ``data``."""

    length = len(data)
    if length == 0:
        return bytes([OP_0])
    if length < OP_PUSHDATA1:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OP_PUSHDATA1, length]) + data
    if length <= MAX_SCRIPT_ELEMENT_SIZE:
        return bytes([OP_PUSHDATA2]) + length.to_bytes(2, "little") + data
    raise ValueError(
        f"push of {length} bytes exceeds the {MAX_SCRIPT_ELEMENT_SIZE}-byte script element limit"
    )


def chunk_payload(payload: bytes, limit: int = MAX_SCRIPT_ELEMENT_SIZE) -> list[bytes]:
    """Split ``payload`` into consecutive pieces of at most ``limit`` bytes."""

    if limit <= 0:
        raise ValueError("chunk limit must be positive")
    return [payload[i : i + limit] for i in range(0, len(payload), limit)]


def op_return_script(identifier: bytes, pushes: Iterable[bytes]) -> bytes:
    script = bytearray([OP_RETURN])
    script += push_data(identifier)
    for chunk in pushes:
        script += push_data(chunk)
    return bytes(script)


def build_dune_script(payload: bytes, identifier: bytes) -> bytes:
    """Wrap an encoded Dune message in an unspendable output script.

    The script is ``OP_RETURN <identifier> <chunk> [<chunk> ...]``; joining the
    chunks gives back ``payload``.
    """

    return op_return_script(identifier, chunk_payload(payload))


def p2pkh_script(pubkey_hash: bytes) -> bytes:
    if len(pubkey_hash) != 20:
        raise ValueError(f"P2PKH hash must be 20 bytes, got {len(pubkey_hash)}")
    return bytes([OP_DUP, OP_HASH160, 20]) + pubkey_hash + bytes([OP_EQUALVERIFY, OP_CHECKSIG])


def p2sh_script(script_hash: bytes) -> bytes:
    if len(script_hash) != 20:
        raise ValueError(f"P2SH hash must be 20 bytes, got {len(script_hash)}")
    return bytes([OP_HASH160, 20]) + script_hash + bytes([OP_EQUAL])


def script_sig(pushes: Sequence[bytes]) -> bytes:
    return b"".join(push_data(item) for item in pushes)
