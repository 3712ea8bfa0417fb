"""Tag/flag encoding of Dune etchings, mints and transfers.

A message is a flat sequence of ``(tag, value)`` varint pairs followed by an
optional body of edicts. Absent fields are simply not written: a zero or unset
value produces no tag at all, so readers treat a missing tag as "unset".
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterable, List, Optional, Sequence, Tuple

from .names import ValidationError
from .script import build_dune_script
from .varint import encode_to_tuple, encode_varint

logger = logging.getLogger(__name__)

CLAIM_BIT = 1 << 48
DUNE_ID_PATTERN = re.compile(r"^(\d+)[:/](\d+)$")
# Emoji presentation selector; "❤️" is one symbol even though it is two codepoints.
_VARIATION_SELECTOR = "\ufe0f"


class Tag(IntEnum):
    BODY = 0
    FLAGS = 2
    DUNE = 4
    LIMIT = 6
    OFFSET_END = 8
    DEADLINE = 10
    POINTER = 12
    HEIGHT_START = 14
    OFFSET_START = 16
    HEIGHT_END = 18
    CAP = 20
    PREMINE = 22
    CENOTAPH = 254

    DIVISIBILITY = 1
    SPACERS = 3
    SYMBOL = 5
    NOP = 255

    def encode(self, value: int, payload: bytearray) -> None:
        """Append this tag and ``value`` to ``payload``."""

        payload += encode_varint(self)
        if self is Tag.DUNE:
            payload += bytes(encode_to_tuple(value))
        else:
            payload += encode_varint(value)


class Flag(IntEnum):
    ETCH = 0
    TERMS = 1
    TURBO = 2
    CENOTAPH = 127

    def mask(self) -> int:
        return 1 << self.value

    def set(self, flags: int) -> int:
        return flags | self.mask()

    def take(self, flags: int) -> Tuple[bool, int]:
        """Return whether the flag is set and ``flags`` with it cleared."""

        mask = self.mask()
        return bool(flags & mask), flags & ~mask


@dataclass
class Price:
    """Payment a minter must make to ``pay_to`` for each open mint."""

    amount: int
    pay_to: str


@dataclass
class Terms:
    """Open-mint constraints. ``None`` leaves a dimension unconstrained."""

    limit: Optional[int] = None
    cap: Optional[int] = None
    offset_start: Optional[int] = None
    offset_end: Optional[int] = None
    height_start: Optional[int] = None
    height_end: Optional[int] = None
    price: Optional[Price] = None


@dataclass
class Etching:
    divisibility: int = 0
    terms: Optional[Terms] = None
    turbo: bool = False
    premine: Optional[int] = None
    dune: Optional[int] = None
    spacers: int = 0
    symbol: Optional[str] = None


@dataclass
class Edict:
    """Transfer of ``amount`` units of dune ``id`` to output ``output``."""

    id: int
    amount: int
    output: int


@dataclass
class DuneMessage:
    etching: Optional[Etching] = None
    pointer: Optional[int] = None
    cenotaph: bool = False
    edicts: List[Edict] = field(default_factory=list)

    def encode(self) -> bytes:
        return build_payload(self.etching, self.pointer, self.cenotaph, self.edicts)

    def to_script(self, identifier: bytes) -> bytes:
        return build_dune_script(self.encode(), identifier)


def _encode_etching(etching: Etching, payload: bytearray) -> None:
    flags = Flag.ETCH.mask()
    if etching.turbo:
        flags = Flag.TURBO.set(flags)
    if etching.terms:
        flags = Flag.TERMS.set(flags)
    Tag.FLAGS.encode(flags, payload)

    if etching.dune:
        Tag.DUNE.encode(etching.dune, payload)

    terms = etching.terms
    if terms:
        for tag, value in (
            (Tag.LIMIT, terms.limit),
            (Tag.CAP, terms.cap),
            (Tag.OFFSET_START, terms.offset_start),
            (Tag.OFFSET_END, terms.offset_end),
            (Tag.HEIGHT_START, terms.height_start),
            (Tag.HEIGHT_END, terms.height_end),
        ):
            if value:
                tag.encode(int(value), payload)

    if etching.divisibility:
        Tag.DIVISIBILITY.encode(int(etching.divisibility), payload)
    if etching.spacers:
        Tag.SPACERS.encode(int(etching.spacers), payload)
    if etching.symbol:
        Tag.SYMBOL.encode(ord(etching.symbol[0]), payload)
    if etching.premine:
        Tag.PREMINE.encode(int(etching.premine), payload)


def build_payload(
    etching: Etching | None = None,
    pointer: int | None = None,
    cenotaph: bool = False,
    edicts: Sequence[Edict] | None = None,
) -> bytes:
    """Serialise a Dune message into its tagged byte stream."""

    payload = bytearray()

    if etching:
        _encode_etching(etching, payload)

    if pointer is not None:
        Tag.POINTER.encode(int(pointer), payload)

    if cenotaph:
        Tag.CENOTAPH.encode(0, payload)

    if edicts:
        payload += encode_varint(Tag.BODY)
        last_id = 0
        for edict in sorted(edicts, key=lambda item: int(item.id)):
            payload += encode_varint(int(edict.id) - last_id)
            payload += encode_varint(int(edict.amount))
            payload += encode_varint(int(edict.output))
            last_id = int(edict.id)

    logger.debug("Encoded dune message of %d bytes", len(payload))
    return bytes(payload)


def build_script(
    identifier: bytes,
    etching: Etching | None = None,
    pointer: int | None = None,
    cenotaph: bool = False,
    edicts: Iterable[Edict] | None = None,
) -> bytes:
    """Encode a message and wrap it in an ``OP_RETURN`` output script."""

    payload = build_payload(etching, pointer, cenotaph, list(edicts or []))
    return build_dune_script(payload, identifier)


def parse_dune_id(value: str, claim: bool = False) -> int:
    """Pack ``"<height>:<index>"`` (or ``/``) into a numeric dune id."""

    match = DUNE_ID_PATTERN.match(value.strip())
    if match is None:
        raise ValidationError(
            f"Dune ID {value} is not in the expected format e.g. 1234:1 or 1234/1"
        )
    height, index = (int(group) for group in match.groups())
    if index >= 1 << 16:
        raise ValidationError(f"Dune ID index {index} does not fit in 16 bits")
    dune_id = (height << 16) | index
    if claim:
        dune_id |= CLAIM_BIT
    return dune_id


def validate_symbol(symbol: str) -> str:
    """Return ``symbol`` if it is a single character or a single emoji."""

    stripped = symbol.replace(_VARIATION_SELECTOR, "")
    if len(stripped) != 1 or unicodedata.category(stripped) in {"Cc", "Cs"}:
        raise ValidationError(f"Symbol must be 1 character, got '{symbol}'")
    return stripped
