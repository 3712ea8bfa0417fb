"""Dune names: bijective base-26 numerals with display-only spacers."""

from __future__ import annotations

from dataclasses import dataclass

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
SPACER = "•"
SPACER_GLYPHS = frozenset({"•", "‣"})


class ValidationError(ValueError):
    """Raised when user-supplied protocol values are malformed."""


def parse_name(value: str) -> int:
    """Convert an uppercase letter string into its integer name value.

    ``A`` is 0, ``Z`` is 25 and ``AA`` is 26: every letter after the first adds
    one before shifting, so each integer has exactly one spelling.
    """

    if not value:
        raise ValidationError("Dune name must not be empty")
    number = 0
    for index, character in enumerate(value):
        if index > 0:
            number += 1
        number *= 26
        if "A" <= character <= "Z":
            number += ord(character) - ord("A")
        else:
            raise ValidationError(f"Invalid character in dune name: {character}")
    return number


def name_to_string(number: int) -> str:
    """Render an integer name value back into letters."""

    number = int(number)
    if number < 0:
        raise ValidationError(f"Dune name value must be non-negative, got {number}")
    letters: list[str] = []
    number += 1
    while number > 0:
        number -= 1
        letters.append(ALPHABET[number % 26])
        number //= 26
    return "".join(reversed(letters))


@dataclass(frozen=True)
class SpacedName:
    """A name value plus the bitmask of gaps that display a spacer."""

    name: int
    spacers: int = 0

    @property
    def letters(self) -> str:
        return name_to_string(self.name)

    def __str__(self) -> str:
        letters = self.letters
        rendered: list[str] = []
        for index, letter in enumerate(letters):
            rendered.append(letter)
            if index < len(letters) - 1 and self.spacers & (1 << index):
                rendered.append(SPACER)
        return "".join(rendered)


def parse_spaced_name(value: str) -> SpacedName:
    """Parse a name such as ``UNCOMMON•GOODS`` into a :class:`SpacedName`."""

    letters: list[str] = []
    spacers = 0
    for character in value:
        if "A" <= character <= "Z":
            letters.append(character)
        elif character in SPACER_GLYPHS:
            if not letters:
                raise ValidationError("leading spacer")
            flag = 1 << (len(letters) - 1)
            if spacers & flag:
                raise ValidationError("double spacer")
            spacers |= flag
        else:
            raise ValidationError(f"invalid character in dune name: {character!r}")

    if not letters:
        raise ValidationError("Dune name must not be empty")
    if spacers.bit_length() >= len(letters):
        raise ValidationError("trailing spacer")

    return SpacedName(name=parse_name("".join(letters)), spacers=spacers)
