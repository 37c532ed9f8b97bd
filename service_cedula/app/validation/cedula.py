"""
Dominican cédula parsing.

A cédula has 11 digits: a 3-digit municipality (region) code, a 7-digit
sequence and a check digit. Callers may send it bare or hyphenated
(``001-1234567-1``); every non-digit character is ignored.
"""

import re
from dataclasses import dataclass
from typing import Optional

from shared.errors import InvalidIdentifierError

CEDULA_LENGTH = 11
_NON_DIGITS = re.compile(r"[^0-9]")


@dataclass(frozen=True)
class NationalId:
    """A validated cédula."""

    raw: str
    canonical: str

    @property
    def region(self) -> str:
        return self.canonical[0:3]

    @property
    def sequence(self) -> str:
        return self.canonical[3:10]

    @property
    def check(self) -> str:
        return self.canonical[10:11]

    @property
    def formatted(self) -> str:
        return f"{self.region}-{self.sequence}-{self.check}"

    def __str__(self) -> str:
        return self.formatted


def clean(raw: Optional[str]) -> str:
    """Return only the ASCII digits of ``raw``."""
    if raw is None:
        return ""
    return _NON_DIGITS.sub("", raw)


def format_display(digits: str) -> str:
    """Hyphenate an 11-digit string; anything else is returned unchanged."""
    if len(digits) != CEDULA_LENGTH or not digits.isdigit():
        return digits
    return f"{digits[0:3]}-{digits[3:10]}-{digits[10:11]}"


def validate(raw: Optional[str]) -> NationalId:
    """Parse untrusted input into a NationalId.

    Raises InvalidIdentifierError unless exactly 11 digits remain after
    stripping everything else.
    """
    digits = clean(raw)
    if len(digits) != CEDULA_LENGTH:
        raise InvalidIdentifierError(raw, digits)
    return NationalId(raw=raw, canonical=digits)
