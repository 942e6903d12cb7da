"""
amtsbote.money
~~~~~~~~~~~~~~
Minor-unit money primitives.

All monetary arithmetic in amtsbote is integer arithmetic on cents.
Conversion to a major-unit ``Decimal`` happens only at boundaries
(XML amounts, CSV input, display).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN


_HUNDRED = Decimal(100)
_TWO = Decimal("0.01")


def round_half_even(value: Decimal) -> int:
    """Round a Decimal to the nearest integer, ties to even."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_EVEN))


def to_major(minor: int) -> Decimal:
    """1999 → Decimal('19.99')"""
    return (Decimal(minor) / _HUNDRED).quantize(_TWO)


def format_major(minor: int) -> str:
    """1999 → '19.99', -5 → '-0.05'"""
    return f"{to_major(minor):.2f}"


def parse_major(text: str | int | float | Decimal) -> int:
    """
    Parse a major-unit amount into minor units.

    Accepts ``"1234.56"``, ``"1234,56"``, ``"1.234,56"`` and plain numbers.
    Sub-cent digits are rounded half-even.
    """
    if isinstance(text, Decimal):
        value = text
    elif isinstance(text, (int, float)):
        value = Decimal(str(text))
    else:
        s = text.strip().replace(" ", "")
        if "," in s and "." in s:
            # whichever separator comes last is the decimal mark
            if s.rfind(",") > s.rfind("."):
                s = s.replace(".", "").replace(",", ".")
            else:
                s = s.replace(",", "")
        elif "," in s:
            s = s.replace(",", ".")
        try:
            value = Decimal(s)
        except InvalidOperation as exc:
            raise ValueError(f"not an amount: {text!r}") from exc
    return round_half_even(value * _HUNDRED)


@dataclass(frozen=True, order=True)
class Money:
    """An amount of money in minor units of one currency."""

    minor:    int
    currency: str = "EUR"

    @classmethod
    def from_major(cls, amount: str | int | float | Decimal, currency: str = "EUR") -> "Money":
        return cls(parse_major(amount), currency)

    def to_major(self) -> Decimal:
        return to_major(self.minor)

    def _check(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise ValueError(f"currency mismatch: {self.currency} vs {other.currency}")

    def __add__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.minor + other.minor, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.minor - other.minor, self.currency)

    def __neg__(self) -> "Money":
        return Money(-self.minor, self.currency)

    def __bool__(self) -> bool:
        return self.minor != 0

    def format(self) -> str:
        """Money(123456) → '1,234.56 EUR'"""
        return f"{self.to_major():,.2f} {self.currency}"

    def __str__(self) -> str:
        return self.format()


__all__ = ["Money", "format_major", "parse_major", "round_half_even", "to_major"]
