# backend/billsplit/domain/money.py
from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Sequence


class MoneyError(ValueError):
    """Raised when currency/money parsing or arithmetic fails."""


class InvalidAmount(MoneyError):
    """Raised when a monetary input string is malformed."""


class InvalidWeights(MoneyError):
    """Raised when a proportional division has no usable weights."""


MAX_ABS_CENTS = 10_000_000_00  # $10,000,000.00 safety bound


@dataclass(frozen=True)
class Money:
    """
    Simple money value object using integer cents (USD by default).
    No floats anywhere.
    """
    cents: int
    currency: str = "USD"

    def __post_init__(self) -> None:
        if not isinstance(self.cents, int):
            raise MoneyError("Money.cents must be an int")
        if not isinstance(self.currency, str) or not self.currency.strip():
            raise MoneyError("Money.currency must be a non-empty string")

    @property
    def dollars(self) -> Decimal:
        return Decimal(self.cents) / Decimal(100)

    def format(self, symbol: str = "$") -> str:
        """
        Format cents as a string like "$12.34".
        """
        sign = "-" if self.cents < 0 else ""
        abs_cents = abs(self.cents)
        return f"{sign}{symbol}{abs_cents // 100}.{abs_cents % 100:02d}"


# Typed amounts from forms: optional $, digits, optional 1-2 decimals.
# No sign, no thousands separators.
_AMOUNT_RE = re.compile(r"^\$?\s*(\d{1,9})(?:\.(\d{1,2}))?$")


def parse_amount_to_cents(token: str, *, max_abs_cents: int = MAX_ABS_CENTS) -> int:
    """
    Parse a user-typed, non-negative decimal amount into integer cents.

    Accepts examples:
      "12" -> 1200
      "12.3" -> 1230
      "$12.34" -> 1234

    Rejects:
      "" / "abc"
      "-1.00"
      "12.345"
      "1,234.56"
    """
    if not isinstance(token, str):
        raise InvalidAmount("amount must be a string")

    s = token.strip()
    if s == "":
        raise InvalidAmount("amount is empty")

    m = _AMOUNT_RE.match(s)
    if not m:
        raise InvalidAmount(f"invalid amount: {token}")

    dollars = int(m.group(1))
    dec_digits = m.group(2)
    cents = 0
    if dec_digits is not None:
        cents = int(dec_digits) * 10 if len(dec_digits) == 1 else int(dec_digits)

    total = dollars * 100 + cents
    if total > max_abs_cents:
        raise InvalidAmount("amount exceeds safety limit")
    return total


def add_cents(a: int, b: int) -> int:
    _require_int(a, b)
    return a + b


def multiply_cents(cents: int, factor: int) -> int:
    _require_int(cents, factor)
    return cents * factor


def safe_sum_cents(*values: int) -> int:
    """
    Sum cents with type checks (no floats).
    """
    _require_int(*values)
    return sum(values)


def apply_rate(cents: int, rate: Decimal) -> int:
    """
    Multiply cents by a rate (e.g. Decimal("0.0825")) and round half up
    to the nearest cent.

    Examples:
      apply_rate(1000, Decimal("0.0825")) -> 83   (82.5 rounds up)
      apply_rate(3000, Decimal("0.10"))   -> 300
    """
    _require_int(cents)
    if not isinstance(rate, Decimal):
        raise MoneyError("rate must be a Decimal")
    if rate < 0:
        raise MoneyError("rate must be >= 0")

    try:
        result = int((Decimal(cents) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation as e:
        raise InvalidAmount("rate is too large") from e
    if result > MAX_ABS_CENTS:
        raise InvalidAmount("amount exceeds safety limit")
    return result


def decimal_to_rate(value: str) -> Decimal:
    """
    Convert a percent string such as "8.25" into a rate (Decimal("0.0825")).
    """
    try:
        percent = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmount(f"invalid percentage: {value}") from e
    if not percent.is_finite() or percent < 0:
        raise InvalidAmount(f"invalid percentage: {value}")
    return percent / Decimal(100)


def divide_proportionally(total_cents: int, weights: Sequence[int]) -> List[int]:
    """
    Split total_cents into len(weights) parts proportional to each weight.

      part_i    = total * w_i // sum(w)
      leftover  = total - sum(parts)
      leftover cents go one each to the largest fractional remainders,
      ties resolved by input order

    The parts always sum to total_cents exactly.
    """
    _require_int(total_cents)
    if total_cents < 0:
        raise MoneyError("total_cents must be >= 0")
    if not isinstance(weights, (list, tuple)):
        raise InvalidWeights("weights must be a sequence")
    for w in weights:
        if not isinstance(w, int) or isinstance(w, bool) or w < 0:
            raise InvalidWeights("weights must be non-negative ints")

    weight_sum = sum(weights)
    if weight_sum == 0:
        if total_cents > 0:
            raise InvalidWeights("at least one weight must be positive")
        return [0 for _ in weights]

    parts: List[int] = []
    remainders: List[int] = []
    for w in weights:
        q, r = divmod(total_cents * w, weight_sum)
        parts.append(q)
        remainders.append(r)

    leftover = total_cents - sum(parts)
    by_remainder = sorted(range(len(weights)), key=lambda i: (-remainders[i], i))
    for i in by_remainder[:leftover]:
        parts[i] += 1

    # Safety: ensure penny-perfect sum
    if sum(parts) != total_cents:
        raise MoneyError("internal error: parts do not sum to total")
    return parts


def cents_to_str(cents: int, *, symbol: str = "$") -> str:
    """
    Convert integer cents to a display string like "$12.34".
    """
    if not isinstance(cents, int):
        raise MoneyError("cents must be an int")
    return Money(cents=cents).format(symbol=symbol)


def cents_to_decimal_str(cents: int) -> str:
    """
    Convert integer cents to a plain decimal string like "12.34".
    """
    return cents_to_str(cents, symbol="")


def _require_int(*values: int) -> None:
    for v in values:
        if not isinstance(v, int) or isinstance(v, bool):
            raise MoneyError("all values must be int cents")
