"""
Money values as they travel through the ledger.

Amounts are `Decimal` everywhere. Before encryption an amount is serialized
to its canonical string:

    to_canonical_string(Decimal("1200.50"))  -> "1200.5"
    to_canonical_string(408)                 -> "408"
    to_canonical_string(-0.0)                -> "0"

No exponent, "." as decimal separator, no thousands separators.
"""
import re
from decimal import Decimal, InvalidOperation

# What an at-rest value looks like before it has been encrypted
PLAIN_DECIMAL_RE = re.compile(r"^-?\d+(\.\d+)?$")

# Accepted when parsing a decrypted plaintext; the exponent form is what other
# clients emit for very large or very small numbers.
CANONICAL_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?([eE][+-]?\d+)?$")


def to_decimal(amount) -> Decimal:
    """
    Coerce int / float / str / Decimal to a finite Decimal.

    Floats go through `str()` so 0.1 stays 0.1 instead of its binary expansion.

    Raises:
        ValueError: value is not a finite number
    """
    if isinstance(amount, bool):
        raise ValueError("Amount must be a number, not a boolean")
    if isinstance(amount, float):
        amount = str(amount)
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"Not a number: {amount!r}") from exc
    if not value.is_finite():
        raise ValueError("Amount must be finite")
    return value


def to_canonical_string(amount) -> str:
    value = to_decimal(amount)
    if value.is_zero():
        return "0"
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def parse_canonical(text: str) -> Decimal:
    """
    Parse a canonical number string.

    Raises:
        ValueError: text is not a canonical number
    """
    if not CANONICAL_NUMBER_RE.match(text):
        raise ValueError("Not a canonical number")
    return to_decimal(text)


def is_plain_decimal(value: str | None) -> bool:
    """True for values that were stored in clear (e.g. by seed SQL)."""
    if not value:
        return False
    return bool(PLAIN_DECIMAL_RE.match(value))
