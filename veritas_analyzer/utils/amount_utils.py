"""Currency amount parsing"""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

_NUMBER = r"(?:\d{1,3}(?:,\d{3})+|\d+)\.\d{2}"

# Amount tokens as they appear in statement lines
AMOUNT_TOKEN = (
    rf"(?:\(\s*-?\$?\s?{_NUMBER}\s*\)"
    rf"|[-+]?\$?\s?{_NUMBER}-?(?:\s?(?:CR|DR))?)"
)

_PLAIN_NUMBER_RX = re.compile(r"^(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?$")


def parse_amount(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a currency string into a signed Decimal.

    Handles thousands separators, currency symbols, leading or trailing
    minus signs, parenthesized negatives and CR/DR suffixes.
    """
    if value is None:
        return None

    cleaned = value.strip().upper()
    if not cleaned:
        return None

    suffix_sign = None
    for token, sign in (("CREDIT", 1), ("DEBIT", -1), ("CR", 1), ("DR", -1)):
        if cleaned.endswith(token):
            suffix_sign = sign
            cleaned = cleaned[: -len(token)].strip()
            break

    cleaned = cleaned.replace("$", "").replace(" ", "")

    negative = False
    if cleaned.startswith("(") and cleaned.endswith(")"):
        negative = True
        cleaned = cleaned[1:-1]
    if cleaned.startswith("-"):
        negative = not negative
        cleaned = cleaned[1:]
    elif cleaned.startswith("+"):
        cleaned = cleaned[1:]
    elif cleaned.endswith("-"):
        negative = not negative
        cleaned = cleaned[:-1]

    if not _PLAIN_NUMBER_RX.match(cleaned):
        return None

    try:
        amount = Decimal(cleaned.replace(",", ""))
    except InvalidOperation:
        return None

    if suffix_sign is not None:
        return amount * suffix_sign
    return -amount if negative else amount
