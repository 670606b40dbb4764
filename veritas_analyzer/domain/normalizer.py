"""Transaction normalization: dates, signed amounts, types and canonical merchants"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from veritas_analyzer.domain.errors import ValidationError
from veritas_analyzer.domain.exceptions import InvalidTransactionDataError
from veritas_analyzer.domain.models import RawTransaction, Transaction, TransactionType
from veritas_analyzer.utils.amount_utils import parse_amount
from veritas_analyzer.utils.date_utils import parse_date

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")

# Applied repeatedly until nothing changes, so the result is a fixpoint
STRIP_RULES: List[Tuple[str, re.Pattern]] = [
    ("card_network_prefix", re.compile(
        r"^(?:POS\s+(?:PURCHASE|DEBIT|WITHDRAWAL)|POS|DEBIT\s+CARD\s+PURCHASE|DEBIT\s+PURCHASE|CHECKCARD"
        r"|CHECK\s+CARD|CARD\s+PURCHASE(?:\s+WITH\s+PIN)?|PURCHASE\s+AUTHORIZED\s+ON\s+\d{1,2}/\d{1,2}"
        r"|RECURRING\s+(?:CARD\s+)?PAYMENT|VISA\s+(?:DEBIT|PURCHASE)|VISA|MASTERCARD|MC|ACH\s+(?:DEBIT|CREDIT)"
        r"|PREAUTHORIZED\s+(?:DEBIT|CREDIT)|ELECTRONIC\s+(?:PAYMENT|WITHDRAWAL))\b[\s:\-]*"
    )),
    ("processor_prefix", re.compile(r"^(?:SQ|TST|PP|PAYPAL|SP|IC|DD|GOOGLE|APL)\s?\*\s*")),
    ("leading_date", re.compile(r"^\d{1,2}/\d{1,2}(?:/\d{2,4})?\s+")),
    ("card_suffix", re.compile(r"\s+CARD\s*(?:#|NO\.?)?\s*[X*\d]{4,}$")),
    ("phone_suffix", re.compile(r"\s+\(?\d{3}\)?[\s\-.]?\d{3}[\s\-.]?\d{4}$")),
    ("location_suffix", re.compile(
        r"\s+(?:[A-Z][A-Z.']*\s+){1,2}"
        r"(?:AL|AK|AZ|AR|CA|CO|CT|DE|FL|GA|HI|ID|IL|IN|IA|KS|KY|LA|ME|MD|MA|MI|MN|MS|MO|MT|NE|NV|NH|NJ"
        r"|NM|NY|NC|ND|OH|OK|OR|PA|RI|SC|SD|TN|TX|UT|VT|VA|WA|WV|WI|WY|DC)$"
    )),
    ("store_number", re.compile(r"(?:\s*#|\s+NO\.?\s*|\s+STORE\s+|\s+STR\s+)\d+$|\s+\d{3,}$")),
    ("reference_number", re.compile(r"\s+(?:REF|ID|CONF|TRACE)[#:\s]*[A-Z0-9]+$")),
    ("trailing_punctuation", re.compile(r"[\s*#\-.,/]+$")),
]

# First matching rule wins; every canonical name must canonicalize to itself
MERCHANT_RULES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\bAMZN\b|\bAMAZON\b"), "AMAZON"),
    (re.compile(r"\bWAL-?MART\b|\bWM SUPERCENTER\b"), "WALMART"),
    (re.compile(r"\bWHOLE\s*FOODS\b|\bWHOLEFDS\b"), "WHOLE FOODS"),
    (re.compile(r"\bTRADER\s+JOE"), "TRADER JOES"),
    (re.compile(r"\bCOSTCO\b"), "COSTCO"),
    (re.compile(r"\bKROGER\b"), "KROGER"),
    (re.compile(r"\bSAFEWAY\b"), "SAFEWAY"),
    (re.compile(r"\bTARGET\b"), "TARGET"),
    (re.compile(r"\bSTARBUCKS\b"), "STARBUCKS"),
    (re.compile(r"\bMCDONALD'?S?\b"), "MCDONALDS"),
    (re.compile(r"\bCHIPOTLE\b"), "CHIPOTLE"),
    (re.compile(r"\bUBER\s*EATS\b"), "UBER EATS"),
    (re.compile(r"\bUBER\b"), "UBER"),
    (re.compile(r"\bLYFT\b"), "LYFT"),
    (re.compile(r"\bDOORDASH\b"), "DOORDASH"),
    (re.compile(r"\bNETFLIX\b"), "NETFLIX"),
    (re.compile(r"\bSPOTIFY\b"), "SPOTIFY"),
    (re.compile(r"\bHULU\b"), "HULU"),
    (re.compile(r"\bAPPLE\.COM\b|\bITUNES\b|^APPLE$"), "APPLE"),
    (re.compile(r"\bSHELL\b"), "SHELL"),
    (re.compile(r"\bCHEVRON\b"), "CHEVRON"),
    (re.compile(r"\bEXXON\b|\bEXXONMOBIL\b"), "EXXONMOBIL"),
    (re.compile(r"\bCOMCAST\b|\bXFINITY\b"), "COMCAST"),
    (re.compile(r"\bVERIZON\b"), "VERIZON"),
    (re.compile(r"\bAT&T\b|\bATT\b"), "AT&T"),
    (re.compile(r"\bCVS\b"), "CVS"),
    (re.compile(r"\bWALGREENS\b"), "WALGREENS"),
    (re.compile(r"\bHOME\s*DEPOT\b"), "HOME DEPOT"),
    (re.compile(r"\bVENMO\b"), "VENMO"),
    (re.compile(r"\bZELLE\b"), "ZELLE"),
    (re.compile(r"\bCASH\s*APP\b"), "CASH APP"),
    (re.compile(r"\bPAYPAL\b"), "PAYPAL"),
    (re.compile(r"\bGEICO\b"), "GEICO"),
]


def clean_description(description: str) -> str:
    """Collapse whitespace and upper-case"""
    return re.sub(r"\s+", " ", description or "").strip().upper()


def strip_merchant_noise(description: str) -> str:
    """Strip card-network prefixes, store numbers and location suffixes until stable"""
    text = clean_description(description)
    while True:
        previous = text
        for _name, pattern in STRIP_RULES:
            stripped = pattern.sub("", text).strip()
            if stripped:
                text = stripped
        if text == previous:
            return text


def canonicalize_merchant(description: str) -> Optional[str]:
    """Canonical merchant name for a description, or None when no rule matches"""
    text = strip_merchant_noise(description)
    for pattern, canonical in MERCHANT_RULES:
        if pattern.search(text):
            return canonical
    return None


def merchant_key(transaction: Transaction) -> str:
    """Cache key for a transaction's merchant"""
    return transaction.merchant or strip_merchant_noise(transaction.normalized_description)


def normalize(raw: RawTransaction) -> Transaction:
    """
    Turn a raw candidate into a Transaction.

    Raises:
        InvalidTransactionDataError: date or amount cannot be parsed, or the amount is zero
    """
    txn_date = parse_date(raw.date_text, raw.year_hint)
    if txn_date is None:
        raise InvalidTransactionDataError(f"Unparseable date {raw.date_text!r}")

    amount = parse_amount(raw.amount_text)
    if amount is None:
        raise InvalidTransactionDataError(f"Unparseable amount {raw.amount_text!r}")

    # Separate debit/credit columns carry unsigned amounts
    if raw.amount_column == "debit":
        amount = -abs(amount)
    elif raw.amount_column == "credit":
        amount = abs(amount)

    amount = amount.quantize(_CENT)
    if amount == 0:
        raise InvalidTransactionDataError("Zero amount")

    balance = parse_amount(raw.balance_text) if raw.balance_text else None
    normalized_description = clean_description(raw.description)

    return Transaction(
        date=txn_date,
        raw_description=raw.description,
        normalized_description=normalized_description,
        merchant=canonicalize_merchant(normalized_description),
        amount=amount,
        type=TransactionType.CREDIT if amount > 0 else TransactionType.DEBIT,
        balance=balance.quantize(_CENT) if balance is not None else None,
    )


@dataclass
class NormalizationResult:
    transactions: List[Transaction] = field(default_factory=list)
    rejected: List[ValidationError] = field(default_factory=list)


def normalize_all(raws: Iterable[RawTransaction]) -> NormalizationResult:
    """
    Normalize every candidate and order chronologically.

    Invalid records are dropped into ``rejected``; ties on date keep document order.
    """
    result = NormalizationResult()
    for raw in raws:
        try:
            result.transactions.append(normalize(raw))
        except (InvalidTransactionDataError, ValueError) as e:
            logger.warning("Dropping line %d: %s", raw.line_number, e)
            result.rejected.append(ValidationError(line_number=raw.line_number, reason=str(e)))

    result.transactions.sort(key=lambda t: t.date)
    return result
