"""Unit tests for transaction normalization and merchant canonicalization"""

from datetime import date
from decimal import Decimal

import pytest

from veritas_analyzer.domain.exceptions import InvalidTransactionDataError
from veritas_analyzer.domain.models import RawTransaction, TransactionType
from veritas_analyzer.domain.normalizer import (
    MERCHANT_RULES,
    canonicalize_merchant,
    normalize,
    normalize_all,
    strip_merchant_noise,
)


def _raw(amount_text: str, description: str = "TEST", date_text: str = "01/05/2024", **kwargs) -> RawTransaction:
    return RawTransaction(
        line_number=kwargs.pop("line_number", 1),
        date_text=date_text,
        description=description,
        amount_text=amount_text,
        **kwargs,
    )


def test_parenthesized_amount_is_debit():
    """Test that "(150.00)" becomes a -150.00 debit"""
    txn = normalize(_raw("(150.00)"))

    assert txn.amount == Decimal("-150.00")
    assert txn.type == TransactionType.DEBIT


def test_normalize_sets_type_from_sign():
    credit = normalize(_raw("2,500.00", "PAYROLL ACME"))
    debit = normalize(_raw("-12.34"))

    assert credit.type == TransactionType.CREDIT and credit.amount == Decimal("2500.00")
    assert debit.type == TransactionType.DEBIT and debit.amount == Decimal("-12.34")


def test_normalize_debit_and_credit_columns_force_sign():
    debit = normalize(_raw("4.50", amount_column="debit"))
    credit = normalize(_raw("-2500.00", amount_column="credit"))

    assert debit.amount == Decimal("-4.50")
    assert credit.amount == Decimal("2500.00")


def test_normalize_uses_year_hint_and_balance():
    txn = normalize(_raw("-5.75", "STARBUCKS", date_text="01/02", year_hint=2024, balance_text="1,994.25"))

    assert txn.date == date(2024, 1, 2)
    assert txn.balance == Decimal("1994.25")


def test_normalize_cleans_description_and_finds_merchant():
    txn = normalize(_raw("-54.20", "  pos purchase   Wal-Mart #1234  Bentonville AR "))

    assert txn.raw_description == "  pos purchase   Wal-Mart #1234  Bentonville AR "
    assert txn.normalized_description == "POS PURCHASE WAL-MART #1234 BENTONVILLE AR"
    assert txn.merchant == "WALMART"


@pytest.mark.parametrize(
    "raw,reason",
    [
        (_raw("0.00"), "Zero amount"),
        (_raw("abc"), "amount"),
        (_raw("-1.00", date_text="02/30/2024"), "date"),
        (_raw("-1.00", date_text="01/05"), "date"),
    ],
)
def test_normalize_rejects_invalid_records(raw, reason):
    with pytest.raises(InvalidTransactionDataError, match=reason):
        normalize(raw)


def test_normalize_all_drops_invalid_and_sorts_stably():
    raws = [
        _raw("-3.00", "THIRD", date_text="01/10/2024", line_number=1),
        _raw("0.00", "ZERO", date_text="01/01/2024", line_number=2),
        _raw("-1.00", "FIRST", date_text="01/05/2024", line_number=3),
        _raw("-2.00", "SECOND", date_text="01/05/2024", line_number=4),
    ]

    result = normalize_all(raws)

    assert [t.normalized_description for t in result.transactions] == ["FIRST", "SECOND", "THIRD"]
    assert len(result.rejected) == 1
    assert result.rejected[0].line_number == 2


@pytest.mark.parametrize(
    "description,expected",
    [
        ("POS PURCHASE WAL-MART #1234 BENTONVILLE AR", "WALMART"),
        ("AMZN MKTP US*2K4L19", "AMAZON"),
        ("STARBUCKS STORE 12345 SEATTLE WA", "STARBUCKS"),
        ("CHECKCARD 0105 WHOLEFDS MKT 10234 AUSTIN TX", "WHOLE FOODS"),
        ("SQ *UBER EATS", "UBER EATS"),
        ("NETFLIX.COM 866-579-7172", "NETFLIX"),
        ("APPLE.COM/BILL", "APPLE"),
        ("SQ *BLUE BOTTLE COFFEE", None),
    ],
)
def test_canonicalize_merchant(description, expected):
    assert canonicalize_merchant(description) == expected


def test_canonical_names_map_to_themselves():
    for _pattern, canonical in MERCHANT_RULES:
        assert canonicalize_merchant(canonical) == canonical


@pytest.mark.parametrize(
    "description",
    [
        "POS PURCHASE WAL-MART #1234 BENTONVILLE AR",
        "SQ *BLUE BOTTLE COFFEE OAKLAND CA",
        "DEBIT CARD PURCHASE TST* JOE'S DINER 555-123-4567",
        "ONLINE TRANSFER REF #ABC123",
        "ZZQ HOLDINGS LLC",
        "CARD PURCHASE SHELL OIL 57442 HOUSTON TX CARD 1234",
    ],
)
def test_strip_merchant_noise_is_idempotent(description):
    once = strip_merchant_noise(description)

    assert once
    assert strip_merchant_noise(once) == once
    assert canonicalize_merchant(once) == canonicalize_merchant(description)


def test_strip_merchant_noise_never_empties():
    assert strip_merchant_noise("POS") == "POS"
