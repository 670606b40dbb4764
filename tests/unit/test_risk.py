"""Unit tests for risk metric extraction"""

from datetime import date
from decimal import Decimal

from veritas_analyzer.domain.category_rules import NSF_TAG
from veritas_analyzer.domain.risk import average_daily_balance, calculate_risk_metrics, is_nsf_event


def test_two_nsf_fees_are_counted(make_txn):
    """Test that two "NSF FEE" debits give nsf_count == 2"""
    transactions = [
        make_txn(date(2024, 1, 3), "-35.00", "NSF FEE"),
        make_txn(date(2024, 1, 9), "-35.00", "NSF FEE ITEM 1042"),
    ]

    metrics = calculate_risk_metrics(transactions)

    assert metrics.nsf_count == 2
    assert metrics.nsf_total == Decimal("70.00")


def test_nsf_keywords_match_whole_tokens(make_txn):
    assert is_nsf_event(make_txn(date(2024, 1, 3), "-200.00", "ONLINE TRANSFER TO SAVINGS")) is False
    assert is_nsf_event(make_txn(date(2024, 1, 3), "-12.00", "TRANSFERWISE NSFW STICKERS")) is False
    assert is_nsf_event(make_txn(date(2024, 1, 3), "-35.00", "RETURNED ITEM FEE")) is True
    assert is_nsf_event(make_txn(date(2024, 1, 3), "-35.00", "INSUFFICIENT FUNDS CHARGE")) is True


def test_tagged_nsf_with_keyword_counts_once(make_txn):
    txn = make_txn(date(2024, 1, 3), "-35.00", "NSF FEE").enrich("fees", tags=frozenset({NSF_TAG}))

    assert calculate_risk_metrics([txn]).nsf_count == 1


def test_tag_alone_marks_nsf(make_txn):
    txn = make_txn(date(2024, 1, 3), "-35.00", "BANK CHARGE 0193").enrich("fees", tags=frozenset({NSF_TAG}))

    assert is_nsf_event(txn) is True


def test_deposit_and_withdrawal_totals(make_txn):
    transactions = [
        make_txn(date(2024, 1, 1), "2500.00", "PAYROLL"),
        make_txn(date(2024, 1, 2), "-100.25", "GROCERY"),
        make_txn(date(2024, 1, 3), "-49.75", "FUEL"),
        make_txn(date(2024, 1, 3), "20.00", "REFUND"),
    ]

    metrics = calculate_risk_metrics(transactions)

    assert metrics.total_deposits == Decimal("2520.00")
    assert metrics.total_withdrawals == Decimal("150.00")
    assert (metrics.deposit_count, metrics.withdrawal_count) == (2, 2)
    assert metrics.transaction_count == 4
    assert metrics.deposit_withdrawal_ratio == 16.8


def test_overdraft_counts_negative_stated_balances(make_txn):
    transactions = [
        make_txn(date(2024, 1, 1), "-50.00", "RENT", balance="10.00"),
        make_txn(date(2024, 1, 2), "-30.00", "GROCERY", balance="-20.00"),
        make_txn(date(2024, 1, 3), "-5.00", "COFFEE", balance="-25.00"),
        make_txn(date(2024, 1, 4), "-5.00", "COFFEE"),
    ]

    metrics = calculate_risk_metrics(transactions)

    assert metrics.overdraft_count == 2
    assert metrics.lowest_balance == Decimal("-25.00")


def test_average_daily_balance_carries_forward(make_txn):
    """1000 for five days then 800 on the sixth"""
    transactions = [
        make_txn(date(2024, 1, 1), "-10.00", "COFFEE", balance="1000.00"),
        make_txn(date(2024, 1, 6), "-200.00", "UTILITY", balance="800.00"),
    ]

    assert average_daily_balance(transactions) == Decimal("966.67")


def test_average_daily_balance_uses_end_of_day_balance(make_txn):
    transactions = [
        make_txn(date(2024, 1, 1), "-10.00", "COFFEE", balance="100.00"),
        make_txn(date(2024, 1, 1), "-50.00", "GROCERY", balance="50.00"),
        make_txn(date(2024, 1, 2), "-10.00", "COFFEE"),
    ]

    assert average_daily_balance(transactions) == Decimal("50.00")


def test_average_daily_balance_without_balances(make_txn):
    transactions = [make_txn(date(2024, 1, 1), "-10.00", "COFFEE")]

    assert average_daily_balance(transactions) is None
    assert calculate_risk_metrics(transactions).lowest_balance is None


def test_empty_transactions():
    metrics = calculate_risk_metrics([])

    assert metrics.nsf_count == 0
    assert metrics.total_deposits == Decimal("0")
    assert metrics.average_daily_balance is None
    assert metrics.deposit_withdrawal_ratio is None
    assert metrics.business.has_activity is False


def test_nsf_count_never_drops_as_events_are_appended(make_txn):
    transactions = [
        make_txn(date(2024, 1, 2), "1500.00", "PAYROLL ACME"),
        make_txn(date(2024, 1, 3), "-20.00", "GROCERY"),
    ]
    nsf_descriptions = ["NSF FEE", "RETURNED ITEM FEE", "INSUFFICIENT FUNDS CHARGE", "NSF FEE ITEM 1042"]

    counts = [calculate_risk_metrics(transactions).nsf_count]
    for day, description in enumerate(nsf_descriptions, start=4):
        transactions.append(make_txn(date(2024, 1, day), "-35.00", description))
        counts.append(calculate_risk_metrics(transactions).nsf_count)

    assert counts == [0, 1, 2, 3, 4]
    assert calculate_risk_metrics(transactions).nsf_total == Decimal("140.00")


def test_business_activity_from_processor_and_vendor_lines(make_txn):
    transactions = [
        make_txn(date(2024, 1, 2), "1200.00", "SHOPIFY PAYOUT 8812"),
        make_txn(date(2024, 1, 5), "300.00", "STRIPE TRANSFER"),
        make_txn(date(2024, 1, 9), "-450.00", "INVENTORY SUPPLY CO"),
        make_txn(date(2024, 1, 12), "-60.00", "GROCERY"),
        make_txn(date(2024, 1, 15), "-25.00", "SQUARESPACE SUBSCRIPTION"),
    ]

    business = calculate_risk_metrics(transactions).business

    assert business.transaction_count == 3
    assert business.deposits == Decimal("1500.00")
    assert business.expenses == Decimal("450.00")
    assert business.profit_ratio == 0.7
