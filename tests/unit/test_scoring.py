"""Unit tests for the composite Veritas Score"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from veritas_analyzer.domain.exceptions import ScoringError
from veritas_analyzer.domain.models import Grade, IncomeStability
from veritas_analyzer.domain.risk import calculate_risk_metrics
from veritas_analyzer.domain.scoring import (
    ScoringConfig,
    analyze_transactions,
    determine_grade,
    score,
)


@pytest.fixture
def steady_statement(make_txn):
    return [
        make_txn(date(2024, 1, 1), "3000.00", "PAYROLL ACME", balance="8000.00"),
        make_txn(date(2024, 1, 8), "-1200.00", "RENT", balance="6800.00"),
        make_txn(date(2024, 1, 15), "3000.00", "PAYROLL ACME", balance="9800.00"),
        make_txn(date(2024, 1, 29), "3000.00", "PAYROLL ACME", balance="12800.00"),
    ]


def test_empty_transactions_score_neutral_baseline():
    result = analyze_transactions([])

    assert result.veritas_score == 50
    assert result.grade == Grade.D
    assert result.risk_factors == ()
    assert result.income_stability.score == 0
    assert result.nsf_count == 0


@pytest.mark.parametrize(
    "value,grade",
    [(100, Grade.A), (90, Grade.A), (89, Grade.B), (75, Grade.B), (74, Grade.C), (60, Grade.C),
     (59, Grade.D), (50, Grade.D), (49, Grade.F), (0, Grade.F)],
)
def test_grade_thresholds(value, grade):
    assert determine_grade(value) == grade


def test_steady_income_scores_high(steady_statement):
    result = analyze_transactions(steady_statement)

    assert result.grade == Grade.A
    assert result.income_stability.score >= 80
    assert [t.is_recurring for t in result.transactions] == [True, False, True, True]


def test_factor_order_and_names(steady_statement, make_txn):
    with_balances = analyze_transactions(steady_statement)
    without_balances = analyze_transactions([make_txn(date(2024, 1, 1), "-4.50", "COFFEE")])

    assert [f.name for f in with_balances.risk_factors] == [
        "nsf_events",
        "overdraft_events",
        "income_stability",
        "cash_flow_ratio",
        "average_balance",
        "lowest_balance",
    ]
    assert [f.name for f in without_balances.risk_factors] == [
        "nsf_events",
        "overdraft_events",
        "income_stability",
        "cash_flow_ratio",
    ]


def test_contributions_explain_the_score(steady_statement):
    result = analyze_transactions(steady_statement)

    raw = 50 + sum(f.contribution for f in result.risk_factors)
    assert abs(result.veritas_score - max(0, min(100, raw))) <= 1
    assert all(abs(f.contribution) <= f.weight for f in result.risk_factors)


def test_score_is_clamped_at_zero(make_txn):
    transactions = [
        make_txn(date(2024, 1, 1) + timedelta(days=i), "-35.00", "NSF FEE", balance=f"-{35 * (i + 1)}.00")
        for i in range(20)
    ]

    result = analyze_transactions(transactions)

    assert result.veritas_score == 0
    assert result.grade == Grade.F
    assert result.nsf_count == 20
    assert result.overdraft_count == 20


def test_more_nsf_events_never_raise_the_score(make_txn):
    base = [
        make_txn(date(2024, 1, 1), "1500.00", "PAYROLL ACME"),
        make_txn(date(2024, 1, 15), "1500.00", "PAYROLL ACME"),
        make_txn(date(2024, 1, 29), "1500.00", "PAYROLL ACME"),
    ]
    scores = []
    for n in range(8):
        fees = [make_txn(date(2024, 1, 30), "-35.00", "NSF FEE") for _ in range(n)]
        scores.append(analyze_transactions(base + fees).veritas_score)

    assert scores == sorted(scores, reverse=True)
    assert scores[0] > scores[-1]


def test_unordered_transactions_raise(make_txn):
    transactions = [
        make_txn(date(2024, 1, 5), "-10.00", "COFFEE"),
        make_txn(date(2024, 1, 1), "-10.00", "COFFEE"),
    ]

    with pytest.raises(ScoringError, match="chronological"):
        score(calculate_risk_metrics(transactions), IncomeStability(), transactions)


def test_mismatched_totals_raise(make_txn):
    transactions = [make_txn(date(2024, 1, 1), "-10.00", "COFFEE")]
    other = [make_txn(date(2024, 1, 1), "-25.00", "COFFEE")]

    with pytest.raises(ScoringError, match="totals"):
        score(calculate_risk_metrics(other), IncomeStability(), transactions)


def test_out_of_range_income_score_raises(make_txn):
    transactions = [make_txn(date(2024, 1, 1), "-10.00", "COFFEE")]

    with pytest.raises(ScoringError, match="out of range"):
        score(calculate_risk_metrics(transactions), IncomeStability(score=101), transactions)


@pytest.mark.parametrize("baseline,expected", [(62.5, 63), (62.49, 62), (-5.0, 0), (130.0, 100)])
def test_score_rounds_half_up_and_clamps(baseline, expected):
    result = analyze_transactions([], config=ScoringConfig(baseline=baseline))

    assert result.veritas_score == expected


def test_result_records_methodology_and_time(steady_statement):
    result = analyze_transactions(steady_statement, config=ScoringConfig(methodology_version="test-1"))

    assert result.methodology_version == "test-1"
    assert result.computed_at.tzinfo is not None
    assert result.total_deposits == sum(t.amount for t in steady_statement if t.amount > 0)


def test_negative_lowest_balance_is_penalized(make_txn):
    healthy = [
        make_txn(date(2024, 1, 1), "500.00", "TRANSFER IN", balance="600.00"),
        make_txn(date(2024, 1, 5), "-400.00", "RENT", balance="200.00"),
    ]
    dipped = [
        make_txn(date(2024, 1, 1), "500.00", "TRANSFER IN", balance="600.00"),
        make_txn(date(2024, 1, 3), "-650.00", "RENT", balance="-50.00"),
        make_txn(date(2024, 1, 5), "250.00", "TRANSFER IN", balance="200.00"),
    ]

    healthy_factors = {f.name: f.contribution for f in analyze_transactions(healthy).risk_factors}
    dipped_factors = {f.name: f.contribution for f in analyze_transactions(dipped).risk_factors}

    assert healthy_factors["lowest_balance"] == 0.0
    assert dipped_factors["lowest_balance"] == -10.0


def test_business_activity_adds_bounded_term(make_txn):
    transactions = [
        make_txn(date(2024, 1, 2), "1200.00", "SHOPIFY PAYOUT 8812"),
        make_txn(date(2024, 1, 5), "300.00", "STRIPE TRANSFER"),
        make_txn(date(2024, 1, 9), "-450.00", "INVENTORY SUPPLY CO"),
    ]

    result = analyze_transactions(transactions)

    factors = {f.name: f for f in result.risk_factors}
    assert factors["business_activity"].weight == 5.0
    assert factors["business_activity"].contribution == 3.5
    assert result.business_activity.transaction_count == 3


def test_business_spend_without_deposits_is_neutral(make_txn):
    result = analyze_transactions([make_txn(date(2024, 1, 9), "-450.00", "VENDOR PAYMENT")])

    factors = {f.name: f.contribution for f in result.risk_factors}
    assert factors["business_activity"] == 0.0


def test_result_carries_nsf_total(make_txn):
    transactions = [
        make_txn(date(2024, 1, 2), "900.00", "PAYROLL ACME"),
        make_txn(date(2024, 1, 9), "-35.00", "NSF FEE"),
        make_txn(date(2024, 1, 10), "-34.00", "RETURNED ITEM FEE"),
    ]

    assert analyze_transactions(transactions).nsf_total == Decimal("69.00")
