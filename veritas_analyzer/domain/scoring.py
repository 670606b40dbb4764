"""Composite scorer - core business logic for the Veritas Score"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Sequence

from veritas_analyzer.config import settings
from veritas_analyzer.domain.exceptions import ScoringError
from veritas_analyzer.domain.income import IncomeStabilityAnalyzer
from veritas_analyzer.domain.models import (
    AnalysisResult,
    Grade,
    IncomeStability,
    RiskFactor,
    RiskMetrics,
    Transaction,
)
from veritas_analyzer.domain.risk import calculate_risk_metrics

# Lowest score for each grade, highest grade first
GRADE_THRESHOLDS = (
    (90, Grade.A),
    (75, Grade.B),
    (60, Grade.C),
    (50, Grade.D),
    (0, Grade.F),
)


@dataclass(frozen=True)
class ScoringConfig:
    """
    Weights of the composite score.

    Each term is bounded by its weight:
    - nsf_events:       -nsf_weight * n/(n+2)        (saturating penalty)
    - overdraft_events: -overdraft_weight * n/(n+2)
    - income_stability: +income_weight * score/100
    - cash_flow_ratio:  cash_flow_weight * clamp(deposits/withdrawals - 1, -1, 1)
    - average_balance:  +balance_weight * min(1, adb/balance_target), only with stated balances
    - lowest_balance:   -lowest_balance_weight when any stated balance is negative, only with stated balances
    - business_activity: business_weight * clamp(profit ratio, -1, 1), only with business transactions
    """

    baseline: float = 50.0
    nsf_weight: float = 40.0
    overdraft_weight: float = 25.0
    income_weight: float = 30.0
    cash_flow_weight: float = 15.0
    balance_weight: float = 10.0
    balance_target: Decimal = Decimal("5000")
    lowest_balance_weight: float = 10.0
    business_weight: float = 5.0
    methodology_version: str = field(default_factory=lambda: settings.methodology_version)


def determine_grade(score: int) -> Grade:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return Grade.F


def _saturating(count: int) -> float:
    return count / (count + 2)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def calculate_risk_factors(risk: RiskMetrics, income: IncomeStability, config: ScoringConfig) -> List[RiskFactor]:
    """Ordered score terms; empty when there are no transactions to judge"""
    if risk.transaction_count == 0:
        return []

    if risk.total_withdrawals > 0:
        cash_flow = _clamp(float(risk.total_deposits / risk.total_withdrawals) - 1.0, -1.0, 1.0)
    else:
        # Deposits only: spending well within means
        cash_flow = 1.0

    factors = [
        RiskFactor("nsf_events", config.nsf_weight, -config.nsf_weight * _saturating(risk.nsf_count)),
        RiskFactor(
            "overdraft_events", config.overdraft_weight, -config.overdraft_weight * _saturating(risk.overdraft_count)
        ),
        RiskFactor("income_stability", config.income_weight, config.income_weight * income.score / 100),
        RiskFactor("cash_flow_ratio", config.cash_flow_weight, config.cash_flow_weight * cash_flow),
    ]

    if risk.average_daily_balance is not None:
        balance_term = min(1.0, max(0.0, float(risk.average_daily_balance / config.balance_target)))
        factors.append(RiskFactor("average_balance", config.balance_weight, config.balance_weight * balance_term))

    if risk.lowest_balance is not None:
        penalty = -config.lowest_balance_weight if risk.lowest_balance < 0 else 0.0
        factors.append(RiskFactor("lowest_balance", config.lowest_balance_weight, penalty))

    if risk.business.has_activity:
        ratio = risk.business.profit_ratio
        business_term = _clamp(ratio, -1.0, 1.0) if ratio is not None else 0.0
        factors.append(
            RiskFactor("business_activity", config.business_weight, config.business_weight * business_term)
        )

    return factors


def _validate(risk: RiskMetrics, income: IncomeStability, transactions: Sequence[Transaction]) -> None:
    if any(later.date < earlier.date for earlier, later in zip(transactions, transactions[1:])):
        raise ScoringError("Transactions are not in chronological order")

    deposits = sum((t.amount for t in transactions if t.is_credit), Decimal("0"))
    withdrawals = sum((-t.amount for t in transactions if t.is_debit), Decimal("0"))
    if deposits != risk.total_deposits or withdrawals != risk.total_withdrawals:
        raise ScoringError("Risk metric totals do not match the transactions they describe")

    if risk.transaction_count != len(transactions) or risk.nsf_count > len(transactions):
        raise ScoringError("Risk metric counts do not match the transactions they describe")

    if not 0 <= income.score <= 100:
        raise ScoringError(f"Income stability score out of range: {income.score}")


def score(
    risk: RiskMetrics,
    income: IncomeStability,
    transactions: Sequence[Transaction],
    config: Optional[ScoringConfig] = None,
    computed_at: Optional[datetime] = None,
) -> AnalysisResult:
    """
    Combine risk metrics and income stability into an AnalysisResult.

    Starts from a neutral baseline, adds each bounded term, clamps to
    [0, 100] and rounds half-up.

    Raises:
        ScoringError: inputs break ordering or totals invariants
    """
    config = config or ScoringConfig()
    _validate(risk, income, transactions)

    factors = calculate_risk_factors(risk, income, config)
    raw = config.baseline + sum(f.contribution for f in factors)
    clamped = _clamp(raw, 0.0, 100.0)
    veritas_score = int(Decimal(str(clamped)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return AnalysisResult(
        veritas_score=veritas_score,
        grade=determine_grade(veritas_score),
        risk_factors=tuple(
            RiskFactor(f.name, f.weight, round(f.contribution, 2)) for f in factors
        ),
        nsf_count=risk.nsf_count,
        nsf_total=risk.nsf_total,
        total_deposits=risk.total_deposits,
        total_withdrawals=risk.total_withdrawals,
        overdraft_count=risk.overdraft_count,
        business_activity=risk.business,
        income_stability=income,
        transactions=tuple(transactions),
        computed_at=computed_at or datetime.now(timezone.utc),
        methodology_version=config.methodology_version,
    )


def analyze_transactions(
    transactions: Sequence[Transaction],
    analyzer: Optional[IncomeStabilityAnalyzer] = None,
    config: Optional[ScoringConfig] = None,
    period=None,
) -> AnalysisResult:
    """
    Main entry point for already-categorized transactions.

    Runs the risk calculator and income analyzer, flags recurring income and
    returns the scored result. An empty sequence yields the neutral baseline.
    """
    analyzer = analyzer or IncomeStabilityAnalyzer()
    transactions = list(transactions)

    risk = calculate_risk_metrics(transactions)
    income = analyzer.analyze(transactions, period)
    marked = analyzer.mark_recurring(transactions, income)

    return score(risk, income, marked, config)
