"""Income stability analyzer - finds recurring income and scores its regularity"""

import logging
import statistics
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Sequence, Tuple

from veritas_analyzer.config import settings
from veritas_analyzer.domain.category_rules import INCOME_TAG, keyword_pattern
from veritas_analyzer.domain.models import IncomeStability, RegularCluster, StabilityLevel, Transaction

logger = logging.getLogger(__name__)

INCOME_KEYWORDS: Tuple[str, ...] = (
    "PAYROLL",
    "SALARY",
    "WAGE",
    "WAGES",
    "PAYCHECK",
    "DIRECT DEP",
    "DIRECT DEPOSIT",
    "DIR DEP",
    "INCOME",
    "EARNINGS",
    "COMPENSATION",
    "STIPEND",
    "PENSION",
    "RETIREMENT",
    "SOCIAL SECURITY",
    "SSA TREAS",
    "UNEMPLOYMENT",
    "BENEFITS",
    "COMMISSION",
    "BONUS",
    "ACH CREDIT",
    "ELECTRONIC DEPOSIT",
    "RECURRING DEPOSIT",
    "AUTOMATIC DEPOSIT",
    "GOVT PAYMENT",
)

INCOME_RX = keyword_pattern(INCOME_KEYWORDS)

# Score weights; each term is in [0, 1]
CLUSTER_WEIGHT = 0.25
COVERAGE_WEIGHT = 0.25
CONSISTENCY_WEIGHT = 0.25
SHARE_WEIGHT = 0.25

# Lowest score for each level, most stable first
LEVEL_THRESHOLDS = (
    (80, StabilityLevel.VERY_STABLE),
    (60, StabilityLevel.STABLE),
    (40, StabilityLevel.MODERATE),
    (20, StabilityLevel.UNSTABLE),
    (0, StabilityLevel.VERY_UNSTABLE),
)

MORE_DATA_RECOMMENDATION = "Provide more transaction data for accurate analysis"


def interpret_stability(score: int) -> StabilityLevel:
    for threshold, level in LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return StabilityLevel.VERY_UNSTABLE


def recommend(score: int, intervals: Sequence[float]) -> Tuple[str, ...]:
    """
    Underwriting hints from the score and the gaps between income deposits.

    Args:
        score: Income stability score
        intervals: Days between consecutive income candidates
    """
    recommendations = []
    if score < 40:
        recommendations.append("Consider requesting additional income documentation")
        recommendations.append("Review for alternative income sources")

    if intervals and statistics.pstdev(intervals) > 10:
        recommendations.append("High variability in income timing detected")
    if len(intervals) < 3:
        recommendations.append("Limited transaction history - consider longer analysis period")

    mean = statistics.fmean(intervals) if intervals else 0.0
    if mean > 35:
        recommendations.append("Income frequency appears to be monthly or less frequent")
    elif intervals and mean < 10:
        recommendations.append("Very frequent income deposits detected - may include non-salary income")

    if not recommendations:
        recommendations.append("Income stability analysis shows positive results")
    return tuple(recommendations)


@dataclass
class _Cluster:
    positions: List[int] = field(default_factory=list)
    amounts: List[Decimal] = field(default_factory=list)
    dates: List[date] = field(default_factory=list)

    @property
    def mean(self) -> Decimal:
        return sum(self.amounts, Decimal("0")) / len(self.amounts)

    def accepts(self, amount: Decimal, tolerance: float) -> bool:
        mean = self.mean
        return abs(amount - mean) <= mean * Decimal(str(tolerance))

    def add(self, position: int, txn: Transaction) -> None:
        self.positions.append(position)
        self.amounts.append(txn.amount)
        self.dates.append(txn.date)


class IncomeStabilityAnalyzer:
    """
    Scores how regular a statement's income is.

    Candidates are credits of at least ``min_income_amount`` that either look
    like income or recur at a similar amount. Candidates are clustered
    greedily by amount; a cluster is regular when its payment intervals are
    both short enough and consistent enough.
    """

    def __init__(
        self,
        min_income_amount: Optional[float] = None,
        amount_tolerance: Optional[float] = None,
        max_gap_days: Optional[float] = None,
        max_std_dev_days: Optional[float] = None,
    ):
        self.min_income_amount = Decimal(str(min_income_amount if min_income_amount is not None else settings.min_income_amount))
        self.amount_tolerance = amount_tolerance if amount_tolerance is not None else settings.income_amount_tolerance
        self.max_gap_days = max_gap_days if max_gap_days is not None else settings.max_income_gap_days
        self.max_std_dev_days = max_std_dev_days if max_std_dev_days is not None else settings.max_interval_std_dev_days

    def analyze(
        self,
        transactions: Sequence[Transaction],
        period: Optional[Tuple[Optional[date], Optional[date]]] = None,
    ) -> IncomeStability:
        candidates = self._candidates(transactions)
        if len(candidates) < 2:
            return IncomeStability(candidate_count=len(candidates), recommendations=(MORE_DATA_RECOMMENDATION,))

        candidate_dates = [transactions[i].date for i in candidates]
        intervals = [(later - earlier).days for earlier, later in zip(candidate_dates, candidate_dates[1:])]

        clusters = self._cluster(candidates, transactions)
        regular = [c for c in (self._summarize(c) for c in clusters) if c is not None]
        if not regular:
            return IncomeStability(
                candidate_count=len(candidates),
                level=interpret_stability(0),
                recommendations=recommend(0, intervals),
            )

        start, end = self._period(transactions, period)
        period_days = max((end - start).days + 1, 1)

        cluster_term = min(1.0, float(len(regular)))
        coverage = max(
            min(1.0, ((c.last_date - c.first_date).days + c.avg_interval_days) / period_days) for c in regular
        )
        member_total = sum(c.count for c in regular)
        consistency = sum(
            (1.0 - min(1.0, c.interval_std_dev_days / c.avg_interval_days)) * c.count for c in regular
        ) / member_total

        total_credits = sum((t.amount for t in transactions if t.is_credit), Decimal("0"))
        regular_total = sum((c.total_amount for c in regular), Decimal("0"))
        share = float(min(Decimal("1"), regular_total / total_credits)) if total_credits > 0 else 0.0

        raw = (
            CLUSTER_WEIGHT * cluster_term
            + COVERAGE_WEIGHT * coverage
            + CONSISTENCY_WEIGHT * consistency
            + SHARE_WEIGHT * share
        )
        score = int(Decimal(str(raw * 100)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        score = max(0, min(100, score))

        logger.debug(
            "Income stability computed",
            extra={"score": score, "regular_clusters": len(regular), "candidates": len(candidates)},
        )
        return IncomeStability(
            score=score,
            regular_clusters=tuple(regular),
            candidate_count=len(candidates),
            level=interpret_stability(score),
            recommendations=recommend(score, intervals),
        )

    def mark_recurring(self, transactions: Sequence[Transaction], stability: IncomeStability) -> List[Transaction]:
        """Copy of ``transactions`` with members of regular clusters flagged recurring"""
        recurring = {p for cluster in stability.regular_clusters for p in cluster.positions}
        return [t.mark_recurring() if i in recurring else t for i, t in enumerate(transactions)]

    def _candidates(self, transactions: Sequence[Transaction]) -> List[int]:
        qualifying = [i for i, t in enumerate(transactions) if t.is_credit and t.amount >= self.min_income_amount]
        tolerance = Decimal(str(self.amount_tolerance))

        def looks_like_income(txn: Transaction) -> bool:
            return INCOME_TAG in txn.tags or bool(INCOME_RX.search(txn.normalized_description))

        def recurs(position: int) -> bool:
            amount = transactions[position].amount
            return any(
                other != position and abs(transactions[other].amount - amount) <= amount * tolerance
                for other in qualifying
            )

        return [i for i in qualifying if looks_like_income(transactions[i]) or recurs(i)]

    def _cluster(self, candidates: List[int], transactions: Sequence[Transaction]) -> List[_Cluster]:
        clusters: List[_Cluster] = []
        for position in candidates:
            txn = transactions[position]
            target = next((c for c in clusters if c.accepts(txn.amount, self.amount_tolerance)), None)
            if target is None:
                target = _Cluster()
                clusters.append(target)
            target.add(position, txn)
        return clusters

    def _summarize(self, cluster: _Cluster) -> Optional[RegularCluster]:
        """RegularCluster for a cluster whose intervals qualify, else None"""
        if len(cluster.positions) < 2:
            return None

        intervals = [(later - earlier).days for earlier, later in zip(cluster.dates, cluster.dates[1:])]
        avg_interval = statistics.fmean(intervals)
        std_dev = statistics.pstdev(intervals)
        if avg_interval <= 0 or avg_interval > self.max_gap_days or std_dev > self.max_std_dev_days:
            return None

        return RegularCluster(
            amount=cluster.mean.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
            count=len(cluster.positions),
            avg_interval_days=round(avg_interval, 2),
            interval_std_dev_days=round(std_dev, 2),
            first_date=cluster.dates[0],
            last_date=cluster.dates[-1],
            total_amount=sum(cluster.amounts, Decimal("0")),
            positions=tuple(cluster.positions),
        )

    @staticmethod
    def _period(
        transactions: Sequence[Transaction], period: Optional[Tuple[Optional[date], Optional[date]]]
    ) -> Tuple[date, date]:
        start, end = period if period else (None, None)
        start = start or transactions[0].date
        end = end or transactions[-1].date
        return start, end
