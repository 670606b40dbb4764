"""Domain models - pure Python dataclasses representing business entities"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple, FrozenSet


UNCATEGORIZED = "uncategorized"


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class Grade(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


class StabilityLevel(str, Enum):
    VERY_STABLE = "VERY_STABLE"
    STABLE = "STABLE"
    MODERATE = "MODERATE"
    UNSTABLE = "UNSTABLE"
    VERY_UNSTABLE = "VERY_UNSTABLE"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"


@dataclass(frozen=True)
class RawTransaction:
    """Transaction candidate as found in the source document, before normalization"""

    line_number: int
    date_text: str
    description: str
    amount_text: str
    balance_text: Optional[str] = None
    amount_column: str = "amount"  # "amount", "debit" or "credit"
    year_hint: Optional[int] = None  # Year for day/month-only date tokens
    layout: str = "generic"


@dataclass(frozen=True)
class Transaction:
    """Normalized bank transaction"""

    date: date
    raw_description: str
    normalized_description: str
    amount: Decimal
    type: TransactionType
    merchant: Optional[str] = None
    category: str = UNCATEGORIZED
    tags: FrozenSet[str] = frozenset()
    balance: Optional[Decimal] = None
    is_recurring: bool = False
    classification_source: Optional[str] = None  # rule | cache | remote | fallback

    def __post_init__(self):
        if (self.amount > 0) != (self.type == TransactionType.CREDIT):
            raise ValueError(f"Amount {self.amount} disagrees with type {self.type.value}")

    @property
    def is_credit(self) -> bool:
        return self.type == TransactionType.CREDIT

    @property
    def is_debit(self) -> bool:
        return self.type == TransactionType.DEBIT

    def enrich(
        self,
        category: Optional[str] = None,
        merchant: Optional[str] = None,
        tags: FrozenSet[str] = frozenset(),
        source: Optional[str] = None,
    ) -> "Transaction":
        """
        Return a copy carrying additional classification data.

        Existing tags are kept, a merchant is only filled in when none is known,
        and date/amount/type are never touched.
        """
        return replace(
            self,
            category=category or self.category,
            merchant=self.merchant or merchant,
            tags=self.tags | frozenset(tags),
            classification_source=source or self.classification_source,
        )

    def mark_recurring(self) -> "Transaction":
        return replace(self, is_recurring=True)


@dataclass(frozen=True)
class StatementMetadata:
    """Account-level details found in the statement header"""

    bank_name: str = "Unknown Bank"
    account_mask: Optional[str] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None


@dataclass(frozen=True)
class Statement:
    """One parsed statement: chronological transactions plus metadata"""

    transactions: Tuple[Transaction, ...]
    metadata: StatementMetadata = field(default_factory=StatementMetadata)
    statement_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def period(self) -> Tuple[Optional[date], Optional[date]]:
        """Statement period, falling back to the first/last transaction dates"""
        start = self.metadata.period_start
        end = self.metadata.period_end
        if self.transactions:
            start = start or self.transactions[0].date
            end = end or self.transactions[-1].date
        return start, end


@dataclass(frozen=True)
class BusinessActivity:
    """Transactions through merchant processors and vendor accounts"""

    deposits: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    transaction_count: int = 0

    @property
    def has_activity(self) -> bool:
        return self.transaction_count > 0

    @property
    def profit_ratio(self) -> Optional[float]:
        if self.deposits == 0:
            return None
        return float((self.deposits - self.expenses) / self.deposits)


@dataclass(frozen=True)
class RiskMetrics:
    """Calculated risk metrics used for scoring"""

    nsf_count: int
    nsf_total: Decimal
    overdraft_count: int
    total_deposits: Decimal
    total_withdrawals: Decimal
    deposit_count: int
    withdrawal_count: int
    average_daily_balance: Optional[Decimal]
    lowest_balance: Optional[Decimal]
    transaction_count: int
    business: BusinessActivity = field(default_factory=BusinessActivity)

    @property
    def deposit_withdrawal_ratio(self) -> Optional[float]:
        if self.total_withdrawals == 0:
            return None
        return float(self.total_deposits / self.total_withdrawals)


@dataclass(frozen=True)
class RegularCluster:
    """Group of similar-amount income credits recurring at consistent intervals"""

    amount: Decimal
    count: int
    avg_interval_days: float
    interval_std_dev_days: float
    first_date: date
    last_date: date
    total_amount: Decimal
    positions: Tuple[int, ...] = ()


@dataclass(frozen=True)
class IncomeStability:
    score: int = 0
    regular_clusters: Tuple[RegularCluster, ...] = ()
    candidate_count: int = 0
    level: StabilityLevel = StabilityLevel.INSUFFICIENT_DATA
    recommendations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RiskFactor:
    """One audited term of the composite score"""

    name: str
    weight: float
    contribution: float


@dataclass(frozen=True)
class AnalysisResult:
    """Output of a statement analysis"""

    veritas_score: int
    grade: Grade
    risk_factors: Tuple[RiskFactor, ...]
    nsf_count: int
    total_deposits: Decimal
    total_withdrawals: Decimal
    income_stability: IncomeStability
    transactions: Tuple[Transaction, ...]
    computed_at: datetime
    methodology_version: str
    overdraft_count: int = 0
    nsf_total: Decimal = Decimal("0")
    business_activity: BusinessActivity = field(default_factory=BusinessActivity)


@dataclass
class ParseWarning:
    """Line that was skipped during parsing"""

    line_number: int
    line: str
    reason: str

