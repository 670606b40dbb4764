"""Pydantic schemas for API responses, serialized in camelCase"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from veritas_analyzer.domain.errors import PipelineError
from veritas_analyzer.domain.models import AnalysisResult, BusinessActivity, IncomeStability, Statement, Transaction


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RiskFactorSchema(CamelModel):
    name: str
    weight: float
    contribution: float


class RegularClusterSchema(CamelModel):
    amount: float
    count: int
    avg_interval_days: float
    interval_std_dev_days: float
    first_date: date
    last_date: date


class IncomeStabilitySchema(CamelModel):
    score: int
    level: str
    recommendations: List[str]
    regular_clusters: List[RegularClusterSchema]

    @classmethod
    def from_domain(cls, income: IncomeStability) -> "IncomeStabilitySchema":
        return cls(
            score=income.score,
            level=income.level.value,
            recommendations=list(income.recommendations),
            regular_clusters=[
                RegularClusterSchema(
                    amount=float(c.amount),
                    count=c.count,
                    avg_interval_days=c.avg_interval_days,
                    interval_std_dev_days=c.interval_std_dev_days,
                    first_date=c.first_date,
                    last_date=c.last_date,
                )
                for c in income.regular_clusters
            ],
        )


class TransactionSchema(CamelModel):
    date: date
    raw_description: str
    normalized_description: str
    merchant: Optional[str] = None
    category: str
    tags: List[str]
    amount: float
    type: str
    balance: Optional[float] = None
    is_recurring: bool

    @classmethod
    def from_domain(cls, txn: Transaction) -> "TransactionSchema":
        return cls(
            date=txn.date,
            raw_description=txn.raw_description,
            normalized_description=txn.normalized_description,
            merchant=txn.merchant,
            category=txn.category,
            tags=sorted(txn.tags),
            amount=float(txn.amount),
            type=txn.type.value,
            balance=float(txn.balance) if txn.balance is not None else None,
            is_recurring=txn.is_recurring,
        )


class BusinessActivitySchema(CamelModel):
    deposits: float
    expenses: float
    transaction_count: int

    @classmethod
    def from_domain(cls, business: BusinessActivity) -> "BusinessActivitySchema":
        return cls(
            deposits=float(business.deposits),
            expenses=float(business.expenses),
            transaction_count=business.transaction_count,
        )


class AnalysisResultSchema(CamelModel):
    """Stable serialized form of an analysis"""

    veritas_score: int
    grade: str
    risk_factors: List[RiskFactorSchema]
    nsf_count: int
    nsf_total: float
    total_deposits: float
    total_withdrawals: float
    income_stability: IncomeStabilitySchema
    business_activity: BusinessActivitySchema
    transactions: List[TransactionSchema]
    computed_at: datetime
    methodology_version: str

    @classmethod
    def from_domain(cls, result: AnalysisResult) -> "AnalysisResultSchema":
        return cls(
            veritas_score=result.veritas_score,
            grade=result.grade.value,
            risk_factors=[
                RiskFactorSchema(name=f.name, weight=f.weight, contribution=f.contribution) for f in result.risk_factors
            ],
            nsf_count=result.nsf_count,
            nsf_total=float(result.nsf_total),
            total_deposits=float(result.total_deposits),
            total_withdrawals=float(result.total_withdrawals),
            income_stability=IncomeStabilitySchema.from_domain(result.income_stability),
            business_activity=BusinessActivitySchema.from_domain(result.business_activity),
            transactions=[TransactionSchema.from_domain(t) for t in result.transactions],
            computed_at=result.computed_at,
            methodology_version=result.methodology_version,
        )


class AnalyzeResponse(CamelModel):
    """Response for POST /v1/statements/analyze"""

    statement_id: str
    analysis: AnalysisResultSchema
    warnings: List[str] = []
    budget_exhausted_stage: Optional[str] = None


class StatementResponse(CamelModel):
    """Response for GET /v1/statements/{statement_id}"""

    statement_id: str
    bank_name: str
    account_mask: Optional[str] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    transactions: List[TransactionSchema]

    @classmethod
    def from_domain(cls, statement: Statement) -> "StatementResponse":
        start, end = statement.period
        return cls(
            statement_id=statement.statement_id,
            bank_name=statement.metadata.bank_name,
            account_mask=statement.metadata.account_mask,
            period_start=start,
            period_end=end,
            transactions=[TransactionSchema.from_domain(t) for t in statement.transactions],
        )


class ErrorDetail(CamelModel):
    """Body of a 422 response for a statement that could not be analyzed"""

    kind: str
    stage: str
    message: str
    warnings: List[str] = []

    @classmethod
    def from_domain(cls, error: PipelineError) -> "ErrorDetail":
        kind = error.parse_error.kind.value if error.parse_error else error.kind.value
        return cls(kind=kind, stage=error.stage, message=error.message, warnings=error.warnings)
