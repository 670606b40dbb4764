"""Data access layer for statements and analyses"""

from datetime import date, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from veritas_analyzer.domain.models import (
    AnalysisResult,
    BusinessActivity,
    Grade,
    IncomeStability,
    RegularCluster,
    RiskFactor,
    StabilityLevel,
    Statement,
    StatementMetadata,
    Transaction,
    TransactionType,
)
from veritas_analyzer.infrastructure.database.models import AnalysisRecord, StatementRecord


class AnalysisRepository:
    """Repository for statements and their analyses"""

    def __init__(self, db: Session):
        self.db = db

    def save(self, statement: Statement, result: AnalysisResult) -> AnalysisRecord:
        """Persist a statement and its analysis; the caller commits"""
        db_statement = self.db.get(StatementRecord, statement.statement_id)
        if db_statement is None:
            db_statement = StatementRecord(
                id=statement.statement_id,
                bank_name=statement.metadata.bank_name,
                account_mask=statement.metadata.account_mask,
                period_start=statement.metadata.period_start,
                period_end=statement.metadata.period_end,
                transaction_count=len(statement.transactions),
                transactions=[_transaction_to_row(t) for t in statement.transactions],
            )
            self.db.add(db_statement)

        db_analysis = AnalysisRecord(
            statement_id=statement.statement_id,
            veritas_score=result.veritas_score,
            grade=result.grade.value,
            nsf_count=result.nsf_count,
            nsf_total=result.nsf_total,
            overdraft_count=result.overdraft_count,
            total_deposits=result.total_deposits,
            total_withdrawals=result.total_withdrawals,
            risk_factors=[
                {"name": f.name, "weight": f.weight, "contribution": f.contribution} for f in result.risk_factors
            ],
            income_stability=_income_to_row(result.income_stability),
            business_activity={
                "deposits": str(result.business_activity.deposits),
                "expenses": str(result.business_activity.expenses),
                "transaction_count": result.business_activity.transaction_count,
            },
            methodology_version=result.methodology_version,
            computed_at=result.computed_at,
        )
        self.db.add(db_analysis)
        self.db.flush()  # Get ID without committing
        return db_analysis

    def load_statement(self, statement_id: str) -> Optional[Statement]:
        db_statement = self.db.get(StatementRecord, statement_id)
        if db_statement is None:
            return None
        return _statement_from_record(db_statement)

    def get_latest_analysis(self, statement_id: str) -> Optional[AnalysisRecord]:
        return (
            self.db.query(AnalysisRecord)
            .filter(AnalysisRecord.statement_id == statement_id)
            .order_by(AnalysisRecord.computed_at.desc())
            .first()
        )

    def load_analysis(self, statement_id: str) -> Optional[Tuple[Statement, AnalysisResult]]:
        """Most recent analysis of a statement, rebuilt as domain objects"""
        db_analysis = self.get_latest_analysis(statement_id)
        if db_analysis is None:
            return None

        statement = _statement_from_record(db_analysis.statement)
        computed_at = db_analysis.computed_at
        if computed_at.tzinfo is None:
            computed_at = computed_at.replace(tzinfo=timezone.utc)

        result = AnalysisResult(
            veritas_score=db_analysis.veritas_score,
            grade=Grade(db_analysis.grade),
            risk_factors=tuple(
                RiskFactor(f["name"], f["weight"], f["contribution"]) for f in db_analysis.risk_factors
            ),
            nsf_count=db_analysis.nsf_count,
            nsf_total=Decimal(db_analysis.nsf_total),
            overdraft_count=db_analysis.overdraft_count,
            total_deposits=Decimal(db_analysis.total_deposits),
            total_withdrawals=Decimal(db_analysis.total_withdrawals),
            income_stability=_income_from_row(db_analysis.income_stability),
            business_activity=_business_from_row(db_analysis.business_activity),
            transactions=statement.transactions,
            computed_at=computed_at,
            methodology_version=db_analysis.methodology_version,
        )
        return statement, result


def _statement_from_record(db_statement: StatementRecord) -> Statement:
    return Statement(
        statement_id=db_statement.id,
        transactions=tuple(_transaction_from_row(row) for row in db_statement.transactions),
        metadata=StatementMetadata(
            bank_name=db_statement.bank_name,
            account_mask=db_statement.account_mask,
            period_start=db_statement.period_start,
            period_end=db_statement.period_end,
        ),
    )


def _transaction_to_row(txn: Transaction) -> Dict[str, Any]:
    return {
        "date": txn.date.isoformat(),
        "raw_description": txn.raw_description,
        "normalized_description": txn.normalized_description,
        "merchant": txn.merchant,
        "category": txn.category,
        "tags": sorted(txn.tags),
        "amount": str(txn.amount),
        "type": txn.type.value,
        "balance": str(txn.balance) if txn.balance is not None else None,
        "is_recurring": txn.is_recurring,
        "classification_source": txn.classification_source,
    }


def _transaction_from_row(row: Dict[str, Any]) -> Transaction:
    return Transaction(
        date=date.fromisoformat(row["date"]),
        raw_description=row["raw_description"],
        normalized_description=row["normalized_description"],
        merchant=row["merchant"],
        category=row["category"],
        tags=frozenset(row["tags"]),
        amount=Decimal(row["amount"]),
        type=TransactionType(row["type"]),
        balance=Decimal(row["balance"]) if row["balance"] is not None else None,
        is_recurring=row["is_recurring"],
        classification_source=row["classification_source"],
    )


def _income_to_row(income: IncomeStability) -> Dict[str, Any]:
    return {
        "score": income.score,
        "candidate_count": income.candidate_count,
        "level": income.level.value,
        "recommendations": list(income.recommendations),
        "regular_clusters": [
            {
                "amount": str(c.amount),
                "count": c.count,
                "avg_interval_days": c.avg_interval_days,
                "interval_std_dev_days": c.interval_std_dev_days,
                "first_date": c.first_date.isoformat(),
                "last_date": c.last_date.isoformat(),
                "total_amount": str(c.total_amount),
                "positions": list(c.positions),
            }
            for c in income.regular_clusters
        ],
    }


def _income_from_row(row: Dict[str, Any]) -> IncomeStability:
    return IncomeStability(
        score=row["score"],
        candidate_count=row.get("candidate_count", 0),
        level=StabilityLevel(row.get("level", StabilityLevel.INSUFFICIENT_DATA.value)),
        recommendations=tuple(row.get("recommendations", ())),
        regular_clusters=tuple(
            RegularCluster(
                amount=Decimal(c["amount"]),
                count=c["count"],
                avg_interval_days=c["avg_interval_days"],
                interval_std_dev_days=c["interval_std_dev_days"],
                first_date=date.fromisoformat(c["first_date"]),
                last_date=date.fromisoformat(c["last_date"]),
                total_amount=Decimal(c["total_amount"]),
                positions=tuple(c["positions"]),
            )
            for c in row["regular_clusters"]
        ),
    )


def _business_from_row(row: Optional[Dict[str, Any]]) -> BusinessActivity:
    if not row:
        return BusinessActivity()
    return BusinessActivity(
        deposits=Decimal(row["deposits"]),
        expenses=Decimal(row["expenses"]),
        transaction_count=row["transaction_count"],
    )
