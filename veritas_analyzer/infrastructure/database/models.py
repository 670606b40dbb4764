"""SQLAlchemy ORM models for statements and their analyses"""

import uuid

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class StatementRecord(Base):
    """Parsed statement with its normalized, categorized transactions"""

    __tablename__ = "statement"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    bank_name = Column(Text, nullable=False)
    account_mask = Column(Text, nullable=True)
    period_start = Column(Date, nullable=True)
    period_end = Column(Date, nullable=True)
    transaction_count = Column(Integer, nullable=False)
    transactions = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    analyses = relationship("AnalysisRecord", back_populates="statement", cascade="all, delete-orphan")


class AnalysisRecord(Base):
    """Scored analysis of one statement"""

    __tablename__ = "statement_analysis"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    statement_id = Column(String(36), ForeignKey("statement.id", ondelete="CASCADE"), nullable=False, index=True)
    veritas_score = Column(Integer, nullable=False)
    grade = Column(String(1), nullable=False)
    nsf_count = Column(Integer, nullable=False)
    nsf_total = Column(Numeric(14, 2), nullable=False, default=0)
    overdraft_count = Column(Integer, nullable=False, default=0)
    total_deposits = Column(Numeric(14, 2), nullable=False)
    total_withdrawals = Column(Numeric(14, 2), nullable=False)
    risk_factors = Column(JSON, nullable=False)
    income_stability = Column(JSON, nullable=False)
    business_activity = Column(JSON, nullable=True)
    methodology_version = Column(Text, nullable=False)
    computed_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    statement = relationship("StatementRecord", back_populates="analyses")
