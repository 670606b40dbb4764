"""Pytest fixtures for testing"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from veritas_analyzer.api.main import create_app
from veritas_analyzer.domain.categorization import CategorizationEngine
from veritas_analyzer.domain.errors import ClassifierErrorKind
from veritas_analyzer.domain.models import Transaction, TransactionType
from veritas_analyzer.domain.normalizer import canonicalize_merchant, clean_description
from veritas_analyzer.infrastructure.cache import CategorizationCache
from veritas_analyzer.infrastructure.clients.classifier import (
    CircuitBreaker,
    ClassificationBatch,
    ClassificationEntry,
)
from veritas_analyzer.infrastructure.database.models import Base
from veritas_analyzer.infrastructure.database.session import get_db
from veritas_analyzer.pipeline import AnalysisPipeline

# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class StubClassifier:
    """Deterministic classifier: looks categories up by merchant or description"""

    def __init__(
        self,
        categories: Optional[Dict[str, str]] = None,
        confidence: float = 0.9,
        error: Optional[ClassifierErrorKind] = None,
        delay: float = 0.0,
    ):
        self.categories = categories or {}
        self.confidence = confidence
        self.error = error
        self.delay = delay
        self.calls: List[List[Transaction]] = []

    async def batch_classify(self, transactions, timeout) -> ClassificationBatch:
        self.calls.append(list(transactions))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            return ClassificationBatch.failed(self.error, "stub failure")
        return ClassificationBatch(
            entries=[
                ClassificationEntry(
                    category=self.categories.get(t.merchant or t.normalized_description, "shopping"),
                    merchant=t.merchant,
                    confidence=self.confidence,
                )
                for t in transactions
            ]
        )

    @property
    def transactions_seen(self) -> int:
        return sum(len(call) for call in self.calls)


async def _no_sleep(_seconds: float) -> None:
    return None


def build_engine(classifier, **overrides) -> CategorizationEngine:
    """Engine with fast, test-friendly defaults"""
    options = {
        "cache": CategorizationCache(ttl_seconds=3600),
        "circuit_breaker": CircuitBreaker(failure_threshold=5, reset_timeout=30.0),
        "batch_size": 10,
        "pool_size": 2,
        "batch_timeout": 0.5,
        "max_retries": 2,
        "backoff_base": 0.01,
        "min_confidence": 0.5,
        "sleep": _no_sleep,
    }
    options.update(overrides)
    return CategorizationEngine(classifier=classifier, **options)


@pytest.fixture
def classifier_factory() -> Callable[..., StubClassifier]:
    return StubClassifier


@pytest.fixture
def engine_factory() -> Callable[..., CategorizationEngine]:
    return build_engine


@pytest.fixture
def stub_classifier() -> StubClassifier:
    return StubClassifier()


@pytest.fixture
def pipeline(stub_classifier: StubClassifier) -> AnalysisPipeline:
    return AnalysisPipeline(engine=build_engine(stub_classifier), timeout=5.0)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session, pipeline: AnalysisPipeline) -> TestClient:
    """Create FastAPI test client with test database and stub classifier"""
    app = create_app(pipeline=pipeline)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def make_txn() -> Callable[..., Transaction]:
    """Factory for normalized transactions"""

    def _make(
        day: date,
        amount: str,
        description: str = "TEST MERCHANT",
        balance: Optional[str] = None,
        **kwargs,
    ) -> Transaction:
        value = Decimal(amount)
        normalized = clean_description(description)
        return Transaction(
            date=day,
            raw_description=description,
            normalized_description=normalized,
            merchant=kwargs.pop("merchant", canonicalize_merchant(normalized)),
            amount=value,
            type=TransactionType.CREDIT if value > 0 else TransactionType.DEBIT,
            balance=Decimal(balance) if balance is not None else None,
            **kwargs,
        )

    return _make


@pytest.fixture
def chase_statement_text() -> str:
    """Text of a two-month Chase checking statement as pdfplumber would extract it"""
    return "\n".join(
        [
            "JPMorgan Chase Bank, N.A.",
            "Account Number: 000000123456789",
            "Statement Period: 01/01/2024 through 02/29/2024",
            "Beginning Balance $1,000.00",
            "Date Description Amount Balance",
            "01/02 STARBUCKS STORE 12345 SEATTLE WA -5.75 994.25",
            "01/05 PAYROLL DIRECT DEPOSIT ACME CORP 2,500.00 3,494.25",
            "01/08 AMAZON MKTPLACE PMTS -120.40 3,373.85",
            "AMZN.COM/BILL WA",
            "01/15 RENT PAYMENT PROPERTY MGMT -1,800.00 1,573.85",
            "01/19 PAYROLL DIRECT DEPOSIT ACME CORP 2,500.00 4,073.85",
            "01/25 ZZQ HOLDINGS LLC -42.00 4,031.85",
            "Page 1 of 2",
            "02/02 PAYROLL DIRECT DEPOSIT ACME CORP 2,500.00 6,531.85",
            "02/10 NSF FEE RETURNED ITEM -35.00 6,496.85",
            "02/16 PAYROLL DIRECT DEPOSIT ACME CORP 2,500.00 8,996.85",
            "02/30 BROKEN LINE -1.00 8,995.85",
            "Ending Balance $8,996.85",
        ]
    )
