"""Remote transaction classifier client and the circuit breaker guarding it"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, FrozenSet, List, Optional, Protocol, Sequence

import httpx

from veritas_analyzer.config import settings
from veritas_analyzer.domain.errors import ClassifierError, ClassifierErrorKind
from veritas_analyzer.domain.models import Transaction
from veritas_analyzer.infrastructure.observability.metrics import classifier_latency_histogram

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationEntry:
    """Remote verdict for one transaction, aligned by position with the request"""

    category: str
    merchant: Optional[str] = None
    tags: FrozenSet[str] = field(default_factory=frozenset)
    confidence: float = 0.0


@dataclass(frozen=True)
class ClassificationBatch:
    """Either one entry per requested transaction, or a tagged error"""

    entries: List[ClassificationEntry] = field(default_factory=list)
    error: Optional[ClassifierError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, kind: ClassifierErrorKind, message: str) -> "ClassificationBatch":
        return cls(error=ClassifierError(kind=kind, message=message))


class TransactionClassifier(Protocol):
    async def batch_classify(self, transactions: Sequence[Transaction], timeout: float) -> ClassificationBatch:
        ...


class HttpClassifierClient:
    """
    Client for the remote categorization service.

    Request body: ``{"transactions": [{"id", "description", "merchant", "amount", "date"}]}``.
    Response body: ``{"results": [{"id", "category", "merchant", "tags", "confidence"}]}``
    with exactly one result per request item. Failures are returned as a
    tagged ClassificationBatch, never raised.
    """

    def __init__(self, url: str | None = None, api_key: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.url = url or settings.classifier_url
        self.api_key = api_key if api_key is not None else settings.classifier_api_key
        self.transport = transport

    async def batch_classify(self, transactions: Sequence[Transaction], timeout: float) -> ClassificationBatch:
        payload = {
            "transactions": [
                {
                    "id": str(index),
                    "description": txn.normalized_description,
                    "merchant": txn.merchant,
                    "amount": str(txn.amount),
                    "date": txn.date.isoformat(),
                }
                for index, txn in enumerate(transactions)
            ]
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
            try:
                with classifier_latency_histogram.time():
                    response = await client.post(self.url, json=payload, headers=headers)
                    response.raise_for_status()
                data = response.json()
            except httpx.TimeoutException:
                return ClassificationBatch.failed(ClassifierErrorKind.TIMEOUT, f"Classifier timeout after {timeout}s")
            except httpx.HTTPStatusError as e:
                return ClassificationBatch.failed(
                    ClassifierErrorKind.REMOTE_FAILURE, f"Classifier error: {e.response.status_code}"
                )
            except httpx.RequestError as e:
                return ClassificationBatch.failed(ClassifierErrorKind.REMOTE_FAILURE, f"Classifier unreachable: {e}")
            except ValueError as e:
                return ClassificationBatch.failed(ClassifierErrorKind.INVALID_RESPONSE, f"Classifier sent invalid JSON: {e}")

        try:
            results = {str(item["id"]): item for item in data["results"]}
            entries = [
                ClassificationEntry(
                    category=str(results[str(index)]["category"]),
                    merchant=results[str(index)].get("merchant"),
                    tags=frozenset(results[str(index)].get("tags") or ()),
                    confidence=float(results[str(index)].get("confidence", 0.0)),
                )
                for index in range(len(transactions))
            ]
        except (KeyError, TypeError, ValueError) as e:
            return ClassificationBatch.failed(
                ClassifierErrorKind.INVALID_RESPONSE, f"Invalid classification data: {e}"
            )
        return ClassificationBatch(entries=entries)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    Opens after ``failure_threshold`` consecutive failures and rejects calls
    until ``reset_timeout`` seconds have passed. The first call after that is
    a trial (half-open): success closes the circuit, failure reopens it.
    """

    def __init__(self, failure_threshold: int, reset_timeout: float, clock: Callable[[], float] = time.monotonic):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._trial_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            if self._state == CircuitState.OPEN and self._clock() - self._opened_at >= self.reset_timeout:
                return CircuitState.HALF_OPEN
            return self._state

    def allow_request(self) -> bool:
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.OPEN:
                if self._clock() - self._opened_at < self.reset_timeout:
                    return False
                self._state = CircuitState.HALF_OPEN
                self._trial_in_flight = False
            # Half-open: a single trial call at a time
            if self._trial_in_flight:
                return False
            self._trial_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._trial_in_flight = False

    def release_trial(self) -> None:
        """Give back a half-open trial that ended without an answer, e.g. when cancelled"""
        with self._lock:
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._trial_in_flight = False
            self._failures += 1
            if self._state == CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
                if self._state != CircuitState.OPEN:
                    logger.warning("Classifier circuit opened after %d consecutive failures", self._failures)
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
