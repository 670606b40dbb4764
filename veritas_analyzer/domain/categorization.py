"""
Categorization engine - local rules first, then cached or remote classification.

The remote classifier is the only I/O in the analysis. Batches run in a
bounded pool with a per-batch timeout and exponential-backoff retries, and
never past the caller's deadline. Whatever cannot be classified is marked
uncategorized with a risk-neutral tag; nothing here raises to the caller.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from veritas_analyzer.config import settings
from veritas_analyzer.domain.category_rules import CATEGORY_RULES, UNAVAILABLE_TAG, CategoryRule, match_rule
from veritas_analyzer.domain.errors import ClassifierErrorKind
from veritas_analyzer.domain.models import UNCATEGORIZED, Transaction
from veritas_analyzer.domain.normalizer import merchant_key
from veritas_analyzer.infrastructure.cache import CachedCategory, CategorizationCache
from veritas_analyzer.infrastructure.clients.classifier import (
    CircuitBreaker,
    ClassificationBatch,
    TransactionClassifier,
)
from veritas_analyzer.infrastructure.observability.metrics import classifier_failure_counter

logger = logging.getLogger(__name__)

SOURCE_RULE = "rule"
SOURCE_CACHE = "cache"
SOURCE_REMOTE = "remote"
SOURCE_FALLBACK = "fallback"


@dataclass
class CategorizationResult:
    """Enriched transactions (same order as the input) plus run diagnostics"""

    transactions: List[Transaction]
    rule_matches: int = 0
    cache_hits: int = 0
    remote_calls: int = 0
    fallbacks: int = 0
    budget_exhausted: bool = False
    errors: List[str] = field(default_factory=list)


@dataclass
class _BatchOutcome:
    keys: List[str]
    batch: Optional[ClassificationBatch]
    calls: int = 0
    budget_exhausted: bool = False


class CategorizationEngine:
    """
    Enriches normalized transactions with category, merchant and tags.

    Owns its CategorizationCache and CircuitBreaker; the classifier is
    injected so tests can substitute a deterministic stub.
    """

    def __init__(
        self,
        classifier: TransactionClassifier,
        cache: Optional[CategorizationCache] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        rules: Optional[List[CategoryRule]] = None,
        batch_size: Optional[int] = None,
        pool_size: Optional[int] = None,
        batch_timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        min_confidence: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.classifier = classifier
        self.cache = cache or CategorizationCache(
            ttl_seconds=settings.categorization_cache_ttl_seconds,
            max_entries=settings.categorization_cache_max_entries,
        )
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=settings.classifier_failure_threshold,
            reset_timeout=settings.classifier_reset_timeout_seconds,
        )
        self.rules = rules if rules is not None else CATEGORY_RULES
        self.batch_size = batch_size or settings.classifier_batch_size
        self.pool_size = pool_size or settings.classifier_pool_size
        self.batch_timeout = batch_timeout or settings.classifier_batch_timeout_seconds
        self.max_retries = settings.classifier_max_retries if max_retries is None else max_retries
        self.backoff_base = settings.classifier_backoff_base if backoff_base is None else backoff_base
        self.min_confidence = settings.classifier_min_confidence if min_confidence is None else min_confidence
        self._sleep = sleep

    async def categorize(
        self, transactions: Sequence[Transaction], deadline: Optional[float] = None
    ) -> CategorizationResult:
        """
        Categorize transactions without reordering them.

        Args:
            transactions: Normalized transactions in statement order
            deadline: Absolute event-loop time after which no remote attempt starts
        """
        result = CategorizationResult(transactions=list(transactions))

        # Local rules, then group the rest by merchant key
        pending: "OrderedDict[str, List[int]]" = OrderedDict()
        for index, txn in enumerate(result.transactions):
            rule = match_rule(_rule_text(txn), txn.is_credit, self.rules)
            if rule is not None:
                result.transactions[index] = txn.enrich(rule.category, tags=rule.tags, source=SOURCE_RULE)
                result.rule_matches += 1
            else:
                pending.setdefault(merchant_key(txn), []).append(index)

        if pending:
            self.cache.evict_expired()

        misses: List[str] = []
        for key, positions in pending.items():
            cached = self.cache.get(key)
            if cached is None:
                misses.append(key)
                continue
            result.cache_hits += 1
            self._apply(result, positions, cached, SOURCE_CACHE)

        if not misses:
            return result

        outcomes = await self._classify_remote(misses, pending, result.transactions, deadline)

        for outcome in outcomes:
            result.remote_calls += outcome.calls
            result.budget_exhausted = result.budget_exhausted or outcome.budget_exhausted
            if outcome.batch is None or not outcome.batch.ok:
                if outcome.batch is not None:
                    result.errors.append(f"{outcome.batch.error.kind.value}: {outcome.batch.error.message}")
                for key in outcome.keys:
                    self._fallback(result, pending[key])
                continue

            for key, entry in zip(outcome.keys, outcome.batch.entries):
                if entry.confidence < self.min_confidence or not entry.category:
                    self._fallback(result, pending[key])
                    continue
                cached = CachedCategory(
                    category=entry.category,
                    merchant=entry.merchant,
                    tags=entry.tags,
                    confidence=entry.confidence,
                )
                self.cache.put(key, cached)
                self._apply(result, pending[key], cached, SOURCE_REMOTE)

        if result.fallbacks:
            logger.warning(
                "Categorization degraded: %d transactions left uncategorized",
                result.fallbacks,
                extra={"budget_exhausted": result.budget_exhausted, "remote_calls": result.remote_calls},
            )
        return result

    async def _classify_remote(
        self,
        keys: List[str],
        pending: Dict[str, List[int]],
        transactions: List[Transaction],
        deadline: Optional[float],
    ) -> List[_BatchOutcome]:
        semaphore = asyncio.Semaphore(self.pool_size)
        chunks = [keys[i:i + self.batch_size] for i in range(0, len(keys), self.batch_size)]

        async def run(chunk: List[str]) -> _BatchOutcome:
            # One representative transaction per merchant key
            representatives = [transactions[pending[key][0]] for key in chunk]
            async with semaphore:
                return await self._run_batch(chunk, representatives, deadline)

        # Cancelling the caller cancels every outstanding batch
        return list(await asyncio.gather(*(run(chunk) for chunk in chunks)))

    async def _run_batch(
        self, keys: List[str], batch_txns: List[Transaction], deadline: Optional[float]
    ) -> _BatchOutcome:
        """
        Classify one batch with retries.

        Retry strategy:
        - Exponential backoff: backoff_base * 2^attempt between attempts
        - Retries on timeouts, remote failures and malformed responses
        - Stops early when the circuit is open or the deadline leaves no room
        """
        outcome = _BatchOutcome(keys=keys, batch=None)
        loop = asyncio.get_running_loop()
        attempt = 0

        while True:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                outcome.budget_exhausted = True
                return outcome

            if not self.circuit_breaker.allow_request():
                classifier_failure_counter.labels(reason=ClassifierErrorKind.CIRCUIT_OPEN.value).inc()
                outcome.batch = ClassificationBatch.failed(ClassifierErrorKind.CIRCUIT_OPEN, "Classifier circuit is open")
                return outcome

            timeout = self.batch_timeout if remaining is None else min(self.batch_timeout, remaining)
            outcome.calls += 1
            try:
                batch = await self._attempt(batch_txns, timeout)
            except asyncio.CancelledError:
                self.circuit_breaker.release_trial()
                raise

            if batch.ok:
                self.circuit_breaker.record_success()
                outcome.batch = batch
                return outcome

            self.circuit_breaker.record_failure()
            classifier_failure_counter.labels(reason=batch.error.kind.value).inc()
            outcome.batch = batch
            logger.warning(
                "Classifier batch failed (attempt %d): %s", attempt + 1, batch.error.message,
                extra={"reason": batch.error.kind.value, "batch_size": len(batch_txns)},
            )

            if attempt >= self.max_retries:
                return outcome

            backoff = self.backoff_base * (2 ** attempt)
            if deadline is not None and loop.time() + backoff >= deadline:
                outcome.budget_exhausted = True
                return outcome
            await self._sleep(backoff)
            attempt += 1

    async def _attempt(self, batch_txns: List[Transaction], timeout: float) -> ClassificationBatch:
        try:
            batch = await asyncio.wait_for(self.classifier.batch_classify(batch_txns, timeout), timeout)
        except asyncio.TimeoutError:
            return ClassificationBatch.failed(ClassifierErrorKind.TIMEOUT, f"No response within {timeout:.2f}s")
        except Exception as e:
            # The classifier contract is to return errors, but a broken one must not escape
            logger.exception("Classifier raised instead of returning an error")
            return ClassificationBatch.failed(ClassifierErrorKind.REMOTE_FAILURE, str(e))

        if batch.ok and len(batch.entries) != len(batch_txns):
            return ClassificationBatch.failed(
                ClassifierErrorKind.INVALID_RESPONSE,
                f"Expected {len(batch_txns)} classifications, got {len(batch.entries)}",
            )
        return batch

    @staticmethod
    def _apply(result: CategorizationResult, positions: List[int], cached: CachedCategory, source: str) -> None:
        for index in positions:
            result.transactions[index] = result.transactions[index].enrich(
                cached.category, merchant=cached.merchant, tags=cached.tags, source=source
            )

    @staticmethod
    def _fallback(result: CategorizationResult, positions: List[int]) -> None:
        for index in positions:
            result.transactions[index] = result.transactions[index].enrich(
                UNCATEGORIZED, tags=frozenset({UNAVAILABLE_TAG}), source=SOURCE_FALLBACK
            )
            result.fallbacks += 1


def _rule_text(txn: Transaction) -> str:
    if txn.merchant and txn.merchant not in txn.normalized_description:
        return f"{txn.normalized_description} {txn.merchant}"
    return txn.normalized_description
