"""Analysis pipeline - parse, normalize, categorize, then score one statement"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from veritas_analyzer.config import settings
from veritas_analyzer.domain.categorization import CategorizationEngine
from veritas_analyzer.domain.errors import PipelineError, PipelineErrorKind, ValidationError
from veritas_analyzer.domain.income import IncomeStabilityAnalyzer
from veritas_analyzer.domain.models import AnalysisResult, ParseWarning, Statement
from veritas_analyzer.domain.normalizer import normalize_all
from veritas_analyzer.domain.parser import StatementParser
from veritas_analyzer.domain.scoring import ScoringConfig, analyze_transactions
from veritas_analyzer.infrastructure.observability.logging import log_analysis
from veritas_analyzer.infrastructure.observability.metrics import analysis_duration_histogram, record_analysis

logger = logging.getLogger(__name__)

STAGE_PARSE = "parse"
STAGE_NORMALIZE = "normalize"
STAGE_CATEGORIZE = "categorization"


class AnalysisSink(Protocol):
    def save(self, statement: Statement, result: AnalysisResult) -> None:
        ...


@dataclass
class AnalysisOutcome:
    """
    Result of one pipeline run.

    Exactly one of ``result`` and ``error`` is set. A run that ran out of
    time during categorization still carries a result, with
    ``budget_exhausted_stage`` naming the stage that was cut short.
    """

    result: Optional[AnalysisResult] = None
    statement: Optional[Statement] = None
    error: Optional[PipelineError] = None
    warnings: List[ParseWarning] = field(default_factory=list)
    rejected: List[ValidationError] = field(default_factory=list)
    budget_exhausted_stage: Optional[str] = None
    cache_hits: int = 0
    remote_calls: int = 0
    fallbacks: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def outcome_label(self) -> str:
        if self.error is not None:
            return self.error.kind.value
        return "partial" if self.budget_exhausted_stage else "completed"


class AnalysisPipeline:
    """
    Runs one statement through every stage.

    Parse failures abort the run; everything after parsing degrades
    instead of failing. The whole run shares one deadline, and cancelling
    the calling task cancels any outstanding classifier batches.
    """

    def __init__(
        self,
        engine: CategorizationEngine,
        parser: Optional[StatementParser] = None,
        analyzer: Optional[IncomeStabilityAnalyzer] = None,
        scoring_config: Optional[ScoringConfig] = None,
        sink: Optional[AnalysisSink] = None,
        timeout: Optional[float] = None,
    ):
        self.engine = engine
        self.parser = parser or StatementParser()
        self.analyzer = analyzer or IncomeStabilityAnalyzer()
        self.scoring_config = scoring_config or ScoringConfig()
        self.sink = sink
        self.timeout = timeout if timeout is not None else settings.analysis_timeout_seconds

    async def analyze(self, content: bytes, declared_format: str, bank_hint: Optional[str] = None) -> AnalysisOutcome:
        start_time = time.perf_counter()
        deadline = asyncio.get_running_loop().time() + self.timeout

        with analysis_duration_histogram.time():
            outcome = await self._run(content, declared_format, bank_hint, deadline)

        duration_ms = (time.perf_counter() - start_time) * 1000
        grade = outcome.result.grade.value if outcome.result else None
        record_analysis(outcome.outcome_label, grade, len(outcome.warnings), len(outcome.rejected))
        log_analysis(
            statement_id=outcome.statement.statement_id if outcome.statement else "",
            outcome=outcome.outcome_label,
            duration_ms=duration_ms,
            veritas_score=outcome.result.veritas_score if outcome.result else None,
            grade=grade,
            transaction_count=len(outcome.result.transactions) if outcome.result else 0,
            warning_count=len(outcome.warnings),
            budget_exhausted_stage=outcome.budget_exhausted_stage,
        )
        return outcome

    async def _run(
        self, content: bytes, declared_format: str, bank_hint: Optional[str], deadline: float
    ) -> AnalysisOutcome:
        parsed = self.parser.parse(content, declared_format, bank_hint)
        if not parsed.success:
            return AnalysisOutcome(
                warnings=parsed.warnings,
                error=PipelineError(
                    kind=PipelineErrorKind.PARSE_FAILED,
                    stage=STAGE_PARSE,
                    message=parsed.error.message,
                    parse_error=parsed.error,
                    warnings=[_describe(w) for w in parsed.warnings],
                ),
            )

        normalized = normalize_all(parsed.transactions)
        if not normalized.transactions:
            return AnalysisOutcome(
                warnings=parsed.warnings,
                rejected=normalized.rejected,
                error=PipelineError(
                    kind=PipelineErrorKind.NO_VALID_TRANSACTIONS,
                    stage=STAGE_NORMALIZE,
                    message=f"All {len(normalized.rejected)} parsed records were invalid",
                    warnings=[_describe(w) for w in parsed.warnings]
                    + [f"line {r.line_number}: {r.reason}" for r in normalized.rejected],
                ),
            )

        categorized = await self.engine.categorize(normalized.transactions, deadline=deadline)

        transactions = categorized.transactions
        period = (
            parsed.metadata.period_start or transactions[0].date,
            parsed.metadata.period_end or transactions[-1].date,
        )
        result = analyze_transactions(transactions, self.analyzer, self.scoring_config, period)
        statement = Statement(transactions=result.transactions, metadata=parsed.metadata)

        if self.sink is not None:
            self.sink.save(statement, result)

        return AnalysisOutcome(
            result=result,
            statement=statement,
            warnings=parsed.warnings,
            rejected=normalized.rejected,
            budget_exhausted_stage=STAGE_CATEGORIZE if categorized.budget_exhausted else None,
            cache_hits=categorized.cache_hits,
            remote_calls=categorized.remote_calls,
            fallbacks=categorized.fallbacks,
        )


def _describe(warning: ParseWarning) -> str:
    return f"line {warning.line_number}: {warning.reason}"
