"""Statement analysis endpoints"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from veritas_analyzer.api.dependencies import get_pipeline, get_request_id
from veritas_analyzer.api.v1.schemas import AnalysisResultSchema, AnalyzeResponse, ErrorDetail, StatementResponse
from veritas_analyzer.domain.exceptions import ScoringError
from veritas_analyzer.infrastructure.database.repositories import AnalysisRepository
from veritas_analyzer.infrastructure.database.session import get_db
from veritas_analyzer.pipeline import AnalysisPipeline

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/statements/analyze", response_model=AnalyzeResponse)
async def analyze_statement(
    request: Request,
    declared_format: str = Query(..., alias="format", description="Document format: pdf or csv"),
    bank_hint: str | None = Query(None, description="Issuing bank, when known"),
    db: Session = Depends(get_db),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
):
    """
    Analyze a bank statement sent as the raw request body.

    Flow:
    1. Parse and normalize the document
    2. Categorize transactions (remote classifier failures degrade, never fail)
    3. Score risk and income stability
    4. Persist statement + analysis
    """
    request_id = get_request_id(request)
    content = await request.body()

    try:
        outcome = await pipeline.analyze(content, declared_format, bank_hint)
    except ScoringError as e:
        logger.error(f"Scoring invariant violated: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    if not outcome.ok:
        logger.warning(
            f"Statement rejected: {outcome.error.message}",
            extra={"request_id": request_id, "stage": outcome.error.stage},
        )
        raise HTTPException(
            status_code=422,
            detail=ErrorDetail.from_domain(outcome.error).model_dump(by_alias=True),
        )

    try:
        AnalysisRepository(db).save(outcome.statement, outcome.result)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to persist analysis: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return AnalyzeResponse(
        statement_id=outcome.statement.statement_id,
        analysis=AnalysisResultSchema.from_domain(outcome.result),
        warnings=[f"line {w.line_number}: {w.reason}" for w in outcome.warnings]
        + [f"line {r.line_number}: {r.reason}" for r in outcome.rejected],
        budget_exhausted_stage=outcome.budget_exhausted_stage,
    )


@router.get("/statements/{statement_id}", response_model=StatementResponse)
def get_statement(statement_id: str, db: Session = Depends(get_db)):
    """Retrieve a parsed statement with its categorized transactions"""
    statement = AnalysisRepository(db).load_statement(statement_id)
    if statement is None:
        raise HTTPException(status_code=404, detail="Statement not found")
    return StatementResponse.from_domain(statement)


@router.get("/statements/{statement_id}/analysis", response_model=AnalysisResultSchema)
def get_statement_analysis(statement_id: str, db: Session = Depends(get_db)):
    """Retrieve the most recent analysis of a statement"""
    loaded = AnalysisRepository(db).load_analysis(statement_id)
    if loaded is None:
        raise HTTPException(status_code=404, detail="Analysis not found")
    _, result = loaded
    return AnalysisResultSchema.from_domain(result)
