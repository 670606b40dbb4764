"""Dependency injection for FastAPI endpoints"""

from fastapi import Request

from veritas_analyzer.domain.categorization import CategorizationEngine
from veritas_analyzer.infrastructure.clients.classifier import HttpClassifierClient
from veritas_analyzer.pipeline import AnalysisPipeline


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def build_pipeline() -> AnalysisPipeline:
    """Pipeline wired to the remote classifier; one per app so the cache is shared across requests"""
    return AnalysisPipeline(engine=CategorizationEngine(classifier=HttpClassifierClient()))


def get_pipeline(request: Request) -> AnalysisPipeline:
    """Provide the application's analysis pipeline"""
    return request.app.state.pipeline
