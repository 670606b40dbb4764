"""FastAPI application factory"""

from typing import Optional

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from veritas_analyzer.api.dependencies import build_pipeline
from veritas_analyzer.api.middleware import MetricsMiddleware, RequestIDMiddleware
from veritas_analyzer.api.v1 import analysis
from veritas_analyzer.config import settings
from veritas_analyzer.infrastructure.observability.logging import setup_logging
from veritas_analyzer.pipeline import AnalysisPipeline

setup_logging(settings.log_level)


def create_app(pipeline: Optional[AnalysisPipeline] = None) -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Veritas Analyzer",
        description="Bank statement analysis producing the Veritas Score",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.pipeline = pipeline or build_pipeline()

    # Last added = first executed
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(analysis.router, prefix="/v1", tags=["statements"])

    return app


app = create_app()
