"""Integration tests for API endpoints"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from veritas_analyzer.api.main import create_app
from veritas_analyzer.domain.exceptions import ScoringError
from veritas_analyzer.infrastructure.database.session import get_db
from veritas_analyzer.pipeline import AnalysisPipeline

CSV_STATEMENT = (
    b"Date,Description,Amount,Balance\n"
    b"01/05/2024,PAYROLL DIRECT DEPOSIT ACME,2500.00,3500.00\n"
    b"01/07/2024,ZZQ HOLDINGS LLC,-42.00,3458.00\n"
    b"PENDING,HOLD ON FUNDS,1.00,\n"
    b"01/19/2024,PAYROLL DIRECT DEPOSIT ACME,2500.00,5916.00\n"
    b"01/25/2024,NSF FEE,-35.00,5881.00\n"
    b"02/02/2024,PAYROLL DIRECT DEPOSIT ACME,2500.00,8381.00\n"
)


def _analyze(client: TestClient, content: bytes = CSV_STATEMENT, fmt: str = "csv", **params):
    return client.post(
        "/v1/statements/analyze",
        params={"format": fmt, **params},
        content=content,
        headers={"Content-Type": "application/octet-stream"},
    )


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    _analyze(client)
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "veritas_analysis_total" in response.text


def test_analyze_endpoint_returns_camel_case_analysis(client: TestClient):
    """Test POST /v1/statements/analyze with a CSV statement"""
    response = _analyze(client, bank_hint="Chase")

    assert response.status_code == 200
    data = response.json()
    assert data["statementId"]
    analysis = data["analysis"]
    assert 0 <= analysis["veritasScore"] <= 100
    assert analysis["grade"] in {"A", "B", "C", "D", "F"}
    assert analysis["nsfCount"] == 1
    assert analysis["nsfTotal"] == 35.0
    assert analysis["totalDeposits"] == 7500.0
    assert analysis["totalWithdrawals"] == 77.0
    assert analysis["incomeStability"]["score"] >= 80
    assert analysis["incomeStability"]["regularClusters"][0]["count"] == 3
    assert analysis["incomeStability"]["level"] == "VERY_STABLE"
    assert analysis["incomeStability"]["recommendations"]
    assert analysis["businessActivity"]["transactionCount"] == 0
    assert [f["name"] for f in analysis["riskFactors"]][:2] == ["nsf_events", "overdraft_events"]
    assert analysis["methodologyVersion"]
    assert data["budgetExhaustedStage"] is None
    assert data["warnings"] == ["line 4: row has no valid date and amount"]


def test_request_id_is_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"


def test_get_statement_round_trip(client: TestClient):
    """Test GET /v1/statements/{id} after an analysis"""
    statement_id = _analyze(client, bank_hint="Chase").json()["statementId"]

    response = client.get(f"/v1/statements/{statement_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["statementId"] == statement_id
    assert data["bankName"] == "Chase"
    assert data["periodStart"] == "2024-01-05"
    assert data["periodEnd"] == "2024-02-02"
    assert len(data["transactions"]) == 5
    payroll = data["transactions"][0]
    assert payroll["category"] == "income"
    assert payroll["isRecurring"] is True
    assert payroll["amount"] == 2500.0
    assert payroll["rawDescription"] == "PAYROLL DIRECT DEPOSIT ACME"
    assert payroll["normalizedDescription"] == "PAYROLL DIRECT DEPOSIT ACME"
    assert "description" not in payroll


def test_get_analysis_round_trip(client: TestClient):
    """Test GET /v1/statements/{id}/analysis returns what POST returned"""
    posted = _analyze(client).json()

    response = client.get(f"/v1/statements/{posted['statementId']}/analysis")

    assert response.status_code == 200
    stored = response.json()
    assert stored["veritasScore"] == posted["analysis"]["veritasScore"]
    assert stored["grade"] == posted["analysis"]["grade"]
    assert stored["riskFactors"] == posted["analysis"]["riskFactors"]
    assert stored["incomeStability"] == posted["analysis"]["incomeStability"]
    assert stored["transactions"] == posted["analysis"]["transactions"]


def test_unsupported_format_is_unprocessable(client: TestClient):
    response = _analyze(client, content=b"PK\x03\x04", fmt="xlsx")

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["kind"] == "unsupported_format"
    assert detail["stage"] == "parse"


def test_statement_without_transactions_is_unprocessable(client: TestClient):
    response = _analyze(client, content=b"Date,Description,Amount\nnot a date,JUNK,x\n")

    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "no_transactions_found"
    assert response.json()["detail"]["warnings"] == ["line 2: row has no valid date and amount"]


def test_missing_format_parameter(client: TestClient):
    response = client.post("/v1/statements/analyze", content=CSV_STATEMENT)

    assert response.status_code == 422


@pytest.mark.parametrize("path", ["/v1/statements/{id}", "/v1/statements/{id}/analysis"])
def test_unknown_statement_not_found(client: TestClient, path: str):
    fake_uuid = "00000000-0000-0000-0000-000000000000"
    response = client.get(path.format(id=fake_uuid))
    assert response.status_code == 404


def test_classifier_timeout_degrades_gracefully(db, classifier_factory, engine_factory):
    """A classifier that never answers in time still yields a 200 with uncategorized transactions"""
    slow = classifier_factory(delay=1.0)
    app = create_app(
        pipeline=AnalysisPipeline(engine=engine_factory(slow, batch_timeout=0.05, max_retries=0), timeout=5.0)
    )
    app.dependency_overrides[get_db] = lambda: db

    response = _analyze(TestClient(app))

    assert response.status_code == 200
    transactions = response.json()["analysis"]["transactions"]
    zzq = next(t for t in transactions if t["normalizedDescription"] == "ZZQ HOLDINGS LLC")
    assert zzq["category"] == "uncategorized"
    assert "classification:unavailable" in zzq["tags"]


@patch("veritas_analyzer.api.v1.analysis.AnalysisRepository.save", side_effect=RuntimeError("database unavailable"))
def test_persistence_failure_returns_500(mock_save: MagicMock, client: TestClient):
    response = _analyze(client)

    assert response.status_code == 500
    assert mock_save.called


def test_scoring_defect_returns_500(client: TestClient, pipeline: AnalysisPipeline):
    with patch.object(pipeline, "analyze", AsyncMock(side_effect=ScoringError("totals mismatch"))):
        response = _analyze(client)

    assert response.status_code == 500
    assert response.json()["detail"] == "Internal server error"
