"""Prometheus metrics for analysis outcomes, grades, parsing and classifier performance"""

from prometheus_client import Counter, Histogram

# Analysis metrics
analysis_counter = Counter(
    "veritas_analysis_total",
    "Total statement analyses run",
    ["outcome"],  # completed | partial | parse_failed | no_valid_transactions
)

grade_counter = Counter(
    "veritas_grade_total",
    "Veritas grades issued",
    ["grade"],
)

analysis_duration_histogram = Histogram(
    "veritas_analysis_duration_seconds",
    "End-to-end statement analysis time",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# Parser metrics
parse_warning_counter = Counter(
    "veritas_parse_warnings_total",
    "Statement lines skipped during parsing",
)

rejected_record_counter = Counter(
    "veritas_rejected_records_total",
    "Parsed records dropped during normalization",
)

# Classifier metrics
classifier_latency_histogram = Histogram(
    "classifier_latency_seconds",
    "Remote classifier batch response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

classifier_failure_counter = Counter(
    "classifier_failures_total",
    "Failed remote classifier batches",
    ["reason"],  # timeout | remote_failure | invalid_response | circuit_open
)

cache_events_counter = Counter(
    "categorization_cache_events_total",
    "Categorization cache lookups",
    ["result"],  # hit | miss | expired
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_analysis(outcome: str, grade: str | None = None, parse_warnings: int = 0, rejected: int = 0) -> None:
    """Record analysis metrics for monitoring outcome and grade distribution"""
    analysis_counter.labels(outcome=outcome).inc()
    if grade is not None:
        grade_counter.labels(grade=grade).inc()
    if parse_warnings:
        parse_warning_counter.inc(parse_warnings)
    if rejected:
        rejected_record_counter.inc(rejected)
