"""
LexFill - Prometheus Metrics
============================
Centralized metrics definitions for observability.
"""

from prometheus_client import Counter, Histogram, Info

# =============================================================================
# Application Info
# =============================================================================

app_info = Info("lexfill_app", "Application information")
app_info.info({
    "version": "0.1.0",
    "service": "backend",
})

# =============================================================================
# Request Metrics
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    labelnames=["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0)
)

# =============================================================================
# Parsing Metrics
# =============================================================================

parsing_attempts_total = Counter(
    "document_parsing_attempts_total",
    "Total document parsing attempts",
    labelnames=["file_type"]
)

parsing_failures_total = Counter(
    "document_parsing_failures_total",
    "Total document parsing failures",
    labelnames=["file_type", "stage"]
)

parsing_duration_seconds = Histogram(
    "document_parsing_duration_seconds",
    "Document parsing duration in seconds",
    labelnames=["file_type"],
    buckets=(1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)
)

placeholders_extracted_total = Counter(
    "placeholders_extracted_total",
    "Total placeholders extracted by the LLM"
)

documents_generated_total = Counter(
    "documents_generated_total",
    "Total filled documents generated",
    labelnames=["source_type"]
)

# =============================================================================
# LLM / Agent Metrics
# =============================================================================

llm_requests_total = Counter(
    "llm_requests_total",
    "Total LLM completion requests",
    labelnames=["kind"]
)

llm_failures_total = Counter(
    "llm_failures_total",
    "Total failed LLM completion requests",
    labelnames=["kind"]
)

llm_request_duration_seconds = Histogram(
    "llm_request_duration_seconds",
    "LLM completion latency in seconds",
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0)
)

agent_tool_calls_total = Counter(
    "agent_tool_calls_total",
    "Tool calls executed by the document agent",
    labelnames=["tool", "outcome"]
)

# =============================================================================
# Company Data Metrics
# =============================================================================

company_data_merges_total = Counter(
    "company_data_merges_total",
    "Company data populate operations"
)
