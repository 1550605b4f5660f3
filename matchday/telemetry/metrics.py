"""
Prometheus metrics for the polling engine and the data provider.

Design principles:
- Low cardinality (controlled labels)
- Best-effort (never block main flow)

Labels are restricted to bounded sets: endpoint ("matches", "teams/matches",
"teams", "competitions", "competitions/teams"), status_code, error_code,
priority ("high", "normal"), polling state, event name. Match ids and team
ids are NEVER labels; use logs for those.
"""

import logging

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

# =============================================================================
# PROVIDER METRICS
# =============================================================================

provider_requests_total = Counter(
    "matchday_provider_requests_total",
    "Total requests to football-data.org",
    ["endpoint", "status_code"],
)

provider_errors_total = Counter(
    "matchday_provider_errors_total",
    "Total failed requests to football-data.org",
    ["error_code"],
)

provider_latency_ms = Histogram(
    "matchday_provider_latency_ms",
    "Request latency in milliseconds",
    ["endpoint"],
    buckets=[10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

rate_limit_waits_total = Counter(
    "matchday_rate_limit_waits_total",
    "Times a caller was suspended by the client-side rate limiter",
    ["priority"],
)

# =============================================================================
# POLLING METRICS
# =============================================================================

poll_cycles_total = Counter(
    "matchday_poll_cycles_total",
    "Completed polling cycles by outcome",
    ["status"],  # ok, skipped, error
)

polling_state = Gauge(
    "matchday_polling_state",
    "Current polling state (1 for the active state, 0 otherwise)",
    ["state"],
)

events_published_total = Counter(
    "matchday_events_published_total",
    "Match events delivered to tracked teams",
    ["event"],
)

events_dropped_total = Counter(
    "matchday_events_dropped_total",
    "Coroutine-handler deliveries dropped on a full event queue",
    ["event"],
)

# =============================================================================
# HELPER FUNCTIONS (for instrumentation)
# =============================================================================


def record_provider_request(endpoint: str, status_code: int, latency_ms: float) -> None:
    """Record a provider request count and latency."""
    try:
        provider_requests_total.labels(endpoint=endpoint, status_code=str(status_code)).inc()
        provider_latency_ms.labels(endpoint=endpoint).observe(latency_ms)
    except Exception as e:
        logger.warning(f"Failed to record provider request metric: {e}")


def record_provider_error(error_code: str) -> None:
    try:
        provider_errors_total.labels(error_code=error_code).inc()
    except Exception as e:
        logger.warning(f"Failed to record provider error metric: {e}")


def record_rate_limit_wait(high_priority: bool) -> None:
    try:
        rate_limit_waits_total.labels(priority="high" if high_priority else "normal").inc()
    except Exception as e:
        logger.warning(f"Failed to record rate limit metric: {e}")


def record_poll_cycle(status: str) -> None:
    try:
        poll_cycles_total.labels(status=status).inc()
    except Exception as e:
        logger.warning(f"Failed to record poll cycle metric: {e}")


def set_polling_state(state: str, all_states: list[str]) -> None:
    """Flip the state gauge so exactly one state reads 1."""
    try:
        for s in all_states:
            polling_state.labels(state=s).set(1 if s == state else 0)
    except Exception as e:
        logger.warning(f"Failed to set polling state metric: {e}")


def record_event_published(event: str) -> None:
    try:
        events_published_total.labels(event=event).inc()
    except Exception as e:
        logger.warning(f"Failed to record event metric: {e}")


def record_event_dropped(event: str) -> None:
    try:
        events_dropped_total.labels(event=event).inc()
    except Exception as e:
        logger.warning(f"Failed to record dropped event metric: {e}")


def get_metrics_text() -> tuple[str, str]:
    """
    Generate Prometheus metrics text output.

    Returns:
        Tuple of (content, content_type)
    """
    return generate_latest(REGISTRY).decode("utf-8"), CONTENT_TYPE_LATEST
