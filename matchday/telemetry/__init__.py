"""
Telemetry Module

Provides Prometheus metrics for:
- Provider requests (count, errors, latency, rate-limit waits)
- Polling engine (cycles, current state, published and dropped events)
"""

from matchday.telemetry.metrics import (
    get_metrics_text,
    record_event_dropped,
    record_event_published,
    record_poll_cycle,
    record_provider_error,
    record_provider_request,
    record_rate_limit_wait,
    set_polling_state,
)

__all__ = [
    "get_metrics_text",
    "record_event_dropped",
    "record_event_published",
    "record_poll_cycle",
    "record_provider_error",
    "record_provider_request",
    "record_rate_limit_wait",
    "set_polling_state",
]
