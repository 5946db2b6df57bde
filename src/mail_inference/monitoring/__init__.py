"""Monitoring and metrics instrumentation for mail inference.

Exports custom Prometheus metrics for operational monitoring and alerting.
"""

from mail_inference.monitoring.metrics import (
    batch_items_processed_total,
    engine_fallbacks_total,
    engine_latency_seconds,
    inference_requests_total,
    smart_reply_timeouts_total,
    spam_decisions_total,
    start_metrics_server,
)

__all__ = [
    "inference_requests_total",
    "engine_fallbacks_total",
    "smart_reply_timeouts_total",
    "spam_decisions_total",
    "batch_items_processed_total",
    "engine_latency_seconds",
    "start_metrics_server",
]
