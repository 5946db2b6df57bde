"""Custom Prometheus metrics for mail inference orchestration.

Alert rules worth configuring:
- engine_fallbacks_total (a rising rate means the primary strategy keeps failing)
- smart_reply_timeouts_total (model too slow for the reply deadline)
- spam_decisions_total{mode="rules_only"} (model signal missing)
"""

from prometheus_client import Counter, Histogram, start_http_server
import structlog

logger = structlog.get_logger(__name__)

# === Request Metrics ===

inference_requests_total = Counter(
    "inference_requests_total",
    "Total inference requests by operation and outcome",
    ["operation", "outcome"],
)
"""
Inference request counter.

Labels:
- operation: categorize, summarize, smart_reply, embed
- outcome: success, unavailable, default (degraded to default value), error;
  embed requests use the strategy that produced the vector (native, hash)
"""

engine_fallbacks_total = Counter(
    "engine_fallbacks_total",
    "Fallbacks from one strategy to the next",
    ["operation", "strategy"],
)
"""
Strategy fallback counter.

Labels:
- operation: categorize, embed
- strategy: the strategy that failed and was skipped (classify, generate, native)
"""

smart_reply_timeouts_total = Counter(
    "smart_reply_timeouts_total",
    "Smart reply generations that lost the race against the deadline",
)

# === Spam Metrics ===

spam_decisions_total = Counter(
    "spam_decisions_total",
    "Ensemble spam decisions by scoring mode and verdict",
    ["mode", "verdict"],
)
"""
Spam decision counter.

Labels:
- mode: ensemble (model + rules), rules_only (model unavailable)
- verdict: spam, legitimate
"""

# === Batch Metrics ===

batch_items_processed_total = Counter(
    "batch_items_processed_total",
    "Items processed by the background scheduler",
    ["stage"],
)
"""
Batch progress counter.

Labels:
- stage: categorize, spam
"""

# === Engine Performance ===

engine_latency_seconds = Histogram(
    "engine_latency_seconds",
    "Engine call latency in seconds",
    ["engine", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)
"""
Engine latency histogram.

Labels:
- engine: ollama, classifier
- operation: classify, generate
"""


def start_metrics_server(port: int) -> None:
    """Expose the default registry over HTTP on ``port``."""
    start_http_server(port)
    logger.info("Prometheus exporter started", port=port)
