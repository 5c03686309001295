"""
Prometheus metrics primitives and helpers.
"""
from __future__ import annotations

import time
from contextlib import contextmanager

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

from snippet_feed.observability import emit_event

feed_loads_total = Counter(
    "feed_loads_total",
    "Feed assemblies by outcome",
    ["status"],
)
auxiliary_fetch_failures_total = Counter(
    "auxiliary_fetch_failures_total",
    "Non-fatal derived data failures during feed or detail loads",
    ["kind"],
)
like_toggles_total = Counter(
    "like_toggles_total",
    "Like toggles by action and outcome",
    ["action", "status"],
)
comment_mutations_total = Counter(
    "comment_mutations_total",
    "Comment adds/removes by outcome",
    ["action", "status"],
)
stale_results_discarded_total = Counter(
    "stale_results_discarded_total",
    "Feed refresh results dropped because a newer refresh or identity superseded them",
)
operation_latency_seconds = Histogram(
    "operation_latency_seconds",
    "Operation latency in seconds",
    ["operation"],
)


@contextmanager
def track_performance(operation: str):
    start = time.time()
    try:
        yield
    finally:
        try:
            operation_latency_seconds.labels(operation=operation).observe(time.time() - start)
        except Exception:
            # avoid breaking app on label mistakes
            pass


def metrics_endpoint_bytes() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST


def record_feed_load(status: str, *, records: int = 0, degraded: int = 0) -> None:
    feed_loads_total.labels(status=status).inc()
    if status == "ok":
        emit_event("business_metric", metric="feed_load", records=int(records), degraded=int(degraded))


def record_auxiliary_failure(kind: str) -> None:
    auxiliary_fetch_failures_total.labels(kind=kind).inc()


def record_like_toggle(action: str, status: str) -> None:
    like_toggles_total.labels(action=action, status=status).inc()


def record_comment_mutation(action: str, status: str) -> None:
    comment_mutations_total.labels(action=action, status=status).inc()


def record_stale_discard() -> None:
    stale_results_discarded_total.inc()
