# routes_metrics.py

"""Prometheus metrics and /metrics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest

reconcile_total = Counter(
    "reconcile_total", "Full-state replacements processed", ["result"]
)
reconcile_total.labels(result="ok").inc(0)

store_errors_total = Counter(
    "store_errors_total", "Failed or timed out store calls", ["op"]
)

aux_store_failures_total = Counter(
    "aux_store_failures_total",
    "Wallet writes that failed while the item reconciliation succeeded",
)
aux_store_failures_total.inc(0)

catalog_reloads_total = Counter(
    "catalog_reloads_total", "Full reloads from the store", ["result"]
)
catalog_reloads_total.labels(result="ok").inc(0)

ws_messages_total = Counter(
    "ws_messages_total", "Envelopes delivered to subscribers", ["type"]
)
ws_subscribers = Gauge("ws_subscribers", "Currently subscribed connections")
ws_pruned_total = Counter(
    "ws_pruned_total", "Subscribers dropped after a failed or timed out send"
)
ws_pruned_total.inc(0)

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics in text format."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
