"""
Custody instrumentation for the bridge core.

Provides Prometheus metrics that track deposits, executions, rejected calls
and per-asset custody totals, with helper functions that are safe to call
from the value-movement path.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

from bridgecore.core import config

deposit_counter = Counter(
    "bridge_deposits_total", "Deposits accepted by the handler", ["kind"]
)

execution_counter = Counter(
    "bridge_executions_total", "Transfer executions accepted by the handler", ["kind"]
)

rejected_call_counter = Counter(
    "bridge_rejected_calls_total",
    "Handler calls rejected before or during value movement",
    ["operation", "error"],
)

custody_balance_gauge = Gauge(
    "bridge_custody_balance", "Locked balance held in custody per asset", ["asset"]
)

burned_total_gauge = Gauge(
    "bridge_burned_total", "Cumulative amount burned per asset", ["asset"]
)


def record_deposit(kind: str) -> None:
    if not config.METRICS_ENABLED:
        return
    deposit_counter.labels(kind=kind).inc()


def record_execution(kind: str) -> None:
    if not config.METRICS_ENABLED:
        return
    execution_counter.labels(kind=kind).inc()


def record_rejection(operation: str, exc: Exception) -> None:
    """Count a rejected call under the exception's class name."""
    if not config.METRICS_ENABLED:
        return
    rejected_call_counter.labels(operation=operation, error=type(exc).__name__).inc()


def update_custody_totals(asset: str, balance: int, burned: int) -> None:
    """Refresh the per-asset custody gauges from the ledger."""
    if not config.METRICS_ENABLED or not asset:
        return
    custody_balance_gauge.labels(asset=asset).set(balance)
    burned_total_gauge.labels(asset=asset).set(burned)
