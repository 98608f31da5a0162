"""
Метрики Prometheus для хранилища и операций обслуживания
"""

from prometheus_client import Counter, Histogram

STORAGE_WRITE_TIME = Histogram(
    "loomcare_storage_write_seconds",
    "Time spent writing the maintenance document to disk",
)

STORAGE_ERRORS = Counter(
    "loomcare_storage_errors_total",
    "Storage failures by kind",
    ["kind"],
)

MAINTENANCE_COMPLETIONS = Counter(
    "loomcare_maintenance_completions_total",
    "Maintenance completion attempts by outcome",
    ["outcome"],
)

LOW_STOCK_ALERTS = Counter(
    "loomcare_low_stock_alerts_total",
    "Low stock notifications emitted",
)


def record_storage_write_time(seconds: float):
    STORAGE_WRITE_TIME.observe(seconds)


def increment_storage_error(kind: str):
    STORAGE_ERRORS.labels(kind=kind).inc()


def increment_maintenance_counter(outcome: str):
    MAINTENANCE_COMPLETIONS.labels(outcome=outcome).inc()


def increment_low_stock_alerts(count: int = 1):
    LOW_STOCK_ALERTS.inc(count)
