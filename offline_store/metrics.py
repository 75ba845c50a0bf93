"""
Prometheus metrics for the offline store.
Uses official prometheus_client for thread-safe collection.
"""

import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram

NAMESPACE = "featureform_offline"

OPERATION_LATENCY = Histogram(
    f"{NAMESPACE}_operation_seconds",
    "Latency of offline store operations",
    ["operation", "status"],  # status: success, error
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0],
)

RECORDS_WRITTEN = Counter(
    f"{NAMESPACE}_records_written_total",
    "Resource records upserted",
    ["resource_type"],  # feature, label
)

ROWS_STREAMED = Counter(
    f"{NAMESPACE}_rows_streamed_total",
    "Rows returned by row iterators",
    ["iterator"],  # feature, training_set
)


@contextmanager
def track_operation(operation: str):
    """Observe the duration of a block, labelled by whether it raised."""
    start = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        OPERATION_LATENCY.labels(operation=operation, status=status).observe(
            time.perf_counter() - start
        )
