"""Prometheus metrics"""
import time

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

# Create registry
registry = CollectorRegistry()

# Dial metrics
dials_total = Counter(
    'cachepool_dials_total',
    'Total pool dials',
    ['pool', 'outcome'],
    registry=registry
)

# Pool metrics
pool_connections = Gauge(
    'cachepool_connections',
    'Number of pooled connections',
    ['pool', 'state'],
    registry=registry
)

borrow_duration = Histogram(
    'cachepool_borrow_duration_seconds',
    'Time spent waiting for a pooled connection',
    ['pool'],
    registry=registry
)

borrow_errors_total = Counter(
    'cachepool_borrow_errors_total',
    'Total failed borrows',
    ['pool', 'reason'],
    registry=registry
)


# Helper class for timing
class Timer:
    def __init__(self):
        self.start_time = None
        self.duration = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.duration = time.perf_counter() - self.start_time


def get_metrics():
    """Get Prometheus metrics"""
    return generate_latest(registry)
