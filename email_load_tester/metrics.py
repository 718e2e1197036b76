import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

from .models import RequestResult

logger = logging.getLogger("load-tester.metrics")

LATENCY_BUCKETS_MS = (10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000, 300000)


class LiveMetrics:
    """
    Prometheus counters updated while a run is in progress.

    Every instance owns its own registry so several runners (or test cases)
    can coexist in one process without duplicate-timeseries errors.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self.requests_total = Counter(
            'load_tester_requests_total', 'Requests completed by the load tester',
            ['endpoint', 'outcome'], registry=self.registry,
        )
        self.in_flight = Gauge(
            'load_tester_in_flight', 'Requests currently in flight', registry=self.registry,
        )
        self.latency_ms = Histogram(
            'load_tester_latency_ms', 'Request latency in milliseconds',
            ['endpoint'], buckets=LATENCY_BUCKETS_MS, registry=self.registry,
        )

    def request_started(self):
        self.in_flight.inc()

    def request_finished(self, result: RequestResult):
        self.in_flight.dec()
        outcome = 'success' if result.success else 'error'
        self.requests_total.labels(endpoint=result.endpoint_name, outcome=outcome).inc()
        self.latency_ms.labels(endpoint=result.endpoint_name).observe(result.latency_ms)

    def serve(self, port: int):
        start_http_server(port, registry=self.registry)
        logger.info(f"Client metrics exporter started on port {port}")
