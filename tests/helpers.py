"""Test doubles shared across the load tester test modules."""

from __future__ import annotations

import threading
import time

from email_load_tester.models import RequestResult


class RecordingExecutor:
    """
    Executor stand-in that sleeps instead of calling the network and tracks
    how many calls overlap, so tests can assert on the concurrency cap.
    """

    def __init__(self, latency_seconds: float = 0.01, success: bool = True, raise_on: set | None = None):
        self.latency_seconds = latency_seconds
        self.success = success
        self.raise_on = raise_on or set()
        self.base_url = "http://fake.test"
        self.calls: list[tuple[str, int]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def execute(self, endpoint_name: str, sequence_number: int) -> RequestResult:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            self.calls.append((endpoint_name, sequence_number))
        try:
            if sequence_number in self.raise_on:
                raise RuntimeError(f"executor exploded on #{sequence_number}")
            time.sleep(self.latency_seconds)
        finally:
            with self._lock:
                self.in_flight -= 1
        return RequestResult(
            endpoint_name=endpoint_name,
            sequence_number=sequence_number,
            status_code=200 if self.success else 0,
            latency_ms=self.latency_seconds * 1000,
            success=self.success,
            error_message=None if self.success else "connection refused",
            response_size_bytes=100 if self.success else 0,
        )


def make_result(latency_ms: float, success: bool = True, endpoint: str = "batch", sequence: int = 1,
                size: int = 0, metric: float | None = None) -> RequestResult:
    return RequestResult(
        endpoint_name=endpoint,
        sequence_number=sequence,
        status_code=200 if success else 500,
        latency_ms=latency_ms,
        success=success,
        error_message=None if success else "HTTP 500",
        response_size_bytes=size,
        extracted_metric=metric,
    )
