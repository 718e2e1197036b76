import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime
from typing import List, Optional, Tuple

from .aggregator import summarize
from .endpoints import WORKLOADS, endpoint_for_request
from .metrics import LiveMetrics
from .models import LoadTestReport, RequestResult

logger = logging.getLogger("load-tester.runner")


class InvalidRunConfiguration(ValueError):
    """Raised before any request is dispatched when run parameters are unusable."""


class ServiceNotReady(RuntimeError):
    def __init__(self, result: RequestResult):
        self.result = result
        reason = result.error_message or f"HTTP {result.status_code}"
        super().__init__(f"Service not ready: {reason}")


class ResultCollector:
    """Append-only result store shared by the worker threads of one run."""

    def __init__(self):
        self._results: List[RequestResult] = []
        self._lock = threading.Lock()

    def append(self, result: RequestResult):
        with self._lock:
            self._results.append(result)

    def __len__(self):
        with self._lock:
            return len(self._results)

    def snapshot(self) -> Tuple[RequestResult, ...]:
        with self._lock:
            return tuple(self._results)


def _require_int(name: str, value, minimum: int):
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRunConfiguration(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise InvalidRunConfiguration(f"{name} must be >= {minimum}, got {value}")


def validate_run(total_requests, concurrency_limit, inter_request_delay_ms, endpoint):
    _require_int("total_requests", total_requests, 0)
    _require_int("concurrency_limit", concurrency_limit, 1)
    _require_int("inter_request_delay_ms", inter_request_delay_ms, 0)
    if endpoint not in WORKLOADS:
        raise InvalidRunConfiguration(
            f"unknown endpoint {endpoint!r}; expected one of {', '.join(WORKLOADS)}"
        )


class LoadTestRunner:
    """
    Bounded-concurrency dispatcher.

    Up to ``concurrency_limit`` requests are in flight at once. Admission
    blocks on a semaphore that is released when a request completes, so a new
    request is issued as soon as a slot frees up. Every admitted request
    yields exactly one RequestResult; the report is computed once all of
    them have finished.
    """

    def __init__(self, executor, metrics: Optional[LiveMetrics] = None, verbose: bool = False):
        self.executor = executor
        self.metrics = metrics
        self.verbose = verbose

    def run(self, total_requests: int, concurrency_limit: int, inter_request_delay_ms: int = 0,
            endpoint: str = "batch", stop_event: Optional[threading.Event] = None) -> LoadTestReport:
        validate_run(total_requests, concurrency_limit, inter_request_delay_ms, endpoint)

        logger.info("=" * 80)
        logger.info("EMAIL ANALYSIS SERVICE - LOAD TEST")
        logger.info("=" * 80)
        logger.info(f"Base URL: {getattr(self.executor, 'base_url', 'n/a')}")
        logger.info(f"Endpoint: {endpoint}")
        logger.info(f"Concurrent Requests: {concurrency_limit}")
        logger.info(f"Total Requests: {total_requests}")
        logger.info(f"Delay Between Requests: {inter_request_delay_ms}ms")
        logger.info(f"Start Time: {datetime.now().isoformat()}")

        if total_requests == 0:
            logger.info("No requests requested; returning empty report")
            return summarize((), 0.0)

        collector = ResultCollector()
        effective_concurrency = min(concurrency_limit, total_requests)
        slots = threading.BoundedSemaphore(effective_concurrency)
        delay_seconds = inter_request_delay_ms / 1000.0
        futures = []

        start_time = time.perf_counter()
        with ThreadPoolExecutor(max_workers=effective_concurrency,
                                thread_name_prefix="load-tester") as pool:
            for sequence_number in range(1, total_requests + 1):
                slots.acquire()
                if stop_event is not None and stop_event.is_set():
                    slots.release()
                    logger.info(f"Stop requested; admitted {sequence_number - 1}/{total_requests} requests")
                    break

                endpoint_name = endpoint_for_request(endpoint, sequence_number)
                future = pool.submit(self._run_single, endpoint_name, sequence_number,
                                     delay_seconds, collector)
                future.add_done_callback(lambda _: slots.release())
                futures.append(future)

                if self.verbose and sequence_number % 10 == 0:
                    logger.info(f"[{sequence_number:04d}] Requests queued...")

            wait(futures)
        elapsed = time.perf_counter() - start_time

        report = summarize(collector.snapshot(), elapsed)
        logger.info(
            f"Run finished in {elapsed:.2f}s: {report.total_requests} requests, "
            f"{report.success_rate:.2f}% success, {report.avg_latency_ms:.2f}ms avg"
        )
        return report

    def _run_single(self, endpoint_name: str, sequence_number: int, delay_seconds: float,
                    collector: ResultCollector) -> RequestResult:
        if delay_seconds > 0 and sequence_number > 1:
            time.sleep(delay_seconds)

        if self.metrics is not None:
            self.metrics.request_started()
        try:
            result = self.executor.execute(endpoint_name, sequence_number)
        except Exception as e:
            # one result per admitted request, even if an executor breaks its contract
            logger.error(f"[{endpoint_name} #{sequence_number}] executor raised: {e}")
            result = RequestResult(
                endpoint_name=endpoint_name,
                sequence_number=sequence_number,
                status_code=0,
                latency_ms=0.0,
                success=False,
                error_message=str(e) or type(e).__name__,
                timestamp=datetime.now().isoformat(),
            )
        collector.append(result)
        if self.metrics is not None:
            self.metrics.request_finished(result)
        return result

    def check_health(self) -> RequestResult:
        return self.executor.execute("health", 1)

    def ensure_service_ready(self) -> RequestResult:
        """Single health probe before a run; raises ServiceNotReady when it fails."""
        result = self.check_health()
        if not result.success:
            raise ServiceNotReady(result)
        logger.info(f"Service health check passed ({result.latency_ms:.0f}ms)")
        return result
