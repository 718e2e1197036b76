"""
Tests for the bounded-concurrency dispatcher.

Unit tests use RecordingExecutor to observe overlap and ordering without the
network; the integration tests drive the real executor against the mock
service to check end-to-end success rates and wall-clock behaviour.
"""

from __future__ import annotations

import threading
import time

import pytest

from email_load_tester.executor import RequestExecutor
from email_load_tester.metrics import LiveMetrics
from email_load_tester.runner import (
    InvalidRunConfiguration,
    LoadTestRunner,
    ResultCollector,
    ServiceNotReady,
)
from helpers import RecordingExecutor, make_result


@pytest.mark.parametrize("total, limit", [(0, 1), (1, 1), (7, 3), (20, 5), (3, 10)])
def test_report_total_matches_requested(total, limit):
    executor = RecordingExecutor(latency_seconds=0.005)

    report = LoadTestRunner(executor).run(total, limit)

    assert report.total_requests == total
    assert report.successful_requests + report.failed_requests == total
    assert len(executor.calls) == total


def test_in_flight_never_exceeds_limit():
    executor = RecordingExecutor(latency_seconds=0.02)

    LoadTestRunner(executor).run(total_requests=40, concurrency_limit=4)

    assert executor.max_in_flight <= 4
    # with 40 slow requests the cap is actually reached
    assert executor.max_in_flight == 4


def test_sequence_numbers_cover_one_to_n():
    executor = RecordingExecutor(latency_seconds=0.001)

    report = LoadTestRunner(executor).run(total_requests=25, concurrency_limit=5)

    assert sorted(r.sequence_number for r in report.results) == list(range(1, 26))


def test_zero_requests_issue_nothing():
    executor = RecordingExecutor()

    report = LoadTestRunner(executor).run(total_requests=0, concurrency_limit=3)

    assert executor.calls == []
    assert report.success_rate == 0
    assert report.results == ()


@pytest.mark.parametrize("kwargs", [
    {"total_requests": 5, "concurrency_limit": 0},
    {"total_requests": -1, "concurrency_limit": 1},
    {"total_requests": 5, "concurrency_limit": 1, "inter_request_delay_ms": -5},
    {"total_requests": 5, "concurrency_limit": 1.5},
    {"total_requests": True, "concurrency_limit": 1},
    {"total_requests": 5, "concurrency_limit": 1, "endpoint": "unknown"},
])
def test_invalid_configuration_fails_before_dispatch(kwargs):
    executor = RecordingExecutor()

    with pytest.raises(InvalidRunConfiguration):
        LoadTestRunner(executor).run(**kwargs)

    assert executor.calls == []


def test_executor_exception_still_produces_a_result():
    executor = RecordingExecutor(latency_seconds=0.001, raise_on={2})

    report = LoadTestRunner(executor).run(total_requests=3, concurrency_limit=2)

    assert report.total_requests == 3
    assert report.failed_requests == 1
    failed = [r for r in report.results if not r.success][0]
    assert failed.sequence_number == 2
    assert failed.status_code == 0
    assert "exploded" in failed.error_message


def test_always_failing_executor_reports_zero_success():
    report = LoadTestRunner(RecordingExecutor(success=False, latency_seconds=0.001)).run(10, 3)

    assert report.success_rate == 0
    assert all(r.status_code == 0 for r in report.results)


def test_inter_request_delay_is_applied_per_task():
    executor = RecordingExecutor(latency_seconds=0.0)

    report = LoadTestRunner(executor).run(total_requests=3, concurrency_limit=1, inter_request_delay_ms=50)

    # request #1 fires immediately, #2 and #3 each wait 50ms inside their slot
    assert report.duration_seconds >= 0.1


def test_mixed_workload_hits_all_endpoints_in_rotation():
    executor = RecordingExecutor(latency_seconds=0.0)

    LoadTestRunner(executor).run(total_requests=6, concurrency_limit=1, endpoint="mixed")

    assert executor.calls == [
        ("health", 1), ("categories", 2), ("batch", 3),
        ("health", 4), ("categories", 5), ("batch", 6),
    ]


def test_stop_event_stops_admission_and_keeps_partial_results():
    executor = RecordingExecutor(latency_seconds=0.02)
    stop_event = threading.Event()
    runner = LoadTestRunner(executor)

    timer = threading.Timer(0.05, stop_event.set)
    timer.start()
    try:
        report = runner.run(total_requests=1000, concurrency_limit=2, stop_event=stop_event)
    finally:
        timer.cancel()

    assert 0 < report.total_requests < 1000
    assert report.total_requests == len(executor.calls)


def test_fresh_results_per_run():
    runner = LoadTestRunner(RecordingExecutor(latency_seconds=0.0))

    first = runner.run(5, 2)
    second = runner.run(3, 2)

    assert first.total_requests == 5
    assert second.total_requests == 3


def test_live_metrics_track_outcomes():
    metrics = LiveMetrics()

    LoadTestRunner(RecordingExecutor(latency_seconds=0.0), metrics=metrics).run(4, 2, endpoint="health")

    assert metrics.registry.get_sample_value(
        "load_tester_requests_total", {"endpoint": "health", "outcome": "success"}
    ) == 4
    assert metrics.registry.get_sample_value("load_tester_in_flight") == 0


def test_result_collector_is_safe_under_concurrent_appends():
    collector = ResultCollector()

    def append_many():
        for i in range(500):
            collector.append(make_result(1, sequence=i))

    threads = [threading.Thread(target=append_many) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(collector) == 4000
    assert len(collector.snapshot()) == 4000


@pytest.mark.integration
def test_concurrency_cap_is_respected_not_serialized(mock_service):
    """10 requests at concurrency 5 against a 50ms server take about two rounds."""
    service, base_url = mock_service
    service.delay_seconds = 0.05

    with RequestExecutor(base_url, timeout=5, pool_size=5) as executor:
        started = time.perf_counter()
        report = LoadTestRunner(executor).run(total_requests=10, concurrency_limit=5, endpoint="health")
        elapsed = time.perf_counter() - started

    assert report.success_rate == 100
    # two rounds of 50ms; serial execution would take at least 500ms
    assert 0.09 <= elapsed < 0.45


@pytest.mark.integration
def test_always_succeeding_service_reports_full_success(mock_service):
    _, base_url = mock_service

    with RequestExecutor(base_url, timeout=5) as executor:
        report = LoadTestRunner(executor).run(total_requests=9, concurrency_limit=3, endpoint="mixed")

    assert report.success_rate == 100
    assert report.avg_extracted_metric == pytest.approx(1.5)


@pytest.mark.integration
def test_connection_refused_run_reports_zero_success(refused_url):
    with RequestExecutor(refused_url, timeout=2) as executor:
        report = LoadTestRunner(executor).run(total_requests=5, concurrency_limit=2)

    assert report.total_requests == 5
    assert report.success_rate == 0
    assert all(r.status_code == 0 for r in report.results)


@pytest.mark.integration
def test_ensure_service_ready(mock_service, refused_url):
    _, base_url = mock_service

    with RequestExecutor(base_url, timeout=5) as executor:
        assert LoadTestRunner(executor).ensure_service_ready().success is True

    with RequestExecutor(refused_url, timeout=2) as executor:
        with pytest.raises(ServiceNotReady):
            LoadTestRunner(executor).ensure_service_ready()
