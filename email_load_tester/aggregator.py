from typing import Dict, Iterable, List

import numpy as np

from .models import LoadTestReport, RequestResult


def _percentile(values: np.ndarray, q: float) -> float:
    if values.size == 0:
        return 0.0
    return float(np.percentile(values, q))


def summarize(results: Iterable[RequestResult], elapsed_seconds: float) -> LoadTestReport:
    """
    Reduce a finished run's results into a LoadTestReport.

    Pure function: the input is copied into a tuple and never modified, and no
    clock or I/O is consulted, so the same input always yields the same report.
    Latency statistics cover every result, failures included.
    """
    results = tuple(results)
    total = len(results)
    successes = sum(1 for r in results if r.success)
    elapsed = float(elapsed_seconds) if elapsed_seconds else 0.0

    latencies = np.array([r.latency_ms for r in results], dtype=float)
    metrics = [r.extracted_metric for r in results if r.extracted_metric is not None]

    return LoadTestReport(
        total_requests=total,
        successful_requests=successes,
        failed_requests=total - successes,
        success_rate=(successes / total * 100) if total > 0 else 0.0,
        duration_seconds=elapsed,
        avg_latency_ms=float(np.mean(latencies)) if total > 0 else 0.0,
        min_latency_ms=float(np.min(latencies)) if total > 0 else 0.0,
        max_latency_ms=float(np.max(latencies)) if total > 0 else 0.0,
        p50_latency_ms=_percentile(latencies, 50),
        p95_latency_ms=_percentile(latencies, 95),
        p99_latency_ms=_percentile(latencies, 99),
        requests_per_second=(total / elapsed) if elapsed > 0 else 0.0,
        total_bytes_transferred=int(sum(r.response_size_bytes for r in results)),
        avg_extracted_metric=float(np.mean(metrics)) if metrics else None,
        results=results,
    )


def summarize_by_endpoint(results: Iterable[RequestResult], elapsed_seconds: float) -> Dict[str, LoadTestReport]:
    """One report per endpoint name, each sharing the run's wall-clock duration."""
    grouped: Dict[str, List[RequestResult]] = {}
    for result in results:
        grouped.setdefault(result.endpoint_name, []).append(result)
    return {name: summarize(group, elapsed_seconds) for name, group in sorted(grouped.items())}
