import json
import logging
import os
from datetime import datetime
from typing import Iterable

import numpy as np
import pandas as pd

from .models import LoadTestReport, RequestResult

logger = logging.getLogger("load-tester.reporting")

RESULT_COLUMNS = list(RequestResult._fields)


def format_bytes(num_bytes) -> str:
    sizes = ["B", "KB", "MB", "GB"]
    length = float(num_bytes)
    order = 0
    while length >= 1024 and order < len(sizes) - 1:
        order += 1
        length = length / 1024
    return f"{length:.2f} {sizes[order]}"


def format_report(report: LoadTestReport, title: str = "LOAD TEST RESULTS") -> str:
    per_request = report.total_bytes_transferred // report.total_requests if report.total_requests else 0
    lines = [
        "=" * 80,
        title,
        "=" * 80,
        f"Total Duration: {report.duration_seconds:.2f} seconds",
        f"Total Requests: {report.total_requests}",
        f"Successful: {report.successful_requests} ({report.success_rate:.2f}%)",
        f"Failed: {report.failed_requests}",
        f"Requests/sec: {report.requests_per_second:.2f}",
        "",
        "Response Times (ms):",
        f"  Average: {report.avg_latency_ms:.2f}",
        f"  Min: {report.min_latency_ms:.2f}",
        f"  Max: {report.max_latency_ms:.2f}",
        f"  p50/p95/p99: {report.p50_latency_ms:.2f} / {report.p95_latency_ms:.2f} / {report.p99_latency_ms:.2f}",
    ]
    if report.avg_extracted_metric is not None:
        lines.append(f"  Server processing (avg): {report.avg_extracted_metric * 1000:.2f} ms")
    lines += [
        "",
        "Data Transfer:",
        f"  Total: {format_bytes(report.total_bytes_transferred)}",
        f"  Average per request: {format_bytes(per_request)}",
        "=" * 80,
    ]
    return "\n".join(lines)


def format_scenario(result) -> str:
    """Text summary of a ScenarioResult: one block per stage, then the verdict."""
    lines = [f"Scenario: {result.name}"]
    for index, report in enumerate(result.stage_reports, start=1):
        lines += [
            f"  Stage {index}",
            f"   ├─ Success Rate: {report.success_rate:.2f}%",
            f"   ├─ Avg Response: {report.avg_latency_ms:.2f}ms",
            f"   ├─ Min/Max: {report.min_latency_ms:.2f}ms / {report.max_latency_ms:.2f}ms",
            f"   ├─ RPS: {report.requests_per_second:.2f}",
            f"   └─ Duration: {report.duration_seconds:.2f}s",
        ]
    lines.append(format_report(result.overall, title=f"{result.name.upper()} - ALL STAGES"))
    if result.breaches:
        lines.append("Thresholds: FAILED")
        lines += [f"  ✗ {breach}" for breach in result.breaches]
    else:
        lines.append("Thresholds: passed")
    return "\n".join(lines)


def results_frame(results: Iterable[RequestResult]) -> pd.DataFrame:
    return pd.DataFrame([r._asdict() for r in results], columns=RESULT_COLUMNS)


def endpoint_summary(results: Iterable[RequestResult]) -> pd.DataFrame:
    df = results_frame(results)
    if df.empty:
        return pd.DataFrame(columns=[
            'endpoint_name', 'total', 'success', 'error',
            'latency_ms_avg', 'latency_ms_p95', 'success_rate',
        ])
    summary = df.groupby('endpoint_name').agg(
        total=('success', 'count'),
        success=('success', 'sum'),
        latency_ms_avg=('latency_ms', 'mean'),
        latency_ms_p95=('latency_ms', lambda x: np.percentile(x, 95) if len(x) > 0 else 0),
    ).reset_index()
    summary['success'] = summary['success'].astype(int)
    summary['error'] = summary['total'] - summary['success']
    summary['success_rate'] = summary['success'] / summary['total'] * 100
    return summary[['endpoint_name', 'total', 'success', 'error',
                    'latency_ms_avg', 'latency_ms_p95', 'success_rate']]


def save_results(report: LoadTestReport, output_dir: str, label: str = "run") -> str:
    """Write results.csv, endpoint_summary.csv and summary.json into a timestamped directory."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = os.path.join(output_dir, f"{label}_{timestamp}")
    try:
        os.makedirs(run_dir, exist_ok=True)
        results_frame(report.results).to_csv(os.path.join(run_dir, "results.csv"), index=False)
        endpoint_summary(report.results).to_csv(os.path.join(run_dir, "endpoint_summary.csv"), index=False)
        with open(os.path.join(run_dir, "summary.json"), 'w') as f:
            json.dump(report.to_dict(), f, indent=2)
    except OSError as e:
        logger.error(f"Error saving results to {run_dir}: {e}")
        raise

    logger.info(f"Results saved to {run_dir}")
    return run_dir
