from typing import Any, Dict, NamedTuple, Optional, Tuple


class RequestResult(NamedTuple):
    """Outcome of one request issued against the Email Analysis Service."""
    endpoint_name: str
    sequence_number: int
    status_code: int
    latency_ms: float
    success: bool
    error_message: Optional[str] = None
    response_size_bytes: int = 0
    extracted_metric: Optional[float] = None
    timestamp: Optional[str] = None


class LoadTestReport(NamedTuple):
    total_requests: int
    successful_requests: int
    failed_requests: int
    success_rate: float
    duration_seconds: float
    avg_latency_ms: float
    min_latency_ms: float
    max_latency_ms: float
    p50_latency_ms: float
    p95_latency_ms: float
    p99_latency_ms: float
    requests_per_second: float
    total_bytes_transferred: int
    avg_extracted_metric: Optional[float]
    results: Tuple[RequestResult, ...] = ()

    @property
    def error_rate(self) -> float:
        """Failed share of requests in the 0..1 range."""
        if self.total_requests == 0:
            return 0.0
        return self.failed_requests / self.total_requests

    def to_dict(self, include_results: bool = False) -> Dict[str, Any]:
        data = self._asdict()
        results = data.pop("results")
        if include_results:
            data["results"] = [r._asdict() for r in results]
        return data
