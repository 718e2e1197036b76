"""
Endpoint catalogue for the Email Analysis Service.

Each endpoint carries the HTTP method, the path relative to the service base
URL, an optional JSON payload and the body assertions a response must satisfy
on top of a 2xx status before it counts as a success.
"""
import json
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple

API_PREFIX = "/api/EmailAnalysis"


class UnknownEndpointError(KeyError):
    pass


# An assertion returns None when the body passes, otherwise a failure description.
Assertion = Callable[[str], Optional[str]]


def body_contains(marker: str) -> Assertion:
    def check(body: str) -> Optional[str]:
        if marker in body:
            return None
        return f"response body missing '{marker}'"
    return check


def body_is_json_array(body: str) -> Optional[str]:
    try:
        parsed = json.loads(body)
    except ValueError:
        return "response body is not valid JSON"
    if not isinstance(parsed, list):
        return "response body is not a JSON array"
    return None


def try_extract_metric(body: str, field: str) -> Optional[float]:
    """Parse ``body`` as a JSON object and return ``field`` as a float.

    Any failure (invalid JSON, non-object body, missing or non-numeric field)
    yields None.
    """
    try:
        parsed = json.loads(body)
    except (TypeError, ValueError):
        return None
    if not isinstance(parsed, dict):
        return None
    value = parsed.get(field)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class PayloadSources(NamedTuple):
    batch_source: str
    file_path: str


def directory_payload(sequence_number: int, sources: PayloadSources) -> dict:
    return {"type": "directory", "source": sources.batch_source}


def file_analysis_payload(sequence_number: int, sources: PayloadSources) -> dict:
    return {
        "filePath": sources.file_path,
        "subject": f"Test Email {sequence_number}",
        "fromEmail": f"test{sequence_number}@example.com",
    }


class EndpointSpec(NamedTuple):
    name: str
    method: str
    path: str
    assertions: Tuple[Assertion, ...] = ()
    metric_field: Optional[str] = None
    build_payload: Optional[Callable[[int, PayloadSources], dict]] = None

    def url(self, base_url: str) -> str:
        return f"{base_url.rstrip('/')}{self.path}"

    def payload(self, sequence_number: int, sources: PayloadSources) -> Optional[dict]:
        if self.build_payload is None:
            return None
        return self.build_payload(sequence_number, sources)

    def check(self, body: str) -> Optional[str]:
        for assertion in self.assertions:
            failure = assertion(body)
            if failure is not None:
                return failure
        return None

    def try_extract(self, body: str) -> Optional[float]:
        if not self.metric_field:
            return None
        return try_extract_metric(body, self.metric_field)


ENDPOINTS: Dict[str, EndpointSpec] = {
    "health": EndpointSpec(
        name="health",
        method="GET",
        path=f"{API_PREFIX}/health",
        assertions=(body_contains("Healthy"),),
    ),
    "categories": EndpointSpec(
        name="categories",
        method="GET",
        path=f"{API_PREFIX}/categories",
        assertions=(body_is_json_array,),
    ),
    "batch": EndpointSpec(
        name="batch",
        method="POST",
        path=f"{API_PREFIX}/emails/incoming",
        assertions=(body_contains("batchId"), body_contains("emails")),
        metric_field="processingDurationSeconds",
        build_payload=directory_payload,
    ),
    # single-file analysis is judged on status alone
    "file-analysis": EndpointSpec(
        name="file-analysis",
        method="POST",
        path=f"{API_PREFIX}/file/analyze",
        build_payload=file_analysis_payload,
    ),
}

# "mixed" cycles health, categories, batch by sequence number
MIXED_ROTATION: List[str] = ["health", "categories", "batch"]
WORKLOADS = tuple(ENDPOINTS) + ("mixed",)


def get_endpoint(name: str) -> EndpointSpec:
    try:
        return ENDPOINTS[name]
    except KeyError:
        raise UnknownEndpointError(name) from None


def endpoint_for_request(workload: str, sequence_number: int) -> str:
    """Resolve which endpoint request ``sequence_number`` of a workload hits."""
    if workload == "mixed":
        return MIXED_ROTATION[(sequence_number - 1) % len(MIXED_ROTATION)]
    if workload not in ENDPOINTS:
        raise UnknownEndpointError(workload)
    return workload
