import logging
import time
from datetime import datetime
from typing import Optional

import requests
from requests.adapters import HTTPAdapter

from .endpoints import PayloadSources, get_endpoint
from .models import RequestResult

logger = logging.getLogger("load-tester.executor")

DEFAULT_TIMEOUT = 300.0
DEFAULT_BATCH_SOURCE = "C:\\EmailFiles"
DEFAULT_FILE_PATH = "C:\\EmailFiles\\sample.eml"


def _response_size(response) -> int:
    content_length = response.headers.get("Content-Length")
    if content_length is not None:
        try:
            return int(content_length)
        except ValueError:
            pass
    return len(response.content or b"")


class RequestExecutor:
    """
    Issues single requests against the Email Analysis Service and turns every
    outcome, including transport failures, into a RequestResult.
    """

    def __init__(self, base_url: str, timeout: float = DEFAULT_TIMEOUT,
                 verify_tls: bool = True, pool_size: int = 10,
                 batch_source: str = DEFAULT_BATCH_SOURCE,
                 file_path: str = DEFAULT_FILE_PATH,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = float(timeout)
        self.verify_tls = verify_tls
        self.sources = PayloadSources(batch_source, file_path)

        if session is None:
            # Pooled connections sized to the concurrency budget; no retries
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=max(1, pool_size), pool_maxsize=max(1, pool_size),
                                  max_retries=0)
            session.mount('http://', adapter)
            session.mount('https://', adapter)
        self.session = session

    def execute(self, endpoint_name: str, sequence_number: int) -> RequestResult:
        endpoint = get_endpoint(endpoint_name)
        full_url = endpoint.url(self.base_url)
        payload = endpoint.payload(sequence_number, self.sources)
        headers = {'Content-Type': 'application/json'}

        start_time = time.perf_counter()
        try:
            response = self.session.request(
                endpoint.method,
                full_url,
                json=payload,
                headers=headers,
                timeout=self.timeout,
                verify=self.verify_tls,
            )
            # requests reads the whole body before returning
            body = response.text
            latency_ms = (time.perf_counter() - start_time) * 1000
        except requests.exceptions.RequestException as e:
            latency_ms = (time.perf_counter() - start_time) * 1000
            logger.debug(f"[{endpoint_name} #{sequence_number}] transport error for {full_url}: {e}")
            return self._failure(endpoint_name, sequence_number, latency_ms, str(e))
        except Exception as e:
            latency_ms = (time.perf_counter() - start_time) * 1000
            logger.error(f"[{endpoint_name} #{sequence_number}] unexpected error for {full_url}: {e}")
            return self._failure(endpoint_name, sequence_number, latency_ms, str(e) or type(e).__name__)

        status_code = response.status_code
        error_message = None
        extracted_metric = None
        if 200 <= status_code < 300:
            error_message = endpoint.check(body)
            if endpoint.metric_field:
                extracted_metric = endpoint.try_extract(body)
        else:
            error_message = f"HTTP {status_code}"

        if error_message:
            logger.debug(f"[{endpoint_name} #{sequence_number}] failed: {error_message}")

        return RequestResult(
            endpoint_name=endpoint_name,
            sequence_number=sequence_number,
            status_code=status_code,
            latency_ms=latency_ms,
            success=error_message is None,
            error_message=error_message,
            response_size_bytes=_response_size(response),
            extracted_metric=extracted_metric,
            timestamp=datetime.now().isoformat(),
        )

    def _failure(self, endpoint_name, sequence_number, latency_ms, message) -> RequestResult:
        return RequestResult(
            endpoint_name=endpoint_name,
            sequence_number=sequence_number,
            status_code=0,
            latency_ms=latency_ms,
            success=False,
            error_message=message,
            response_size_bytes=0,
            extracted_metric=None,
            timestamp=datetime.now().isoformat(),
        )

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
