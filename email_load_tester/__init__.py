"""Load testing harness for the Email Analysis Service."""
from .aggregator import summarize, summarize_by_endpoint
from .executor import RequestExecutor
from .models import LoadTestReport, RequestResult
from .runner import InvalidRunConfiguration, LoadTestRunner, ServiceNotReady

__version__ = "0.1.0"
