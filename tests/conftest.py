"""
Shared pytest fixtures for the load tester.

Provides a real, threaded HTTP stand-in for the Email Analysis Service so the
executor and runner are exercised over actual sockets, plus a helper for an
address nothing is listening on.
"""

from __future__ import annotations

import json
import socket
import threading
import time

import pytest
from flask import Flask, Response, request
from werkzeug.serving import make_server


class MockEmailAnalysisService:
    """Flask app mimicking the Email Analysis Service endpoints."""

    def __init__(self):
        self.delay_seconds = 0.0
        self.status_code = 200
        self.health_body = "Healthy"
        self.categories_body = json.dumps(["Invoice", "Support", "Spam"])
        self.batch_body = json.dumps({
            "batchId": "b-1",
            "emails": [{"id": 1}],
            "successfullyProcessed": 1,
            "processingDurationSeconds": 1.5,
        })
        self.received_payloads = []
        self.file_payloads = []
        self.request_count = 0
        self._lock = threading.Lock()
        self.app = self._build_app()

    def _respond(self, body: str) -> Response:
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        return Response(body, status=self.status_code, mimetype="application/json")

    def _build_app(self) -> Flask:
        app = Flask("mock-email-analysis")

        @app.before_request
        def count_request():
            with self._lock:
                self.request_count += 1

        @app.route("/api/EmailAnalysis/health", methods=["GET"])
        def health():
            return self._respond(self.health_body)

        @app.route("/api/EmailAnalysis/categories", methods=["GET"])
        def categories():
            return self._respond(self.categories_body)

        @app.route("/api/EmailAnalysis/emails/incoming", methods=["POST"])
        def incoming():
            with self._lock:
                self.received_payloads.append(request.get_json(silent=True))
            return self._respond(self.batch_body)

        @app.route("/api/EmailAnalysis/file/analyze", methods=["POST"])
        def analyze_file():
            with self._lock:
                self.file_payloads.append(request.get_json(silent=True))
            return self._respond(json.dumps({"category": "Invoice"}))

        return app


@pytest.fixture()
def mock_service():
    """Start the mock service on an ephemeral port; yields (service, base_url)."""
    service = MockEmailAnalysisService()
    server = make_server("127.0.0.1", 0, service.app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield service, f"http://127.0.0.1:{server.server_port}"
    finally:
        server.shutdown()
        thread.join(timeout=5)


@pytest.fixture()
def refused_url():
    """Base URL of a local port with no listener."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}"
