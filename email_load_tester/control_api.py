import logging
import threading
from datetime import datetime
from typing import Callable

from flask import Flask, jsonify, request

from .runner import InvalidRunConfiguration, LoadTestRunner, validate_run
from .scenarios import get_scenario, run_scenario

logger = logging.getLogger("load-tester.control-api")


class RunState:
    """Single-run bookkeeping shared between the request handlers and the worker thread."""

    def __init__(self):
        self.lock = threading.Lock()
        self.state = "idle"
        self.description = None
        self.start_time = None
        self.end_time = None
        self.error = None
        self.result = None
        self.stop_event = None
        self.thread = None

    @property
    def running(self) -> bool:
        return self.state == "running"

    def as_dict(self) -> dict:
        return {
            "state": self.state,
            "running": self.running,
            "run": self.description,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "error": self.error,
        }


def _parse_start_request(data):
    """Return (description, job) where job(runner, stop_event) returns a JSON-ready dict."""
    if not isinstance(data, dict):
        raise InvalidRunConfiguration(f"request body must be a JSON object, got {type(data).__name__}")
    if "scenario" in data:
        scenario = get_scenario(str(data["scenario"]))
        pause = data.get("pause_seconds", 2.0)
        if isinstance(pause, bool) or not isinstance(pause, (int, float)) or pause < 0:
            raise InvalidRunConfiguration(f"pause_seconds must be a non-negative number, got {pause!r}")

        def job(runner, stop_event):
            result = run_scenario(runner, scenario, pause_seconds=pause, stop_event=stop_event)
            return {
                "scenario": result.name,
                "passed": result.passed,
                "breaches": list(result.breaches),
                "stages": [r.to_dict() for r in result.stage_reports],
                "overall": result.overall.to_dict(),
            }
        return {"scenario": scenario.name}, job

    # JSON values go to validation as sent: 2.9 or true is not a request count
    total_requests = data.get("total_requests", 10)
    concurrency = data.get("concurrency", 5)
    delay_ms = data.get("delay_ms", 0)
    endpoint = data.get("endpoint", "batch")
    validate_run(total_requests, concurrency, delay_ms, endpoint)

    def job(runner, stop_event):
        report = runner.run(total_requests, concurrency, delay_ms, endpoint=endpoint, stop_event=stop_event)
        return report.to_dict()

    description = {
        "total_requests": total_requests,
        "concurrency": concurrency,
        "delay_ms": delay_ms,
        "endpoint": endpoint,
    }
    return description, job


def create_control_api(runner_factory: Callable[[], LoadTestRunner]) -> Flask:
    """Create a Flask API for starting and observing load test runs remotely."""
    app = Flask(__name__)
    run_state = RunState()
    app.extensions["load_tester"] = run_state

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({"status": "healthy", "running": run_state.running})

    @app.route('/start', methods=['POST'])
    def start_test():
        data = request.get_json(silent=True)
        if data is None:
            data = {}
        try:
            description, job = _parse_start_request(data)
        except InvalidRunConfiguration as e:
            return jsonify({"error": str(e)}), 400

        with run_state.lock:
            if run_state.running:
                return jsonify({"error": "Test already running", "run": run_state.description}), 409
            run_state.state = "running"
            run_state.description = description
            run_state.start_time = datetime.now()
            run_state.end_time = None
            run_state.error = None
            run_state.result = None
            run_state.stop_event = threading.Event()
            stop_event = run_state.stop_event

        def run_in_background():
            try:
                result = job(runner_factory(), stop_event)
                with run_state.lock:
                    run_state.result = result
                    run_state.end_time = datetime.now()
                    run_state.state = "completed"
            except Exception as e:
                logger.exception(f"Load test run failed: {e}")
                with run_state.lock:
                    run_state.error = str(e)
                    run_state.end_time = datetime.now()
                    run_state.state = "failed"

        run_state.thread = threading.Thread(target=run_in_background, daemon=True)
        run_state.thread.start()
        logger.info(f"Load test started via API: {description}")
        return jsonify({"message": "Test started", "run": description}), 202

    @app.route('/stop', methods=['POST'])
    def stop_test():
        with run_state.lock:
            if not run_state.running:
                return jsonify({"error": "No test running"}), 409
            run_state.stop_event.set()
        return jsonify({"message": "Stop requested"}), 202

    @app.route('/status', methods=['GET'])
    def get_status():
        with run_state.lock:
            return jsonify(run_state.as_dict())

    @app.route('/results', methods=['GET'])
    def get_results():
        with run_state.lock:
            if run_state.result is None:
                return jsonify({"error": "No completed run", "state": run_state.state}), 404
            return jsonify({"run": run_state.description, "result": run_state.result})

    return app
