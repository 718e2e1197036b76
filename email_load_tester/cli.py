import argparse
import json
import logging
import sys

from .config import CONFIG, setup_logging
from .control_api import create_control_api
from .endpoints import WORKLOADS
from .executor import RequestExecutor
from .metrics import LiveMetrics
from .reporting import format_report, format_scenario, save_results
from .runner import InvalidRunConfiguration, LoadTestRunner, ServiceNotReady, validate_run
from .scenarios import SCENARIOS, get_scenario, run_scenario

logger = logging.getLogger("load-tester")

EXIT_OK = 0
EXIT_THRESHOLDS_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        description='Load test the Email Analysis Service',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument('--scenario', choices=sorted(SCENARIOS), default=None,
                        help='Named load profile; omit for a single custom run')
    parser.add_argument('--base-url', default=CONFIG["BASE_URL"], help='Email Analysis Service base URL')
    parser.add_argument('--endpoint', choices=WORKLOADS, default=CONFIG["ENDPOINT"],
                        help='Endpoint for a custom run ("mixed" rotates health, categories and batch)')
    parser.add_argument('--concurrency', type=int, default=CONFIG["CONCURRENCY"],
                        help='Maximum requests in flight for a custom run')
    parser.add_argument('--total-requests', type=int, default=CONFIG["TOTAL_REQUESTS"],
                        help='Total requests for a custom run')
    parser.add_argument('--delay-ms', type=int, default=CONFIG["DELAY_MS"],
                        help='Per-request delay before firing, in milliseconds')
    parser.add_argument('--timeout', type=float, default=CONFIG["TIMEOUT"], help='Per-request timeout in seconds')
    parser.add_argument('--batch-source', default=CONFIG["BATCH_SOURCE"],
                        help='Directory path sent to the batch endpoint')
    parser.add_argument('--file-path', default=CONFIG["FILE_PATH"],
                        help='Email file path sent to the file-analysis endpoint')
    parser.add_argument('--insecure', action='store_true', default=not CONFIG["VERIFY_TLS"],
                        help='Skip TLS certificate verification')
    parser.add_argument('--skip-health-check', action='store_true', default=False,
                        help='Do not probe the health endpoint before running')
    parser.add_argument('--pause-seconds', type=float, default=CONFIG["STAGE_PAUSE_SECONDS"],
                        help='Pause between scenario stages')
    parser.add_argument('--output-dir', default=CONFIG["OUTPUT_DIR"], help='Directory for result files')
    parser.add_argument('--no-save', action='store_true', default=False, help='Do not write result files')
    parser.add_argument('--format', choices=['text', 'json'], default='text', help='Report output format')
    parser.add_argument('--metrics-port', type=int, default=CONFIG["METRICS_PORT"],
                        help='Expose live Prometheus metrics on this port (0 disables)')
    parser.add_argument('--control-api', action='store_true', default=False,
                        help='Serve the control API instead of running once')
    parser.add_argument('--control-api-port', type=int, default=CONFIG["CONTROL_API_PORT"],
                        help='Port for the control API')
    parser.add_argument('--verbose', action='store_true', default=False, help='Log request admission progress')
    parser.add_argument('--log-level', default=logging.getLevelName(CONFIG["LOG_LEVEL"]),
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Logging level')
    return parser.parse_args(argv)


def _pool_size(args) -> int:
    if args.control_api:
        # any scenario may be started remotely
        return max(max(1, args.concurrency),
                   max(stage.concurrency for scenario in SCENARIOS.values() for stage in scenario.stages))
    if args.scenario:
        return max(stage.concurrency for stage in SCENARIOS[args.scenario].stages)
    return max(1, args.concurrency)


def _emit(args, text: str, payload: dict):
    if args.format == 'json':
        print(json.dumps(payload, indent=2))
    else:
        print(text)


def main(argv=None) -> int:
    args = parse_arguments(argv)
    setup_logging(getattr(logging, args.log_level))

    metrics = LiveMetrics()
    if args.metrics_port > 0:
        metrics.serve(args.metrics_port)

    executor = RequestExecutor(
        base_url=args.base_url,
        timeout=args.timeout,
        verify_tls=not args.insecure,
        pool_size=_pool_size(args),
        batch_source=args.batch_source,
        file_path=args.file_path,
    )
    runner = LoadTestRunner(executor, metrics=metrics, verbose=args.verbose)

    try:
        if args.control_api:
            logger.info(f"Starting control API on port {args.control_api_port}")
            app = create_control_api(lambda: runner)
            app.run(host='0.0.0.0', port=args.control_api_port, debug=False, threaded=True)
            return EXIT_OK

        # reject bad parameters before the preflight sends anything
        scenario = None
        if args.scenario:
            scenario = get_scenario(args.scenario)
        else:
            validate_run(args.total_requests, args.concurrency, args.delay_ms, args.endpoint)

        if not args.skip_health_check:
            runner.ensure_service_ready()

        if scenario is not None:
            result = run_scenario(runner, scenario, pause_seconds=args.pause_seconds)
            _emit(args, format_scenario(result), {
                "scenario": result.name,
                "passed": result.passed,
                "breaches": list(result.breaches),
                "stages": [r.to_dict() for r in result.stage_reports],
                "overall": result.overall.to_dict(),
            })
            if not args.no_save:
                save_results(result.overall, args.output_dir, label=result.name)
            return EXIT_OK if result.passed else EXIT_THRESHOLDS_FAILED

        report = runner.run(
            total_requests=args.total_requests,
            concurrency_limit=args.concurrency,
            inter_request_delay_ms=args.delay_ms,
            endpoint=args.endpoint,
        )
        _emit(args, format_report(report), report.to_dict())
        if not args.no_save:
            save_results(report, args.output_dir, label=f"custom_{args.endpoint}")
        return EXIT_OK
    except (InvalidRunConfiguration, ServiceNotReady) as e:
        logger.error(str(e))
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        logger.info("Test interrupted by user")
        return EXIT_INTERRUPTED
    finally:
        executor.close()


if __name__ == '__main__':
    sys.exit(main())
