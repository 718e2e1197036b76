"""
Named load profiles.

Each stage fixes a concurrency limit and a request count; a scenario runs its
stages in order and judges latency and error-rate thresholds over all of them.
"""
import logging
import threading
import time
from typing import Dict, List, NamedTuple, Optional, Tuple

from .aggregator import summarize
from .models import LoadTestReport
from .runner import InvalidRunConfiguration, LoadTestRunner

logger = logging.getLogger("load-tester.scenarios")


class Stage(NamedTuple):
    concurrency: int
    total_requests: int
    delay_ms: int = 0


class Thresholds(NamedTuple):
    p95_ms: Optional[float] = None
    p99_ms: Optional[float] = None
    max_error_rate: Optional[float] = None


class Scenario(NamedTuple):
    name: str
    description: str
    stages: Tuple[Stage, ...]
    thresholds: Thresholds = Thresholds()
    endpoint: str = "batch"


class ScenarioResult(NamedTuple):
    name: str
    stage_reports: Tuple[LoadTestReport, ...]
    overall: LoadTestReport
    breaches: Tuple[str, ...]

    @property
    def passed(self) -> bool:
        return not self.breaches


SCENARIOS: Dict[str, Scenario] = {
    "smoke": Scenario(
        name="smoke",
        description="Quick validation with a handful of users",
        stages=(Stage(5, 10, 100),),
        thresholds=Thresholds(p95_ms=1000, p99_ms=2000, max_error_rate=0.05),
        endpoint="mixed",
    ),
    "light": Scenario(
        name="light",
        description="Light load (5 concurrent, 10 total)",
        stages=(Stage(5, 10, 100),),
    ),
    "medium": Scenario(
        name="medium",
        description="Medium load (10 concurrent, 50 total)",
        stages=(Stage(10, 50, 50),),
    ),
    "heavy": Scenario(
        name="heavy",
        description="Heavy load (20 concurrent, 100 total)",
        stages=(Stage(20, 100, 0),),
    ),
    "stress": Scenario(
        name="stress",
        description="Breaking point: 100 then 200 concurrent",
        stages=(Stage(100, 500, 0), Stage(200, 1000, 0)),
        thresholds=Thresholds(p95_ms=5000, p99_ms=10000, max_error_rate=0.1),
    ),
    "endurance": Scenario(
        name="endurance",
        description="Long steady load at 50 concurrent",
        stages=(Stage(50, 3000, 0),),
        thresholds=Thresholds(p95_ms=3000, max_error_rate=0.05),
    ),
    "spike": Scenario(
        name="spike",
        description="Normal load, sudden burst, back to normal",
        stages=(Stage(10, 100, 0), Stage(100, 500, 0), Stage(10, 100, 0)),
        thresholds=Thresholds(p95_ms=5000, max_error_rate=0.15),
    ),
    "gradual-ramp": Scenario(
        name="gradual-ramp",
        description="Step concurrency up to find the optimal load",
        stages=(Stage(5, 50, 0), Stage(10, 100, 0), Stage(20, 200, 0),
                Stage(40, 400, 0), Stage(60, 600, 0)),
        thresholds=Thresholds(p95_ms=5000, max_error_rate=0.1),
    ),
    "suite": Scenario(
        name="suite",
        description="Light, medium, heavy and stress runs back to back",
        stages=(Stage(5, 10, 100), Stage(10, 50, 50), Stage(20, 100, 0), Stage(50, 200, 0)),
    ),
}


def get_scenario(name: str) -> Scenario:
    try:
        return SCENARIOS[name]
    except KeyError:
        raise InvalidRunConfiguration(
            f"unknown scenario {name!r}; expected one of {', '.join(SCENARIOS)}"
        ) from None


def check_thresholds(report: LoadTestReport, thresholds: Thresholds) -> List[str]:
    breaches = []
    if thresholds.p95_ms is not None and report.p95_latency_ms >= thresholds.p95_ms:
        breaches.append(f"p95 latency {report.p95_latency_ms:.2f}ms >= {thresholds.p95_ms}ms")
    if thresholds.p99_ms is not None and report.p99_latency_ms >= thresholds.p99_ms:
        breaches.append(f"p99 latency {report.p99_latency_ms:.2f}ms >= {thresholds.p99_ms}ms")
    if thresholds.max_error_rate is not None and report.error_rate >= thresholds.max_error_rate:
        breaches.append(f"error rate {report.error_rate:.4f} >= {thresholds.max_error_rate}")
    return breaches


def run_scenario(runner: LoadTestRunner, scenario: Scenario, pause_seconds: float = 2.0,
                 stop_event: Optional[threading.Event] = None) -> ScenarioResult:
    """Run every stage of ``scenario`` in order and evaluate its thresholds over all stages."""
    logger.info(f"Scenario '{scenario.name}': {scenario.description} ({len(scenario.stages)} stage(s))")
    stage_reports = []
    for index, stage in enumerate(scenario.stages, start=1):
        if stop_event is not None and stop_event.is_set():
            logger.info(f"Stop requested; skipping remaining stages from {index}")
            break
        logger.info(f"Stage {index}/{len(scenario.stages)}: {stage.concurrency} concurrent, "
                    f"{stage.total_requests} total, {stage.delay_ms}ms delay")
        stage_reports.append(runner.run(
            total_requests=stage.total_requests,
            concurrency_limit=stage.concurrency,
            inter_request_delay_ms=stage.delay_ms,
            endpoint=scenario.endpoint,
            stop_event=stop_event,
        ))
        if pause_seconds > 0 and index < len(scenario.stages):
            time.sleep(pause_seconds)

    overall = summarize(
        [r for report in stage_reports for r in report.results],
        sum(report.duration_seconds for report in stage_reports),
    )
    breaches = tuple(check_thresholds(overall, scenario.thresholds))
    for breach in breaches:
        logger.warning(f"Threshold breached in '{scenario.name}': {breach}")
    return ScenarioResult(scenario.name, tuple(stage_reports), overall, breaches)
