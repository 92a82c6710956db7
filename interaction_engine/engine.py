"""Facade wiring validators, runners, recorder and reporting to one adapter."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

import httpx
import structlog

from .adapter import ElementTreeAdapter
from .config import EngineConfig
from .drivers import DriverRegistry
from .executor import InteractionStepExecutor, ScreenshotCapture
from .forms import FormInteractionTester, build_default_suites
from .http_executor import ThreadedHttpExecutor
from .models import (
    FieldDescriptor,
    FieldValidationResult,
    FormValidationResult,
    InteractionSequence,
    PerformanceMetrics,
    RunResult,
    SequenceResult,
    SuiteResult,
    TestSuite,
)
from .network import AsyncRequestExecutor, CallbackRequestExecutor, NetworkCallRecorder
from .reporting import EXTENSIONS, ResultAggregator
from .rules import ValidationRuleSet
from .runner import SequenceRunner
from .suites import SuiteRegistry, TestSuiteRunner
from .timing import Clock, MonotonicClock
from .validation import FieldValidator, FormValidationCoordinator

LOGGER = structlog.get_logger("interaction_engine.engine")


class TestingEngine:
    """
    Public entry point used by the CLI and CI sessions.

    Every top-level sequence, suite and form run is appended to the results
    log; :meth:`export` and :meth:`performance_report` read from that log.
    Outgoing HTTP goes through :attr:`request` or :attr:`callback_request`,
    both recorded by :attr:`network`.
    """

    __test__ = False

    def __init__(
        self,
        adapter: ElementTreeAdapter,
        *,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
        rules: Optional[ValidationRuleSet] = None,
        suites: Optional[Mapping[str, TestSuite]] = None,
        observer: Any = None,
        drivers: Optional[DriverRegistry] = None,
        capture: Optional[ScreenshotCapture] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.adapter = adapter
        self.clock = clock or MonotonicClock()
        self.rules = rules or ValidationRuleSet.default()
        self.validator = FieldValidator(self.rules)
        self.coordinator = FormValidationCoordinator(adapter, self.validator)
        self.executor = InteractionStepExecutor(
            adapter,
            clock=self.clock,
            timeouts=self.config.timeouts,
            capture=capture,
            drivers=drivers,
        )
        self.runner = SequenceRunner(self.executor, stop_on_failure=self.config.stop_on_failure, observer=observer)
        self.forms = FormInteractionTester(adapter, self.coordinator, self.runner)
        registry = SuiteRegistry(build_default_suites(adapter, self.coordinator, self.forms))
        self.suite_runner = TestSuiteRunner(registry.merged(suites or {}), clock=self.clock, observer=observer)
        self.network = NetworkCallRecorder(self.clock)
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient()
        self.request: AsyncRequestExecutor = self.network.instrument(self.http_client.request)
        self.callback_request: CallbackRequestExecutor = self.network.instrument_callback(ThreadedHttpExecutor())
        self.aggregator = ResultAggregator()
        self._results: list[RunResult] = []

    @property
    def suites(self) -> SuiteRegistry:
        return self.suite_runner.registry

    def register_suites(self, suites: Mapping[str, TestSuite]) -> None:
        self.suite_runner.registry = self.suite_runner.registry.merged(suites)

    # validation -----------------------------------------------------------

    def validate_field(self, descriptor: FieldDescriptor | Mapping[str, Any]) -> FieldValidationResult:
        if not isinstance(descriptor, FieldDescriptor):
            descriptor = FieldDescriptor.model_validate(descriptor)
        return self.validator.validate(descriptor)

    async def validate_form(self, target: Any) -> FormValidationResult:
        return await self.coordinator.validate_form(target)

    # runs -----------------------------------------------------------------

    async def run_sequence(self, sequence: InteractionSequence | Mapping[str, Any]) -> SequenceResult:
        result = await self.runner.run(sequence)  # type: ignore[arg-type]
        self._results.append(result)
        return result

    async def run_suite(self, key: str, target: Any = None) -> SuiteResult:
        result = await self.suite_runner.run_suite(key, target)
        self._results.append(result)
        return result

    async def run_suites(self, keys: Iterable[str], target: Any = None) -> list[SuiteResult]:
        return [await self.run_suite(key, target) for key in keys]

    async def test_form(self, target: Any, data: Optional[dict[str, Any]] = None) -> SequenceResult:
        result = await self.forms.test_form(target, data)
        self._results.append(result)
        return result

    # results --------------------------------------------------------------

    def results(self) -> list[RunResult]:
        return list(self._results)

    def clear_results(self) -> None:
        self._results.clear()
        self.network.clear()
        LOGGER.info("results_cleared")

    def compute_performance(self) -> PerformanceMetrics:
        return self.aggregator.compute_performance(self._results)

    def performance_report(self) -> dict[str, Any]:
        return self.aggregator.performance_report(self._results, self.network.stats())

    def export(self, fmt: str) -> str:
        return self.aggregator.export(self._results, fmt, network=self.network.stats())

    def write_reports(self, output_dir: Path, name: str, formats: Optional[Iterable[str]] = None) -> list[Path]:
        """Write ``<output_dir>/<name>.<ext>`` for each format; unknown formats raise before any write."""

        selected = list(formats if formats is not None else self.config.report_formats)
        rendered = [(fmt, self.export(fmt)) for fmt in selected]
        output_dir.mkdir(parents=True, exist_ok=True)
        written = []
        for fmt, content in rendered:
            path = output_dir / f"{name}.{EXTENSIONS[fmt.lower()]}"
            path.write_text(content, encoding="utf-8")
            written.append(path)
        LOGGER.info("reports_written", directory=str(output_dir), files=[path.name for path in written])
        return written

    # lifecycle ------------------------------------------------------------

    async def aclose(self) -> None:
        """Close the HTTP client behind :attr:`request` when the engine created it."""

        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "TestingEngine":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
