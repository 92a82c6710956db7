"""Named test suites and their runner."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Optional, Protocol
import inspect
import traceback

import structlog

from .errors import NotFoundError
from .models import CaseResult, ExecutionStatus, SuiteResult, TestSuite
from .timing import Clock, MonotonicClock

LOGGER = structlog.get_logger("interaction_engine.suites")


class SuiteObserver(Protocol):
    def start_suite(self, total_cases: int, suite_name: str) -> None: ...

    def report_case_result(self, result: CaseResult) -> None: ...

    def finish_suite(self, result: SuiteResult) -> None: ...


class SuiteRegistry(Mapping[str, TestSuite]):
    """Read-only mapping of suite key to suite, fixed at construction."""

    def __init__(self, suites: Mapping[str, TestSuite] | Iterable[tuple[str, TestSuite]] = ()) -> None:
        self._suites = MappingProxyType(dict(suites))

    def __getitem__(self, key: str) -> TestSuite:
        return self._suites[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._suites)

    def __len__(self) -> int:
        return len(self._suites)

    def merged(self, extra: Mapping[str, TestSuite]) -> "SuiteRegistry":
        return SuiteRegistry({**self._suites, **extra})

    def require(self, key: str) -> TestSuite:
        suite = self._suites.get(key)
        if suite is None:
            raise NotFoundError(f"Test suite not found: {key}", target=key)
        return suite


class TestSuiteRunner:
    """Runs every case of a suite; a failing case never stops the suite."""

    __test__ = False

    def __init__(
        self,
        registry: SuiteRegistry,
        *,
        clock: Optional[Clock] = None,
        observer: Optional[SuiteObserver] = None,
    ) -> None:
        self.registry = registry
        self._clock = clock or MonotonicClock()
        self.observer = observer

    async def run_suite(self, key: str, target: Any = None) -> SuiteResult:
        suite = self.registry.require(key)
        logger = LOGGER.bind(suite=key)
        result = SuiteResult(suite_name=key, name=suite.name, description=suite.description)
        result.begin(self._clock.now())
        logger.info("suite_started", cases=len(suite.cases))
        if self.observer:
            self.observer.start_suite(total_cases=len(suite.cases), suite_name=suite.name)

        for case in suite.cases:
            case_result = CaseResult(id=case.id, name=case.name, priority=case.priority, type=case.type)
            case_result.begin(self._clock.now())
            try:
                outcome = case.execute(target)
                if inspect.isawaitable(outcome):
                    outcome = await outcome
            except Exception as exc:
                case_result.error = str(exc)
                case_result.traceback = traceback.format_exc()
                case_result.finish(ExecutionStatus.FAILED, self._clock.now())
                logger.warning("suite_case_failed", case=case.name, error=case_result.error)
            else:
                case_result.result = outcome
                case_result.finish(ExecutionStatus.COMPLETED, self._clock.now())
            result.cases.append(case_result)
            if self.observer:
                self.observer.report_case_result(case_result)

        result.finish(ExecutionStatus.COMPLETED, self._clock.now())
        logger.info(
            "suite_finished",
            duration_ms=result.duration,
            failed_cases=sum(1 for case in result.cases if case.status is ExecutionStatus.FAILED),
        )
        if self.observer:
            self.observer.finish_suite(result)
        return result
