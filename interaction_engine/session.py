"""CI sessions: run enabled suites, analyze, report and notify."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, Union
import inspect
import re
import uuid

import httpx
import structlog
from pydantic import BaseModel, Field
from pydantic_core import to_jsonable_python

from .engine import TestingEngine
from .errors import NotFoundError
from .models import ExecutionStatus, SuiteResult
from .network import AsyncRequestExecutor
from .reporting import EXTENSIONS, compute_performance

LOGGER = structlog.get_logger("interaction_engine.session")

INTERNAL_SCHEMES = ("chrome://", "edge://", "about:")
TEST_HOST_PATTERNS = (re.compile(r"localhost"), re.compile(r"staging\."), re.compile(r"dev\."), re.compile(r"test\."))

NO_ANALYSIS = {"analysis": "AI analysis not available", "recommendations": []}
ANALYSIS_FAILURE_RECOMMENDATION = "Manual review recommended due to AI analysis failure"


class AnalysisProvider(Protocol):
    def analyze(self, payload: dict[str, Any]) -> Union[dict[str, Any], Awaitable[dict[str, Any]]]: ...


class NotificationSummary(BaseModel):
    status: str
    environment: str
    url: str
    duration: float
    total_tests: int
    failed_tests: int

    @property
    def passed(self) -> bool:
        return self.status == "success"


Notifier = Callable[[NotificationSummary], Any]


class SessionResult(BaseModel):
    session_id: str
    url: str
    environment: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    start: float
    end: Optional[float] = None
    duration: Optional[float] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    suites: list[SuiteResult] = Field(default_factory=list)
    analysis: dict[str, Any] = Field(default_factory=dict)
    reports: dict[str, str] = Field(default_factory=dict)


def should_trigger(url: Optional[str], environment: str) -> bool:
    """Internal browser pages never trigger; test hosts always do; production tests everything."""

    if not url or url.startswith(INTERNAL_SCHEMES):
        return False
    return any(pattern.search(url) for pattern in TEST_HOST_PATTERNS) or environment == "production"


class WebhookNotifier:
    """Posts a chat-style summary card to a webhook URL."""

    def __init__(self, url: str, *, request: Optional[AsyncRequestExecutor] = None, timeout: float = 10.0) -> None:
        self.url = url
        self.request = request
        self._timeout = timeout

    def payload(self, summary: NotificationSummary) -> dict[str, Any]:
        verdict = "✅ PASSED" if summary.passed else "❌ FAILED"
        return {
            "text": f"Interaction tests {verdict}",
            "attachments": [
                {
                    "color": "good" if summary.passed else "danger",
                    "fields": [
                        {"title": "Environment", "value": summary.environment, "short": True},
                        {"title": "URL", "value": summary.url, "short": True},
                        {"title": "Duration", "value": f"{summary.duration:g}ms", "short": True},
                        {
                            "title": "Tests",
                            "value": f"{summary.total_tests} ({summary.failed_tests} failed)",
                            "short": True,
                        },
                    ],
                }
            ],
        }

    async def __call__(self, summary: NotificationSummary) -> None:
        body = self.payload(summary)
        if self.request is not None:
            response = await self.request("POST", self.url, json=body, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self.url, json=body)
        response.raise_for_status()


class SessionRunner:
    """Runs the configured suites for one page visit."""

    def __init__(
        self,
        engine: TestingEngine,
        *,
        analysis: Optional[AnalysisProvider] = None,
        notifiers: Iterable[Notifier] = (),
        output_dir: Optional[Path] = None,
    ) -> None:
        self.engine = engine
        self.analysis = analysis
        self.notifiers = list(notifiers)
        for notifier in self.notifiers:
            if isinstance(notifier, WebhookNotifier) and notifier.request is None:
                notifier.request = engine.request
        self.output_dir = output_dir
        self.sessions: list[SessionResult] = []

    def should_trigger(self, url: Optional[str]) -> bool:
        return self.engine.config.auto_testing and should_trigger(url, self.engine.config.environment)

    async def run(self, url: str, target: Any = None) -> SessionResult:
        engine = self.engine
        clock = engine.clock
        session = SessionResult(
            session_id=f"session_{uuid.uuid4().hex[:12]}",
            url=url,
            environment=engine.config.environment,
            start=clock.now(),
        )
        logger = LOGGER.bind(session=session.session_id, url=url)
        logger.info("session_started", suites=engine.config.enabled_suites)

        for key in engine.config.enabled_suites:
            try:
                session.suites.append(await engine.run_suite(key, target))
            except NotFoundError as exc:
                missing = SuiteResult(suite_name=key, name=key, error=str(exc))
                missing.begin(clock.now())
                missing.finish(ExecutionStatus.FAILED, clock.now())
                session.suites.append(missing)
                logger.warning("session_suite_missing", suite=key)

        session.end = clock.now()
        session.duration = session.end - session.start
        session.status = ExecutionStatus.COMPLETED
        session.analysis = await self._analyze(session)
        session.reports = self._render_reports(session)
        self.sessions.append(session)

        summary = self.summarize(session)
        await self._notify(summary)
        logger.info("session_finished", status=summary.status, duration_ms=session.duration)
        return session

    def summarize(self, session: SessionResult) -> NotificationSummary:
        metrics = compute_performance(session.suites)
        suite_failed = any(suite.status is ExecutionStatus.FAILED for suite in session.suites)
        return NotificationSummary(
            status="failure" if metrics.failed_count or suite_failed else "success",
            environment=session.environment,
            url=session.url,
            duration=session.duration or 0,
            total_tests=metrics.completed_count + metrics.failed_count,
            failed_tests=metrics.failed_count,
        )

    async def _analyze(self, session: SessionResult) -> dict[str, Any]:
        if self.analysis is None:
            return {**NO_ANALYSIS, "recommendations": []}
        payload = {
            "session": to_jsonable_python(
                session.model_copy(update={"analysis": {}, "reports": {}}), serialize_unknown=True
            ),
            "context": {
                "environment": session.environment,
                "url": session.url,
                "timestamp": session.started_at.isoformat(),
            },
        }
        try:
            outcome = self.analysis.analyze(payload)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception as exc:
            LOGGER.error("analysis_failed", session=session.session_id, error=str(exc))
            return {
                "analysis": f"AI analysis failed: {exc}",
                "recommendations": [ANALYSIS_FAILURE_RECOMMENDATION],
            }
        return dict(outcome)

    def _render_reports(self, session: SessionResult) -> dict[str, str]:
        aggregator = self.engine.aggregator
        network = self.engine.network.stats()
        reports: dict[str, str] = {}
        for fmt in self.engine.config.report_formats:
            try:
                reports[fmt] = aggregator.export(session.suites, fmt, network=network)
            except Exception as exc:
                LOGGER.error("report_generation_failed", session=session.session_id, format=fmt, error=str(exc))
                continue
            if self.output_dir is not None:
                self.output_dir.mkdir(parents=True, exist_ok=True)
                path = self.output_dir / f"{session.session_id}.{EXTENSIONS[fmt.lower()]}"
                path.write_text(reports[fmt], encoding="utf-8")
        return reports

    async def _notify(self, summary: NotificationSummary) -> None:
        for notifier in self.notifiers:
            try:
                outcome = notifier(summary)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                LOGGER.error("notification_failed", notifier=repr(notifier), error=str(exc))
