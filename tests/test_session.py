from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from interaction_engine.config import EngineConfig
from interaction_engine.engine import TestingEngine
from interaction_engine.headless import HeadlessPage
from interaction_engine.models import ExecutionStatus
from interaction_engine.session import (
    ANALYSIS_FAILURE_RECOMMENDATION,
    NotificationSummary,
    SessionRunner,
    WebhookNotifier,
    should_trigger,
)

from conftest import FakeClock


@pytest.mark.parametrize(
    ("url", "environment", "expected"),
    [
        ("chrome://settings", "production", False),
        ("about:blank", "production", False),
        ("", "development", False),
        ("http://localhost:3000/", "development", True),
        ("https://staging.shop.io/cart", "development", True),
        ("https://www.shop.io/", "development", False),
        ("https://www.shop.io/", "production", True),
    ],
)
def test_should_trigger(url: str, environment: str, expected: bool) -> None:
    assert should_trigger(url, environment) is expected


def test_auto_testing_toggle_disables_trigger(page: HeadlessPage, clock: FakeClock) -> None:
    engine = TestingEngine(page, clock=clock, config=EngineConfig(auto_testing=False))

    assert not SessionRunner(engine).should_trigger("http://localhost:3000/")


class BrokenAnalysis:
    def analyze(self, payload):
        raise ConnectionError("analysis service unreachable")


class EchoAnalysis:
    def __init__(self) -> None:
        self.payloads: list[dict] = []

    async def analyze(self, payload):
        self.payloads.append(payload)
        return {"analysis": "looks fine", "recommendations": []}


@pytest.mark.asyncio
async def test_session_runs_enabled_suites_and_notifies(page: HeadlessPage, clock: FakeClock, tmp_path: Path) -> None:
    engine = TestingEngine(page, clock=clock, config=EngineConfig(report_formats=["json", "csv", "pdf"]))
    received: list[NotificationSummary] = []

    def failing_notifier(summary: NotificationSummary) -> None:
        raise RuntimeError("webhook down")

    runner = SessionRunner(
        engine,
        analysis=BrokenAnalysis(),
        notifiers=[failing_notifier, received.append],
        output_dir=tmp_path,
    )

    session = await runner.run(page.url)

    assert session.status is ExecutionStatus.COMPLETED
    assert [suite.suite_name for suite in session.suites] == ["basicFormValidation", "userInteraction"]
    assert session.analysis["recommendations"] == [ANALYSIS_FAILURE_RECOMMENDATION]
    assert session.analysis["analysis"] == "AI analysis failed: analysis service unreachable"
    assert set(session.reports) == {"json", "csv"}
    assert (tmp_path / f"{session.session_id}.csv").exists()
    (summary,) = received
    assert summary.status == "success"
    assert summary.total_tests == 3
    assert summary.failed_tests == 0
    assert summary.url == "http://localhost:3000/signup"
    assert runner.sessions == [session]


@pytest.mark.asyncio
async def test_missing_suite_marks_session_failed(page: HeadlessPage, clock: FakeClock) -> None:
    engine = TestingEngine(page, clock=clock, config=EngineConfig(enabled_suites=["ghost"], report_formats=[]))
    analysis = EchoAnalysis()

    session = await SessionRunner(engine, analysis=analysis).run(page.url)

    assert session.suites[0].status is ExecutionStatus.FAILED
    assert session.suites[0].error == "Test suite not found: ghost"
    assert session.analysis == {"analysis": "looks fine", "recommendations": []}
    assert analysis.payloads[0]["context"]["url"] == page.url
    assert SessionRunner(engine).summarize(session).status == "failure"


@pytest.mark.asyncio
async def test_session_without_analysis_provider(page: HeadlessPage, clock: FakeClock) -> None:
    engine = TestingEngine(page, clock=clock, config=EngineConfig(enabled_suites=[], report_formats=[]))

    session = await SessionRunner(engine).run(page.url)

    assert session.analysis == {"analysis": "AI analysis not available", "recommendations": []}


@pytest.mark.asyncio
async def test_webhook_notifier_posts_summary_card(clock: FakeClock) -> None:
    captured: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(json.loads(request.content))
        return httpx.Response(200)

    summary = NotificationSummary(
        status="failure", environment="staging", url="https://staging.app/", duration=1200, total_tests=4, failed_tests=1
    )
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        await WebhookNotifier("https://hooks.test/abc", request=client.request)(summary)

    (payload,) = captured
    assert payload["text"] == "Interaction tests ❌ FAILED"
    fields = {field["title"]: field["value"] for field in payload["attachments"][0]["fields"]}
    assert fields == {"Environment": "staging", "URL": "https://staging.app/", "Duration": "1200ms", "Tests": "4 (1 failed)"}


@pytest.mark.asyncio
async def test_webhook_notifier_raises_on_rejection() -> None:
    summary = NotificationSummary(status="success", environment="dev", url="u", duration=0, total_tests=0, failed_tests=0)
    transport = httpx.MockTransport(lambda request: httpx.Response(403))

    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await WebhookNotifier("https://hooks.test/abc", request=client.request)(summary)


@pytest.mark.asyncio
async def test_webhook_post_is_recorded_by_engine_network(page: HeadlessPage, clock: FakeClock) -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        engine = TestingEngine(
            page,
            clock=clock,
            config=EngineConfig(enabled_suites=[], report_formats=[]),
            http_client=client,
        )
        await SessionRunner(engine, notifiers=[WebhookNotifier("https://hooks.test/x")]).run(page.url)

    assert seen == ["https://hooks.test/x"]
    (call,) = engine.network.calls()
    assert (call.method, call.url, call.status_code, call.success) == ("POST", "https://hooks.test/x", 200, True)
    assert engine.network.stats().total == 1
