"""Test bootstrap for the interaction engine."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from interaction_engine.config import TimeoutSettings  # noqa: E402
from interaction_engine.executor import InteractionStepExecutor  # noqa: E402
from interaction_engine.headless import HeadlessPage, PageSpec  # noqa: E402


class FakeClock:
    """Deterministic millisecond clock; ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 0.0) -> None:
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    async def sleep(self, ms: float) -> None:
        self.sleeps.append(ms)
        self.current += max(ms, 0)

    def advance(self, ms: float) -> None:
        self.current += ms


SIGNUP_PAGE: dict[str, Any] = {
    "url": "http://localhost:3000/signup",
    "elements": [
        {"tag": "h1", "attrs": {"id": "title"}, "text": "Create your account"},
        {
            "tag": "form",
            "attrs": {"id": "signup"},
            "children": [
                {
                    "tag": "input",
                    "attrs": {"type": "email", "name": "email", "id": "email", "required": True},
                    "label": "Email",
                },
                {
                    "tag": "input",
                    "attrs": {"type": "password", "name": "password", "id": "password", "required": True},
                    "label": "Password",
                },
                {"tag": "input", "attrs": {"type": "tel", "name": "phone", "id": "phone"}, "label": "Phone"},
                {"tag": "input", "attrs": {"type": "checkbox", "name": "terms", "id": "terms"}, "label": "Terms"},
                {
                    "tag": "button",
                    "attrs": {"type": "submit", "id": "submit", "class": "btn primary"},
                    "text": "Sign up",
                    "box": {"x": 10, "y": 200, "width": 80, "height": 30},
                },
            ],
        },
        {"tag": "div", "attrs": {"id": "banner", "class": "notice"}, "text": "Welcome back", "visible": False},
    ],
}


def build_page(spec: dict[str, Any]) -> HeadlessPage:
    return HeadlessPage.from_spec(PageSpec.model_validate(spec))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def page() -> HeadlessPage:
    return build_page(SIGNUP_PAGE)


@pytest.fixture
def timeouts() -> TimeoutSettings:
    return TimeoutSettings()


@pytest.fixture
def executor(page: HeadlessPage, clock: FakeClock, timeouts: TimeoutSettings) -> InteractionStepExecutor:
    return InteractionStepExecutor(page, clock=clock, timeouts=timeouts)
