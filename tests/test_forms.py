from __future__ import annotations

import pytest

from interaction_engine.errors import NotFoundError
from interaction_engine.executor import InteractionStepExecutor
from interaction_engine.forms import FormInteractionTester
from interaction_engine.headless import HeadlessPage
from interaction_engine.models import ExecutionStatus
from interaction_engine.rules import ValidationRuleSet
from interaction_engine.runner import SequenceRunner
from interaction_engine.validation import FieldValidator, FormValidationCoordinator

from conftest import FakeClock, build_page


def _tester(page: HeadlessPage, clock: FakeClock) -> FormInteractionTester:
    coordinator = FormValidationCoordinator(page, FieldValidator(ValidationRuleSet.default()))
    return FormInteractionTester(page, coordinator, SequenceRunner(InteractionStepExecutor(page, clock=clock)))


@pytest.mark.asyncio
async def test_generated_data_follows_field_types(page: HeadlessPage, clock: FakeClock) -> None:
    data = await _tester(page, clock).generate_test_data(await page.query("#signup"))

    assert data == {
        "email": "test@example.com",
        "password": "TestPassword123!",
        "phone": "+1234567890",
        "terms": True,
    }


@pytest.mark.asyncio
async def test_generated_data_for_selects_radios_and_text(clock: FakeClock) -> None:
    page = build_page(
        {
            "elements": [
                {
                    "tag": "form",
                    "children": [
                        {"tag": "input", "attrs": {"name": "nickname"}},
                        {"tag": "input", "attrs": {"type": "radio", "name": "plan"}},
                        {
                            "tag": "select",
                            "attrs": {"name": "country"},
                            "children": [
                                {"tag": "option", "attrs": {"value": ""}, "text": "Choose"},
                                {"tag": "option", "attrs": {"value": "nl"}, "text": "Netherlands"},
                            ],
                        },
                        {"tag": "input", "attrs": {"type": "date", "id": "born"}},
                    ],
                }
            ]
        }
    )

    data = await _tester(page, clock).generate_test_data(await page.query("form"))

    assert data == {"nickname": "Test nickname", "country": "nl", "born": "2023-12-25"}


@pytest.mark.asyncio
async def test_form_is_filled_validated_and_submitted(page: HeadlessPage, clock: FakeClock) -> None:
    result = await _tester(page, clock).test_form("#signup")

    assert result.status is ExecutionStatus.COMPLETED
    assert [step.name for step in result.steps] == [
        "Fill email",
        "Fill password",
        "Fill phone",
        "Check terms",
        "Form Validation",
        "Form Submission",
    ]
    assert (await page.query("#email")).value == "test@example.com"
    assert page.submissions == [await page.query("#signup")]
    assert result.steps[-1].output == {"submitted_via": "button"}


@pytest.mark.asyncio
async def test_invalid_data_fails_validation_but_still_submits(page: HeadlessPage, clock: FakeClock) -> None:
    result = await _tester(page, clock).test_form("#signup", {"email": "not-an-email"})

    validation = next(step for step in result.steps if step.name == "Form Validation")
    assert validation.status is ExecutionStatus.FAILED
    assert "email: Please enter a valid email address" in validation.error
    assert result.status is ExecutionStatus.COMPLETED
    assert len(page.submissions) == 1


@pytest.mark.asyncio
async def test_form_without_button_submits_directly(clock: FakeClock) -> None:
    page = build_page({"elements": [{"tag": "form", "attrs": {"id": "bare"}, "children": [{"tag": "input", "attrs": {"name": "q"}, "label": "Query"}]}]})

    result = await _tester(page, clock).test_form("#bare")

    assert result.steps[-1].output == {"submitted_via": "form"}
    assert page.submissions == [await page.query("#bare")]


@pytest.mark.asyncio
async def test_missing_form_raises(page: HeadlessPage, clock: FakeClock) -> None:
    with pytest.raises(NotFoundError, match="Form not found: #other"):
        await _tester(page, clock).test_form("#other")


@pytest.mark.asyncio
async def test_fields_with_dotted_or_spaced_keys_are_filled(clock: FakeClock) -> None:
    page = build_page(
        {
            "elements": [
                {
                    "tag": "form",
                    "attrs": {"id": "account"},
                    "children": [
                        {"tag": "input", "attrs": {"type": "email", "name": "user.email"}},
                        {"tag": "input", "attrs": {"id": "full name"}},
                    ],
                }
            ]
        }
    )

    result = await _tester(page, clock).test_form("#account")

    assert [step.status for step in result.steps] == [ExecutionStatus.COMPLETED] * 4
    assert page.select('[name="user.email"]')[0].value == "test@example.com"
    assert page.select('[id="full name"]')[0].value == "Test full name"
