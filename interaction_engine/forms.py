"""Form fill/validate/submit flows and the built-in test suites."""

from __future__ import annotations

from typing import Any, Optional

import structlog

from .adapter import ElementTreeAdapter, describe_target, resolve
from .errors import NotFoundError, ValidationMismatchError
from .models import (
    ClickStep,
    CustomStep,
    InputStep,
    InteractionSequence,
    SequenceResult,
    TestCase,
    TestSuite,
)
from .runner import SequenceRunner
from .validation import FIELD_SELECTOR, FormValidationCoordinator

LOGGER = structlog.get_logger("interaction_engine.forms")

SUBMIT_SELECTOR = '[type="submit"], button:not([type])'
EMAIL_PROBES = ("invalid-email", "test@", "@test.com", "test@valid.com")
VALID_EMAIL_PROBE = "test@valid.com"

SAMPLE_VALUES: dict[str, str] = {
    "email": "test@example.com",
    "password": "TestPassword123!",
    "tel": "+1234567890",
    "url": "https://example.com",
    "number": "42",
    "date": "2023-12-25",
}


def _field_selector(form_id: Optional[str], key: str) -> str:
    """Attribute selectors keep dotted or spaced names intact."""

    fields = (f'[name="{key}"]', f'[id="{key}"]')
    if form_id:
        return ", ".join(f'[id="{form_id}"] {field}' for field in fields)
    return ", ".join(fields)


class FormInteractionTester:
    """Generates sample data for a form and drives it through a sequence."""

    def __init__(
        self,
        adapter: ElementTreeAdapter,
        coordinator: FormValidationCoordinator,
        runner: SequenceRunner,
    ) -> None:
        self._adapter = adapter
        self._coordinator = coordinator
        self._runner = runner

    async def generate_test_data(self, form: Any) -> dict[str, Any]:
        """Plausible value per named field; checkboxes map to ``True``, radios are skipped."""

        adapter = self._adapter
        data: dict[str, Any] = {}
        for field in await adapter.query_all(FIELD_SELECTOR, within=form):
            key = await adapter.get_attribute(field, "name") or await adapter.get_attribute(field, "id")
            if not key:
                continue
            field_type = (await adapter.get_attribute(field, "type") or "").lower()
            tag = await adapter.tag_name(field)

            if field_type in SAMPLE_VALUES:
                data[key] = SAMPLE_VALUES[field_type]
            elif field_type == "checkbox":
                data[key] = True
            elif field_type == "radio":
                continue
            elif tag == "select":
                options = await adapter.query_all("option", within=field)
                if len(options) > 1:
                    option_value = await adapter.get_attribute(options[1], "value")
                    if option_value is None:
                        option_value = (await adapter.text_content(options[1])).strip()
                    data[key] = option_value
            else:
                data[key] = f"Test {key}"
        return data

    async def build_sequence(
        self,
        form: Any,
        data: dict[str, Any],
        *,
        submit: bool = True,
        name: Optional[str] = None,
    ) -> InteractionSequence:
        adapter = self._adapter
        coordinator = self._coordinator
        form_id = await adapter.get_attribute(form, "id")
        steps: list[Any] = []

        for key, value in data.items():
            selector = _field_selector(form_id, key)
            if isinstance(value, bool):
                if value:
                    steps.append(ClickStep(name=f"Check {key}", selector=selector))
                continue
            steps.append(InputStep(name=f"Fill {key}", selector=selector, value=value))

        async def assert_valid(_: ElementTreeAdapter) -> dict[str, Any]:
            outcome = await coordinator.validate_form(form)
            if not outcome.is_valid:
                raise ValidationMismatchError(
                    "Form validation failed: " + "; ".join(f"{e.field}: {e.message}" for e in outcome.errors),
                    expected="valid",
                    actual=[e.field for e in outcome.errors],
                )
            return outcome.model_dump()

        steps.append(CustomStep(name="Form Validation", execute=assert_valid))

        if submit:

            async def submit_form(target_adapter: ElementTreeAdapter) -> dict[str, str]:
                buttons = await target_adapter.query_all(SUBMIT_SELECTOR, within=form)
                if buttons:
                    await target_adapter.dispatch(buttons[0], "click", bubbles=True, cancelable=True)
                    return {"submitted_via": "button"}
                await target_adapter.dispatch(form, "submit", bubbles=True, cancelable=True)
                return {"submitted_via": "form"}

            steps.append(CustomStep(name="Form Submission", execute=submit_form))

        return InteractionSequence(
            name=name or f"Form interaction {form_id or describe_target(form)}",
            steps=steps,
            stop_on_failure=False,
        )

    async def test_form(
        self,
        target: Any,
        data: Optional[dict[str, Any]] = None,
        *,
        submit: bool = True,
    ) -> SequenceResult:
        form = await resolve(self._adapter, target)
        if form is None:
            raise NotFoundError(f"Form not found: {describe_target(target)}", target=describe_target(target))
        if data is None:
            data = await self.generate_test_data(form)
        sequence = await self.build_sequence(form, data, submit=submit)
        LOGGER.info("form_interaction_started", form=sequence.name, fields=len(data))
        return await self._runner.run(sequence)


async def _resolve_form(adapter: ElementTreeAdapter, target: Any) -> Any:
    form = await resolve(adapter, target if target is not None else "form")
    if form is None:
        raise NotFoundError(f"Form not found: {describe_target(target or 'form')}", target=describe_target(target))
    return form


def build_default_suites(
    adapter: ElementTreeAdapter,
    coordinator: FormValidationCoordinator,
    tester: FormInteractionTester,
) -> dict[str, TestSuite]:
    """The suites every engine registers at startup."""

    async def required_fields(target: Any) -> list[dict[str, Any]]:
        form = await _resolve_form(adapter, target)
        results = []
        for field in await adapter.query_all("[required]", within=form):
            await adapter.write_value(field, "")
            validation = await coordinator.validate_element(field)
            results.append(
                {
                    "field": await adapter.get_attribute(field, "name") or await adapter.get_attribute(field, "id"),
                    "passed": not validation.is_valid,
                    "message": validation.message,
                }
            )
        return results

    async def email_validation(target: Any) -> list[dict[str, Any]]:
        form = await _resolve_form(adapter, target)
        results = []
        for field in await adapter.query_all('[type="email"]', within=form):
            key = await adapter.get_attribute(field, "name") or await adapter.get_attribute(field, "id")
            for probe in EMAIL_PROBES:
                await adapter.write_value(field, probe)
                validation = await coordinator.validate_element(field)
                should_be_valid = probe == VALID_EMAIL_PROBE
                results.append(
                    {
                        "field": key,
                        "value": probe,
                        "passed": validation.is_valid == should_be_valid,
                        "expected": should_be_valid,
                        "actual": validation.is_valid,
                    }
                )
        return results

    async def form_fill_and_submit(target: Any) -> list[SequenceResult]:
        return [await tester.test_form(form) for form in await adapter.query_all("form")]

    return {
        "basicFormValidation": TestSuite(
            name="Basic Form Validation",
            description="Tests basic form field validation",
            cases=(
                TestCase(id="required-fields", name="Required Fields", type="validation", execute=required_fields),
                TestCase(id="email-validation", name="Email Validation", type="validation", execute=email_validation),
            ),
        ),
        "userInteraction": TestSuite(
            name="User Interaction Testing",
            description="Tests complex user interaction sequences",
            cases=(
                TestCase(
                    id="form-fill-and-submit",
                    name="Form Fill and Submit",
                    type="interaction",
                    execute=form_fill_and_submit,
                ),
            ),
        ),
    }
