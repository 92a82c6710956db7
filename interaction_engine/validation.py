"""Field and form validation against the registered rule set."""

from __future__ import annotations

from typing import Any, Optional
import re

import structlog

from .adapter import ElementTreeAdapter, describe_target, resolve
from .errors import NotFoundError
from .models import FieldDescriptor, FieldValidationResult, FormFieldError, FormValidationResult
from .rules import ValidationRuleSet, password_suggestions

LOGGER = structlog.get_logger("interaction_engine.validation")

FIELD_SELECTOR = "input, textarea, select"
ACCESSIBILITY_WARNING = "Field lacks proper labeling for accessibility"
REQUIRED_MESSAGE = "This field is required"
PATTERN_FALLBACK_MESSAGE = "Invalid format"
_CARD_HINTS = ("credit", "card")


class FieldValidator:
    """Applies structural checks and registered rules to one field descriptor."""

    def __init__(self, rules: ValidationRuleSet) -> None:
        self._rules = rules

    @property
    def rules(self) -> ValidationRuleSet:
        return self._rules

    def validate(self, descriptor: FieldDescriptor) -> FieldValidationResult:
        result = FieldValidationResult()
        value = descriptor.value.strip()

        if not value:
            if descriptor.required:
                result.is_valid = False
                result.message = REQUIRED_MESSAGE
            return result

        rule = self._rules.for_field_type(descriptor.type)
        if rule is not None:
            outcome = rule.test(value)
            if not outcome.is_valid:
                result.is_valid = False
                result.message = rule.message
                if rule.requirements is not None:
                    result.suggestions = password_suggestions(outcome.details)
                return result

        identity = (descriptor.name or descriptor.id or "").lower()
        if any(hint in identity for hint in _CARD_HINTS):
            card_rule = self._rules.get("credit_card")
            if not card_rule.test(value).is_valid:
                result.is_valid = False
                result.message = card_rule.message
                return result

        if descriptor.pattern:
            if re.search(descriptor.pattern, value) is None:
                result.is_valid = False
                result.message = descriptor.title or PATTERN_FALLBACK_MESSAGE
                return result

        if descriptor.min_length and len(value) < descriptor.min_length:
            result.is_valid = False
            result.message = f"Minimum {descriptor.min_length} characters required"
            return result

        if descriptor.max_length and len(value) > descriptor.max_length:
            result.is_valid = False
            result.message = f"Maximum {descriptor.max_length} characters allowed"
            return result

        if not descriptor.has_label:
            result.warnings.append(ACCESSIBILITY_WARNING)

        return result


def _int_attribute(raw: Optional[str]) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


async def describe_field(adapter: ElementTreeAdapter, element: Any) -> FieldDescriptor:
    """Read the attributes the validator needs from a live element."""

    attr = adapter.get_attribute
    labels = await adapter.labels(element)
    aria_label = await attr(element, "aria-label")
    aria_labelledby = await attr(element, "aria-labelledby")
    field_type = await attr(element, "type")
    if not field_type:
        field_type = await adapter.tag_name(element)
        if field_type == "input":
            field_type = "text"
    return FieldDescriptor(
        value=await adapter.read_value(element),
        type=field_type,
        required=await attr(element, "required") is not None,
        pattern=await attr(element, "pattern") or None,
        min_length=_int_attribute(await attr(element, "minlength")),
        max_length=_int_attribute(await attr(element, "maxlength")),
        name=await attr(element, "name") or None,
        id=await attr(element, "id") or None,
        title=await attr(element, "title") or None,
        has_label=bool(labels or aria_label or aria_labelledby),
    )


class FormValidationCoordinator:
    """Runs every field of a form through the field validator."""

    def __init__(self, adapter: ElementTreeAdapter, validator: FieldValidator) -> None:
        self._adapter = adapter
        self._validator = validator

    async def validate_element(self, element: Any) -> FieldValidationResult:
        return self._validator.validate(await describe_field(self._adapter, element))

    async def validate_form(self, target: Any) -> FormValidationResult:
        form = await resolve(self._adapter, target)
        if form is None:
            raise NotFoundError(f"Form not found: {describe_target(target)}", target=describe_target(target))

        result = FormValidationResult()
        for element in await self._adapter.query_all(FIELD_SELECTOR, within=form):
            descriptor = await describe_field(self._adapter, element)
            field_result = self._validator.validate(descriptor)
            result.fields[descriptor.key] = field_result

            if not field_result.is_valid:
                result.is_valid = False
                result.errors.append(
                    FormFieldError(field=descriptor.key, message=field_result.message, value=descriptor.value)
                )
            result.warnings.extend(field_result.warnings)

        LOGGER.debug(
            "form_validated",
            target=describe_target(target),
            fields=len(result.fields),
            errors=len(result.errors),
            warnings=len(result.warnings),
        )
        return result
