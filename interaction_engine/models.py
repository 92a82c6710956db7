"""Descriptor and result models for sequences, suites and validations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Literal, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .errors import StateTransitionError, UnknownStepType, UnknownValidationType


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset({ExecutionStatus.RUNNING}),
    ExecutionStatus.RUNNING: frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.FAILED}),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
}


class DescriptorModel(BaseModel):
    """Author-supplied descriptor; accepts snake_case and camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


# ---------------------------------------------------------------------------
# Field and form validation
# ---------------------------------------------------------------------------


class FieldDescriptor(DescriptorModel):
    """Snapshot of a single form field handed to the field validator."""

    value: str = ""
    type: str = "text"
    required: bool = False
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    name: Optional[str] = None
    id: Optional[str] = None
    title: Optional[str] = None
    has_label: bool = False

    @property
    def key(self) -> str:
        return self.name or self.id or ""


class FieldValidationResult(BaseModel):
    is_valid: bool = True
    message: str = ""
    warnings: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class FormFieldError(BaseModel):
    field: str
    message: str
    value: str


class FormValidationResult(BaseModel):
    is_valid: bool = True
    fields: dict[str, FieldValidationResult] = Field(default_factory=dict)
    errors: list[FormFieldError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Validate-step assertions
# ---------------------------------------------------------------------------


class ExistsValidation(DescriptorModel):
    type: Literal["exists"] = "exists"


class VisibleValidation(DescriptorModel):
    type: Literal["visible"] = "visible"


class TextValidation(DescriptorModel):
    type: Literal["text"] = "text"
    equals: Optional[str] = None
    contains: Optional[str] = None


class ValueValidation(DescriptorModel):
    type: Literal["value"] = "value"
    equals: Optional[str] = None


class AttributeValidation(DescriptorModel):
    type: Literal["attribute"] = "attribute"
    attribute: str
    equals: Optional[str] = None


Validation = Union[ExistsValidation, VisibleValidation, TextValidation, ValueValidation, AttributeValidation]

VALIDATION_TYPES: Mapping[str, type[DescriptorModel]] = {
    "exists": ExistsValidation,
    "visible": VisibleValidation,
    "text": TextValidation,
    "value": ValueValidation,
    "attribute": AttributeValidation,
}


def parse_validation(descriptor: Any) -> Validation:
    """Turn a raw validation mapping into its model; unknown kinds are rejected."""

    if isinstance(descriptor, tuple(VALIDATION_TYPES.values())):
        return descriptor  # type: ignore[return-value]
    if not isinstance(descriptor, Mapping):
        raise UnknownValidationType(descriptor)
    kind = descriptor.get("type")
    model = VALIDATION_TYPES.get(kind) if isinstance(kind, str) else None
    if model is None:
        raise UnknownValidationType(kind)
    return model.model_validate(descriptor)  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Interaction steps
# ---------------------------------------------------------------------------


class BaseStep(DescriptorModel):
    type: str
    name: Optional[str] = None
    wait_after: Optional[float] = None

    def display_name(self, index: int) -> str:
        return self.name or f"Step {index + 1}"


class ClickOptions(DescriptorModel):
    scroll_into_view: bool = True


class ClickStep(BaseStep):
    type: Literal["click"] = "click"
    selector: str
    options: ClickOptions = Field(default_factory=ClickOptions)


class InputStep(BaseStep):
    type: Literal["input"] = "input"
    selector: str
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if value is None:
            return ""
        return str(value)


class Coordinates(DescriptorModel):
    x: float = 0
    y: float = 0


class ScrollOptions(DescriptorModel):
    smooth: bool = True
    block: str = "start"
    settle: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("settle", "waitAfter", "wait_after"),
    )


class ScrollStep(BaseStep):
    type: Literal["scroll"] = "scroll"
    target: Union[str, Coordinates]
    options: ScrollOptions = Field(default_factory=ScrollOptions)


class WaitStep(BaseStep):
    type: Literal["wait"] = "wait"
    duration: float = 0


class WaitForElementStep(BaseStep):
    type: Literal["waitForElement"] = "waitForElement"
    selector: str
    timeout: Optional[float] = None


class ScreenshotStep(BaseStep):
    type: Literal["screenshot"] = "screenshot"
    options: dict[str, Any] = Field(default_factory=dict)


class ValidateStep(BaseStep):
    type: Literal["validate"] = "validate"
    selector: str
    validation: Validation = Field(default_factory=ExistsValidation)

    @field_validator("validation", mode="before")
    @classmethod
    def _parse(cls, value: Any) -> Validation:
        return parse_validation(value)


class CustomStep(BaseStep):
    """Step delegating to a callback, given directly or as a ``module:function`` driver."""

    type: Literal["custom"] = "custom"
    execute: Optional[Callable[..., Any]] = None
    driver: Optional[str] = None

    @model_validator(mode="after")
    def _require_callback(self) -> "CustomStep":
        if self.execute is None and not self.driver:
            raise ValueError("custom step requires an execute callback or a driver reference")
        return self


Step = Union[
    ClickStep,
    InputStep,
    ScrollStep,
    WaitStep,
    WaitForElementStep,
    ScreenshotStep,
    ValidateStep,
    CustomStep,
]

STEP_TYPES: Mapping[str, type[BaseStep]] = {
    "click": ClickStep,
    "input": InputStep,
    "scroll": ScrollStep,
    "wait": WaitStep,
    "waitForElement": WaitForElementStep,
    "screenshot": ScreenshotStep,
    "validate": ValidateStep,
    "custom": CustomStep,
}


def parse_step(descriptor: Any) -> Step:
    """Turn a raw step mapping into its model; unknown kinds are rejected."""

    if isinstance(descriptor, BaseStep):
        return descriptor  # type: ignore[return-value]
    if not isinstance(descriptor, Mapping):
        raise UnknownStepType(type(descriptor).__name__)
    kind = descriptor.get("type")
    model = STEP_TYPES.get(kind) if isinstance(kind, str) else None
    if model is None:
        raise UnknownStepType(kind)
    return model.model_validate(descriptor)  # type: ignore[return-value]


def describe_step(descriptor: Any, index: int) -> tuple[str, str]:
    """Best-effort (name, type) for a descriptor that may not parse."""

    if isinstance(descriptor, BaseStep):
        return descriptor.display_name(index), descriptor.type
    if isinstance(descriptor, Mapping):
        name = descriptor.get("name") or f"Step {index + 1}"
        return str(name), str(descriptor.get("type"))
    return f"Step {index + 1}", type(descriptor).__name__


class InteractionSequence(DescriptorModel):
    """Ordered steps executed as one interaction flow.

    Steps stay raw until execution so a malformed entry fails at its own
    position instead of rejecting the whole sequence.
    """

    name: str
    steps: list[Any] = Field(default_factory=list)
    stop_on_failure: Optional[bool] = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    message: str
    traceback: Optional[str] = None


class TimedResult(BaseModel):
    """Status, timing and state machine shared by every result node."""

    status: ExecutionStatus = ExecutionStatus.PENDING
    start: Optional[float] = None
    end: Optional[float] = None
    duration: Optional[float] = None
    started_at: Optional[datetime] = None

    def _transition(self, target: ExecutionStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise StateTransitionError(self.status.value, target.value)
        self.status = target

    def begin(self, now: float) -> None:
        self._transition(ExecutionStatus.RUNNING)
        self.start = now
        self.started_at = datetime.now(timezone.utc)

    def finish(self, status: ExecutionStatus, now: float) -> None:
        self._transition(status)
        self.end = now
        self.duration = now - (self.start if self.start is not None else now)

    @property
    def is_terminal(self) -> bool:
        return self.status in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


class StepResult(TimedResult):
    index: int
    name: str
    type: str
    error: Optional[str] = None
    traceback: Optional[str] = None
    output: Any = None


class SequenceResult(TimedResult):
    sequence_name: str
    steps: list[StepResult] = Field(default_factory=list)
    errors: list[ErrorDetail] = Field(default_factory=list)


class CaseResult(TimedResult):
    id: str
    name: str
    priority: str = "medium"
    type: str = "custom"
    result: Any = None
    error: Optional[str] = None
    traceback: Optional[str] = None


class SuiteResult(TimedResult):
    suite_name: str
    name: str
    description: str = ""
    cases: list[CaseResult] = Field(default_factory=list)
    error: Optional[str] = None


RunResult = Union[SequenceResult, SuiteResult]


@dataclass(frozen=True)
class TestCase:
    """One independent check; ``execute(target)`` may be sync or async."""

    __test__ = False

    id: str
    name: str
    execute: Callable[[Any], Any]
    priority: str = "medium"
    type: str = "custom"


@dataclass(frozen=True)
class TestSuite:
    __test__ = False

    name: str
    description: str = ""
    cases: tuple[TestCase, ...] = field(default_factory=tuple)


class PerformanceMetrics(BaseModel):
    completed_count: int = 0
    failed_count: int = 0
    average_duration: float = 0.0
    total_duration: float = 0.0


class NetworkCallRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: str
    url: str
    kind: Literal["simple", "callback"]
    start: float
    end: float
    duration: float
    status_code: Optional[int] = None
    success: bool
    error: Optional[str] = None


class NetworkStats(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    average_duration: float = 0.0
