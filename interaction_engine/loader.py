"""Sequence and suite loading from descriptor files."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional
import json

import yaml
from pydantic import Field, ValidationError, model_validator

from .drivers import DriverRegistry
from .errors import ConfigError, EngineError
from .models import DescriptorModel, ExecutionStatus, InteractionSequence, TestCase, TestSuite
from .runner import SequenceRunner


class CaseDescriptor(DescriptorModel):
    id: str
    name: str
    priority: str = "medium"
    type: str = "custom"
    driver: Optional[str] = None
    steps: Optional[list[Any]] = None

    @model_validator(mode="after")
    def _require_body(self) -> "CaseDescriptor":
        if not self.driver and self.steps is None:
            raise ValueError(f"test case {self.id} needs a driver reference or a list of steps")
        return self


class SuiteDescriptor(DescriptorModel):
    name: str
    description: str = ""
    cases: list[CaseDescriptor] = Field(default_factory=list)


class SuiteFile(DescriptorModel):
    suites: dict[str, SuiteDescriptor] = Field(default_factory=dict)


def _read_mapping(path: Path, kind: str) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"{kind} file {path} does not exist")
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"{kind} file {path} could not be parsed: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{kind} file {path} must contain a mapping")
    return data


def load_sequence(path: Path) -> InteractionSequence:
    """Load an interaction sequence; steps are validated when they run."""

    data = _read_mapping(path, "Sequence")
    data.setdefault("name", path.stem)
    try:
        return InteractionSequence.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Sequence file {path} is invalid: {exc}") from exc


def _sequence_case(case: CaseDescriptor, runner: SequenceRunner):
    async def execute(target: Any) -> Any:
        result = await runner.run(InteractionSequence(name=case.name, steps=list(case.steps or [])))
        if result.status is ExecutionStatus.FAILED:
            failed = next((step for step in result.steps if step.status is ExecutionStatus.FAILED), None)
            reason = failed.error if failed else "; ".join(error.message for error in result.errors)
            raise EngineError(f"Sequence {case.name} failed: {reason}")
        return result

    return execute


def load_suites(
    path: Path,
    *,
    runner: Optional[SequenceRunner] = None,
    drivers: Optional[DriverRegistry] = None,
) -> dict[str, TestSuite]:
    """
    Load suites keyed by name.

    Cases either reference a ``module:function`` driver, resolved relative to
    the file's directory and called with the run target, or list sequence
    steps that run through ``runner``.
    """

    try:
        spec = SuiteFile.model_validate(_read_mapping(path, "Suite"))
    except ValidationError as exc:
        raise ConfigError(f"Suite file {path} is invalid: {exc}") from exc

    registry = drivers or DriverRegistry(path.parent.resolve())
    suites: dict[str, TestSuite] = {}
    for key, suite in spec.suites.items():
        cases = []
        for case in suite.cases:
            if case.driver:
                execute = registry.resolve(case.driver)
            elif runner is None:
                raise ConfigError(f"Test case {case.id} lists steps but no sequence runner was provided")
            else:
                execute = _sequence_case(case, runner)
            cases.append(TestCase(id=case.id, name=case.name, execute=execute, priority=case.priority, type=case.type))
        suites[key] = TestSuite(name=suite.name, description=suite.description, cases=tuple(cases))
    return suites
