"""Error taxonomy raised by the interaction engine."""

from __future__ import annotations

from typing import Any


class EngineError(RuntimeError):
    """Base class for every error the engine raises on purpose."""


class ConfigError(EngineError):
    """Raised when a configuration or descriptor file cannot be used."""


class NotFoundError(EngineError):
    """Raised when a target, suite or field cannot be resolved."""

    def __init__(self, message: str, *, target: str | None = None) -> None:
        super().__init__(message)
        self.target = target


class ElementNotFoundError(NotFoundError):
    """Raised when an element never became available (wait timeout, validate target)."""

    def __init__(self, message: str, *, selector: str, timeout: float | None = None) -> None:
        super().__init__(message, target=selector)
        self.selector = selector
        self.timeout = timeout


class UnknownStepType(EngineError):
    """Raised when a step descriptor uses an unrecognized ``type``."""

    def __init__(self, kind: Any) -> None:
        super().__init__(f"Unknown step type: {kind}")
        self.kind = kind


class UnknownValidationType(EngineError):
    """Raised when a validation descriptor or rule id is not recognized."""

    def __init__(self, kind: Any) -> None:
        super().__init__(f"Unknown validation type: {kind}")
        self.kind = kind


class ValidationMismatchError(AssertionError):
    """Assertion failure carrying the expected and actual values."""

    def __init__(self, message: str, *, expected: Any = None, actual: Any = None) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class UnsupportedFormatError(EngineError):
    """Raised when a report export format is not recognized."""

    def __init__(self, fmt: str) -> None:
        super().__init__(f"Unsupported export format: {fmt}")
        self.format = fmt


class StateTransitionError(EngineError):
    """Raised when a result is moved to a status its current status cannot reach."""

    def __init__(self, current: Any, target: Any) -> None:
        super().__init__(f"Illegal status transition {current} -> {target}")
        self.current = current
        self.target = target
