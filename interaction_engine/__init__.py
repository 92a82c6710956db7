"""Browser-interaction test orchestration engine."""

from .adapter import ElementTreeAdapter, Geometry
from .config import EngineConfig, TimeoutSettings, load_config
from .engine import TestingEngine
from .errors import (
    ConfigError,
    ElementNotFoundError,
    EngineError,
    NotFoundError,
    StateTransitionError,
    UnknownStepType,
    UnknownValidationType,
    UnsupportedFormatError,
    ValidationMismatchError,
)
from .executor import InteractionStepExecutor
from .headless import HeadlessPage, load_page
from .models import ExecutionStatus, InteractionSequence, TestCase, TestSuite
from .network import NetworkCallRecorder
from .reporting import ResultAggregator, compute_performance
from .rules import ValidationRuleSet
from .runner import SequenceRunner
from .suites import SuiteRegistry, TestSuiteRunner
from .validation import FieldValidator, FormValidationCoordinator

__all__ = [
    "ConfigError",
    "ElementNotFoundError",
    "ElementTreeAdapter",
    "EngineConfig",
    "EngineError",
    "ExecutionStatus",
    "FieldValidator",
    "FormValidationCoordinator",
    "Geometry",
    "HeadlessPage",
    "InteractionSequence",
    "InteractionStepExecutor",
    "NetworkCallRecorder",
    "NotFoundError",
    "ResultAggregator",
    "SequenceRunner",
    "StateTransitionError",
    "SuiteRegistry",
    "TestCase",
    "TestSuite",
    "TestSuiteRunner",
    "TestingEngine",
    "TimeoutSettings",
    "UnknownStepType",
    "UnknownValidationType",
    "UnsupportedFormatError",
    "ValidationMismatchError",
    "ValidationRuleSet",
    "compute_performance",
    "load_config",
    "load_page",
]
