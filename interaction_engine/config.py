"""Engine configuration: file, environment and CLI layers."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError

ENV_ENVIRONMENT = "ENGINE_ENVIRONMENT"
ENV_STOP_ON_FAILURE = "ENGINE_STOP_ON_FAILURE"
ENV_WAIT_TIMEOUT = "ENGINE_WAIT_TIMEOUT_MS"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class TimeoutSettings(BaseModel):
    """Delays and timeouts in milliseconds."""

    wait_for_element: float = 5000
    poll_interval: float = 100
    scroll_settle: float = 200
    click_settle: float = 100
    click_event_gap: float = 10
    keystroke: float = 20
    focus_settle: float = 50


class EngineConfig(BaseModel):
    """Options recognized from the configuration store."""

    environment: str = "development"
    enabled_suites: list[str] = Field(default_factory=lambda: ["basicFormValidation", "userInteraction"])
    report_formats: list[str] = Field(default_factory=lambda: ["json", "junit", "html"])
    auto_testing: bool = True
    stop_on_failure: bool = True
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)


def _parse_bool(name: str, raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    environment = os.environ.get(ENV_ENVIRONMENT)
    if environment:
        overrides["environment"] = environment
    stop_on_failure = os.environ.get(ENV_STOP_ON_FAILURE)
    if stop_on_failure:
        overrides["stop_on_failure"] = _parse_bool(ENV_STOP_ON_FAILURE, stop_on_failure)
    wait_timeout = os.environ.get(ENV_WAIT_TIMEOUT)
    if wait_timeout:
        try:
            overrides["timeouts"] = {"wait_for_element": float(wait_timeout)}
        except ValueError as exc:
            raise ConfigError(f"{ENV_WAIT_TIMEOUT} must be a number, got {wait_timeout!r}") from exc
    return overrides


def _read_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file {path} does not exist")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            payload = json.loads(text)
        else:
            payload = yaml.safe_load(text) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Config file {path} could not be parsed: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Config file must deserialize into a mapping")
    return payload


def load_config(path: Optional[Path] = None, **cli_overrides: Any) -> EngineConfig:
    """
    Build the engine configuration with priority: CLI > environment > file > defaults.

    ``None`` CLI values are ignored so unset options fall through.
    """

    payload: dict[str, Any] = _read_file(path) if path is not None else {}

    for layer in (_env_overrides(), {k: v for k, v in cli_overrides.items() if v is not None}):
        for key, value in layer.items():
            if key == "timeouts" and isinstance(payload.get("timeouts"), dict):
                payload["timeouts"] = {**payload["timeouts"], **value}
            else:
                payload[key] = value

    try:
        return EngineConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid engine configuration: {exc}") from exc
