from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from interaction_engine.config import EngineConfig, load_config
from interaction_engine.errors import ConfigError
from interaction_engine.output_config import OutputFormat, get_log_format, get_output_format


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("ENGINE_ENVIRONMENT", "ENGINE_STOP_ON_FAILURE", "ENGINE_WAIT_TIMEOUT_MS", "CONSOLE_OUTPUT_FORMAT"):
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path: Path, payload: dict) -> Path:
    path = tmp_path / "engine.yaml"
    path.write_text(yaml.safe_dump(payload), encoding="utf-8")
    return path


def test_defaults() -> None:
    config = load_config()

    assert config == EngineConfig()
    assert config.enabled_suites == ["basicFormValidation", "userInteraction"]
    assert config.report_formats == ["json", "junit", "html"]
    assert config.stop_on_failure is True
    assert config.timeouts.wait_for_element == 5000


def test_file_values_override_defaults(tmp_path: Path) -> None:
    path = _write(tmp_path, {"environment": "staging", "timeouts": {"poll_interval": 50}})

    config = load_config(path)

    assert config.environment == "staging"
    assert config.timeouts.poll_interval == 50
    assert config.timeouts.wait_for_element == 5000


def test_environment_beats_file_and_cli_beats_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(tmp_path, {"stop_on_failure": True, "environment": "staging", "timeouts": {"poll_interval": 50}})
    monkeypatch.setenv("ENGINE_STOP_ON_FAILURE", "false")
    monkeypatch.setenv("ENGINE_ENVIRONMENT", "production")
    monkeypatch.setenv("ENGINE_WAIT_TIMEOUT_MS", "1500")

    from_env = load_config(path)
    from_cli = load_config(path, stop_on_failure=True, environment=None)

    assert from_env.stop_on_failure is False
    assert from_env.environment == "production"
    assert from_env.timeouts.wait_for_element == 1500
    assert from_env.timeouts.poll_interval == 50
    assert from_cli.stop_on_failure is True
    assert from_cli.environment == "production"


@pytest.mark.parametrize(
    ("name", "value"),
    [("ENGINE_STOP_ON_FAILURE", "sometimes"), ("ENGINE_WAIT_TIMEOUT_MS", "soon")],
)
def test_malformed_environment_values(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigError, match=name):
        load_config()


def test_unusable_files(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="could not be parsed"):
        load_config(broken)
    with pytest.raises(ConfigError, match="mapping"):
        load_config(listing)
    with pytest.raises(ConfigError, match="does not exist"):
        load_config(tmp_path / "absent.yaml")


def test_invalid_field_types(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Invalid engine configuration"):
        load_config(_write(tmp_path, {"timeouts": {"keystroke": "fast"}}))


def test_output_format_priority(monkeypatch: pytest.MonkeyPatch) -> None:
    assert get_output_format() is OutputFormat.AUTO
    monkeypatch.setenv("CONSOLE_OUTPUT_FORMAT", "plain")
    assert get_output_format() is OutputFormat.PLAIN
    assert get_output_format("JSON") is OutputFormat.JSON
    assert get_output_format("sparkly") is OutputFormat.PLAIN


def test_log_format_follows_output_format() -> None:
    assert get_log_format(OutputFormat.JSON) == "json"
    assert get_log_format(OutputFormat.PLAIN) == "plain"
    assert get_log_format(OutputFormat.RICH) == "console"
    assert get_log_format(OutputFormat.AUTO) == "console"
