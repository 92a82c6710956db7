from __future__ import annotations

from pathlib import Path
import json

import pytest
import yaml
from typer.testing import CliRunner

from interaction_engine.main import app

from conftest import SIGNUP_PAGE

runner = CliRunner()


def _write(path: Path, payload: dict) -> Path:
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    return path


@pytest.fixture
def page_file(tmp_path: Path) -> Path:
    return _write(tmp_path / "page.yaml", SIGNUP_PAGE)


def test_run_sequence_passes_and_writes_reports(tmp_path: Path, page_file: Path) -> None:
    sequence = _write(
        tmp_path / "welcome.yaml",
        {
            "name": "Welcome check",
            "steps": [
                {"type": "validate", "selector": "#title", "validation": {"type": "text", "contains": "account"}},
                {"type": "wait", "duration": 1},
                {"type": "custom", "name": "Read URL", "driver": "cli_probe_driver:page_url"},
            ],
        },
    )
    (tmp_path / "cli_probe_driver.py").write_text(
        "def page_url(adapter):\n    return adapter.url\n", encoding="utf-8"
    )
    reports = tmp_path / "reports"

    result = runner.invoke(
        app,
        [
            "run-sequence",
            "--page", str(page_file),
            "--sequence", str(sequence),
            "--output", "plain",
            "--output-dir", str(reports),
            "-r", "json",
            "-r", "junit",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "ALL PASSED" in result.output
    assert sorted(path.name for path in reports.iterdir()) == ["welcome-check.json", "welcome-check.junit.xml"]
    payload = json.loads((reports / "welcome-check.json").read_text(encoding="utf-8"))
    assert payload["results"][0]["steps"][2]["output"] == "http://localhost:3000/signup"


def test_failing_sequence_exits_with_one(tmp_path: Path, page_file: Path) -> None:
    sequence = _write(
        tmp_path / "broken.yaml",
        {"steps": [{"type": "validate", "selector": "#banner", "validation": {"type": "visible"}}]},
    )

    result = runner.invoke(
        app, ["run-sequence", "--page", str(page_file), "--sequence", str(sequence), "--output", "plain"]
    )

    assert result.exit_code == 1
    assert "FAILURES DETECTED" in result.output


def test_unknown_report_format_is_a_usage_error(tmp_path: Path, page_file: Path) -> None:
    sequence = _write(tmp_path / "noop.yaml", {"steps": []})

    result = runner.invoke(
        app,
        ["run-sequence", "--page", str(page_file), "--sequence", str(sequence), "-r", "pdf", "--output", "plain"],
    )

    assert result.exit_code == 2


def test_validate_form_reports_invalid_fields(page_file: Path) -> None:
    result = runner.invoke(app, ["validate-form", "--page", str(page_file), "--form", "#signup", "--output", "plain"])

    assert result.exit_code == 1
    assert "#signup: ✗ INVALID" in result.output
    assert "email: This field is required" in result.output


def test_run_suite_with_builtin_suite(page_file: Path) -> None:
    result = runner.invoke(
        app, ["run-suite", "--page", str(page_file), "-s", "basicFormValidation", "--output", "plain"]
    )

    assert result.exit_code == 0, result.output
    assert "Required Fields" in result.output
    assert "Email Validation" in result.output


def test_run_suite_unknown_key_exits_with_two(page_file: Path) -> None:
    result = runner.invoke(app, ["run-suite", "--page", str(page_file), "-s", "ghost", "--output", "plain"])

    assert result.exit_code == 2
    assert "Test suite not found: ghost" in result.output


def test_list_suites_includes_file_suites(tmp_path: Path) -> None:
    suites = _write(
        tmp_path / "suites.yaml",
        {
            "suites": {
                "smoke": {
                    "name": "Smoke",
                    "cases": [{"id": "title", "name": "Title shown", "priority": "high", "steps": []}],
                }
            }
        },
    )

    result = runner.invoke(app, ["list-suites", "--suites-file", str(suites)])

    assert result.exit_code == 0, result.output
    assert "basicFormValidation: Basic Form Validation" in result.output
    assert "userInteraction: User Interaction Testing" in result.output
    assert "  - title (high): Title shown" in result.output
