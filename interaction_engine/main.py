"""CLI entrypoint for running interaction sequences and suites against page snapshots."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Any, Optional

import typer

from .config import EngineConfig, load_config
from .console_reporter import ConsoleReporter
from .drivers import DriverRegistry
from .engine import TestingEngine
from .errors import ConfigError, EngineError
from .headless import HeadlessPage, load_page
from .loader import load_sequence, load_suites
from .logging_utils import configure_logging
from .models import ExecutionStatus, RunResult
from .output_config import get_log_format, get_output_format
from .reporting import EXPORT_FORMATS, compute_performance

app = typer.Typer(help="Run scripted browser-interaction tests against headless page snapshots.")

PAGE_OPTION = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Page snapshot (YAML/JSON).")
CONFIG_OPTION = typer.Option(None, exists=True, readable=True, dir_okay=False, help="Engine configuration file.")
OUTPUT_DIR_OPTION = typer.Option(None, help="Directory receiving <name>.<ext> reports.")
REPORT_FORMAT_OPTION = typer.Option(
    None,
    "--report-format",
    "-r",
    help="Report format(s): json, csv, html, junit. Defaults to the configured formats.",
)
OUTPUT_OPTION = typer.Option(None, "--output", help="Console output: auto, rich, plain or json.")
LOG_LEVEL_OPTION = typer.Option("WARNING", help="Log level for structured engine events.")


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9_-]+", "-", value.lower()).strip("-") or "results"


def _setup(output: Optional[str], log_level: str) -> ConsoleReporter:
    output_format = get_output_format(output)
    configure_logging(log_level, get_log_format(output_format))
    return ConsoleReporter(output_format)


def _config(path: Optional[Path], stop_on_failure: Optional[bool] = None) -> EngineConfig:
    try:
        return load_config(path, stop_on_failure=stop_on_failure)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _page(path: Path) -> HeadlessPage:
    try:
        return load_page(path)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _formats(requested: Optional[list[str]], config: EngineConfig) -> list[str]:
    formats = [fmt.lower() for fmt in (requested or config.report_formats)]
    unknown = [fmt for fmt in formats if fmt not in EXPORT_FORMATS]
    if unknown:
        raise typer.BadParameter(f"Unsupported report format(s): {', '.join(unknown)}")
    return formats


def _failed(result: RunResult) -> bool:
    return result.status is ExecutionStatus.FAILED or compute_performance(result).failed_count > 0


def _finish(
    engine: TestingEngine,
    reporter: ConsoleReporter,
    result: RunResult,
    name: str,
    output_dir: Optional[Path],
    formats: list[str],
) -> None:
    if output_dir is not None:
        for path in engine.write_reports(output_dir, _slug(name), formats):
            reporter.print_info(f"Report written -> {path}")
    if _failed(result):
        raise typer.Exit(code=1)


async def _closing(engine: TestingEngine, coroutine: Any) -> Any:
    async with engine:
        return await coroutine


def _run(engine: TestingEngine, coroutine: Any, reporter: ConsoleReporter) -> Any:
    try:
        return asyncio.run(_closing(engine, coroutine))
    except EngineError as exc:
        reporter.print_error(str(exc))
        raise typer.Exit(code=2) from exc


@app.command("run-sequence")
def run_sequence(
    page: Path = PAGE_OPTION,
    sequence: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Sequence descriptor."),
    config: Optional[Path] = CONFIG_OPTION,
    stop_on_failure: Optional[bool] = typer.Option(
        None,
        "--stop-on-failure/--continue-on-failure",
        help="Override the configured failure policy for sequences without their own.",
    ),
    output_dir: Optional[Path] = OUTPUT_DIR_OPTION,
    report_format: Optional[list[str]] = REPORT_FORMAT_OPTION,
    output: Optional[str] = OUTPUT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Execute one interaction sequence and report every step."""

    reporter = _setup(output, log_level)
    engine_config = _config(config, stop_on_failure)
    formats = _formats(report_format, engine_config)
    try:
        descriptor = load_sequence(sequence)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc

    engine = TestingEngine(
        _page(page),
        config=engine_config,
        observer=reporter,
        drivers=DriverRegistry(sequence.parent.resolve()),
    )
    result = _run(engine, engine.run_sequence(descriptor), reporter)
    _finish(engine, reporter, result, descriptor.name, output_dir, formats)


@app.command("validate-form")
def validate_form(
    page: Path = PAGE_OPTION,
    form: str = typer.Option("form", help="Selector of the form to validate."),
    output: Optional[str] = OUTPUT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Validate every field of a form as currently filled in the snapshot."""

    reporter = _setup(output, log_level)
    engine = TestingEngine(_page(page))
    result = _run(engine, engine.validate_form(form), reporter)
    reporter.print_form_result(form, result)
    if not result.is_valid:
        raise typer.Exit(code=1)


@app.command("run-suite")
def run_suite(
    page: Path = PAGE_OPTION,
    suite: list[str] = typer.Option(..., "--suite", "-s", help="Suite key(s) to run, in order."),
    target: Optional[str] = typer.Option(None, help="Selector handed to every test case."),
    suites_file: Optional[Path] = typer.Option(
        None, exists=True, readable=True, dir_okay=False, help="Additional suites (YAML/JSON)."
    ),
    config: Optional[Path] = CONFIG_OPTION,
    output_dir: Optional[Path] = OUTPUT_DIR_OPTION,
    report_format: Optional[list[str]] = REPORT_FORMAT_OPTION,
    output: Optional[str] = OUTPUT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Run registered test suites; case failures never stop a suite."""

    reporter = _setup(output, log_level)
    engine_config = _config(config)
    formats = _formats(report_format, engine_config)
    engine = TestingEngine(_page(page), config=engine_config, observer=reporter)
    if suites_file is not None:
        try:
            engine.register_suites(load_suites(suites_file, runner=engine.runner))
        except ConfigError as exc:
            raise typer.BadParameter(str(exc)) from exc

    results = _run(engine, engine.run_suites(suite, target), reporter)
    if output_dir is not None:
        for path in engine.write_reports(output_dir, _slug("-".join(suite)), formats):
            reporter.print_info(f"Report written -> {path}")
    if any(_failed(result) for result in results):
        raise typer.Exit(code=1)


@app.command("list-suites")
def list_suites(
    suites_file: Optional[Path] = typer.Option(
        None, exists=True, readable=True, dir_okay=False, help="Additional suites (YAML/JSON)."
    ),
) -> None:
    """List built-in and file-defined suites with their cases."""

    engine = TestingEngine(HeadlessPage())
    if suites_file is not None:
        try:
            engine.register_suites(load_suites(suites_file, runner=engine.runner))
        except ConfigError as exc:
            raise typer.BadParameter(str(exc)) from exc
    for key, definition in engine.suites.items():
        typer.secho(f"{key}: {definition.name}", fg=typer.colors.CYAN)
        for case in definition.cases:
            typer.echo(f"  - {case.id} ({case.priority}): {case.name}")


def run() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    run()
