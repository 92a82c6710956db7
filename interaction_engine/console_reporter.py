"""Console reporter that adapts to the terminal it runs in."""

from __future__ import annotations

import json
import os
import sys
from typing import Optional

from pydantic_core import to_jsonable_python
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeRemainingColumn
from rich.table import Table
from rich.text import Text

from .models import (
    CaseResult,
    ExecutionStatus,
    FormValidationResult,
    RunResult,
    SequenceResult,
    StepResult,
    SuiteResult,
)
from .output_config import OutputFormat
from .reporting import compute_performance

CI_MARKERS = ("CI", "JENKINS_HOME", "GITLAB_CI", "TRAVIS", "GITHUB_ACTIONS")


class ConsoleReporter:
    """
    Live progress for sequences and suites.

    Automatically detects:
    - Interactive terminals (rich table with a progress bar)
    - CI/CD environments and pipes (plain text lines)

    In JSON mode progress is suppressed and each finished result is printed
    as a JSON document.
    """

    def __init__(self, output_format: OutputFormat = OutputFormat.AUTO):
        self.output_format = output_format
        self._detect_environment()
        self.console: Optional[Console] = Console() if self.use_rich else None
        self.progress: Optional[Progress] = None
        self.progress_task: Optional[TaskID] = None
        self.live: Optional[Live] = None
        self.results_table: Optional[Table] = None
        self._position = 0
        self._depth = 0

    def _detect_environment(self) -> None:
        if self.output_format == OutputFormat.RICH:
            self.use_rich = True
        elif self.output_format in (OutputFormat.PLAIN, OutputFormat.JSON):
            self.use_rich = False
        else:
            is_terminal = sys.stdout.isatty()
            is_ci = any(marker in os.environ for marker in CI_MARKERS)
            self.use_rich = is_terminal and not is_ci

    @property
    def quiet(self) -> bool:
        return self.output_format == OutputFormat.JSON

    # progress -------------------------------------------------------------

    def _start(self, total: int, title: str, first_column: str) -> None:
        # nested runs (a sequence inside a suite case) report through the outer one
        self._depth += 1
        if self._depth > 1:
            return
        self._position = 0
        if self.quiet:
            return
        if self.use_rich:
            self.results_table = Table(show_header=True, header_style="bold cyan")
            self.results_table.add_column("#", style="dim", width=4)
            self.results_table.add_column(first_column, width=40)
            self.results_table.add_column("Status", width=10)
            self.results_table.add_column("Duration", justify="right", width=12)
            self.progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                TimeRemainingColumn(),
                console=self.console,
            )
            self.progress_task = self.progress.add_task(f"[cyan]Running {title}", total=total)
            self.live = Live(Group(self.progress, self.results_table), console=self.console, refresh_per_second=4)
            self.live.start()
        else:
            print(f"Running: {title}")
            print(f"Total: {total}")
            print("-" * 80)

    def _report(self, position: int, label: str, status: ExecutionStatus, duration: Optional[float], error: Optional[str]) -> None:
        if self.quiet or self._depth > 1:
            return
        passed = status is ExecutionStatus.COMPLETED
        duration_label = f"{duration or 0:.0f}ms"
        if self.use_rich and self.results_table is not None:
            status_text = Text("✓ PASS" if passed else "✗ FAIL", style="green" if passed else "red")
            self.results_table.add_row(str(position), label, status_text, duration_label)
            if error and not passed:
                self.results_table.add_row("", Text(f"Error: {error}", style="red"), "", "")
            if self.progress is not None and self.progress_task is not None:
                self.progress.update(self.progress_task, advance=1)
        else:
            print(f"[{position}] {label} ... {'✓ PASS' if passed else '✗ FAIL'} ({duration_label})")
            if error and not passed:
                print(f"  Error: {error}")

    def _finish(self, result: RunResult) -> None:
        self._depth = max(self._depth - 1, 0)
        if self._depth:
            return
        if self.quiet:
            print(json.dumps(to_jsonable_python(result, serialize_unknown=True), indent=2))
            return
        metrics = compute_performance(result)
        total = metrics.completed_count + metrics.failed_count
        failed = metrics.failed_count
        ok = result.status is ExecutionStatus.COMPLETED and failed == 0
        duration = result.duration or 0
        if self.use_rich and self.console is not None:
            if self.live:
                self.live.stop()
                self.live = None
            summary = Text()
            summary.append(f"Total: {total}  ", style="bold")
            summary.append(f"Passed: {metrics.completed_count}  ", style="bold green")
            summary.append(f"Failed: {failed}  ", style="bold red" if failed else "bold green")
            summary.append(f"Duration: {duration:.0f}ms", style="bold cyan")
            status = "✓ ALL PASSED" if ok else "✗ FAILURES DETECTED"
            self.console.print()
            self.console.print(
                Panel(summary, title=Text(status, style="bold green" if ok else "bold red"), border_style="green" if ok else "red")
            )
        else:
            print("-" * 80)
            print(f"Total: {total} | Passed: {metrics.completed_count} | Failed: {failed} | Duration: {duration:.0f}ms")
            print("✓ ALL PASSED" if ok else "✗ FAILURES DETECTED")

    # SequenceObserver -----------------------------------------------------

    def start_sequence(self, total_steps: int, sequence_name: str) -> None:
        self._start(total_steps, sequence_name, "Step")

    def report_step_result(self, result: StepResult) -> None:
        self._report(result.index + 1, f"{result.name} ({result.type})", result.status, result.duration, result.error)

    def finish_sequence(self, result: SequenceResult) -> None:
        self._finish(result)

    # SuiteObserver --------------------------------------------------------

    def start_suite(self, total_cases: int, suite_name: str) -> None:
        self._start(total_cases, suite_name, "Case")

    def report_case_result(self, result: CaseResult) -> None:
        self._position += 1
        self._report(self._position, result.name, result.status, result.duration, result.error)

    def finish_suite(self, result: SuiteResult) -> None:
        self._finish(result)

    # one-off output -------------------------------------------------------

    def print_form_result(self, form: str, result: FormValidationResult) -> None:
        if self.quiet:
            print(json.dumps(to_jsonable_python(result, serialize_unknown=True), indent=2))
            return
        verdict = "✓ VALID" if result.is_valid else "✗ INVALID"
        if self.use_rich and self.console is not None:
            table = Table(title=f"{form}: {verdict}", show_header=True, header_style="bold cyan")
            table.add_column("Field")
            table.add_column("Valid")
            table.add_column("Message")
            for name, field in result.fields.items():
                table.add_row(name, "yes" if field.is_valid else "no", field.message or ", ".join(field.warnings))
            self.console.print(table)
        else:
            print(f"{form}: {verdict}")
            for name, field in result.fields.items():
                print(f"  {name}: {'ok' if field.is_valid else field.message}")
            for warning in result.warnings:
                print(f"  warning: {warning}")

    def print_error(self, message: str) -> None:
        if self.use_rich and self.console is not None:
            self.console.print(f"[bold red]Error:[/] {message}")
        else:
            print(f"Error: {message}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        if self.quiet:
            return
        if self.use_rich and self.console is not None:
            self.console.print(f"[cyan]{message}[/]")
        else:
            print(message)
