"""Performance summaries and report export for result trees."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence, Union
import csv
import io
import json
import xml.etree.ElementTree as ET

import structlog
from jinja2 import Environment, PackageLoader, select_autoescape
from pydantic_core import to_jsonable_python

from .errors import UnsupportedFormatError
from .models import (
    CaseResult,
    ExecutionStatus,
    NetworkStats,
    PerformanceMetrics,
    RunResult,
    SequenceResult,
    StepResult,
    SuiteResult,
)

LOGGER = structlog.get_logger("interaction_engine.reporting")

CSV_HEADER = ["Test Name", "Status", "Duration (ms)", "Errors", "Timestamp"]
EXPORT_FORMATS = ("json", "csv", "html", "junit")
EXTENSIONS = {"json": "json", "csv": "csv", "html": "html", "junit": "junit.xml"}

Leaf = Union[StepResult, CaseResult]


def _as_list(results: Union[RunResult, Iterable[RunResult]]) -> list[RunResult]:
    if isinstance(results, (SequenceResult, SuiteResult)):
        return [results]
    return list(results)


def result_title(result: RunResult) -> str:
    if isinstance(result, SequenceResult):
        return result.sequence_name
    return result.name


def leaves(result: RunResult) -> list[Leaf]:
    if isinstance(result, SequenceResult):
        return list(result.steps)
    return list(result.cases)


def all_leaves(results: Union[RunResult, Iterable[RunResult]]) -> list[Leaf]:
    return [leaf for result in _as_list(results) for leaf in leaves(result)]


def compute_performance(results: Union[RunResult, Iterable[RunResult]]) -> PerformanceMetrics:
    """Counts and durations over terminal leaf results; average is 0 with no leaves."""

    finished = [leaf for leaf in all_leaves(results) if leaf.is_terminal]
    completed = sum(1 for leaf in finished if leaf.status is ExecutionStatus.COMPLETED)
    durations = [leaf.duration for leaf in finished if leaf.duration is not None]
    total = sum(durations)
    return PerformanceMetrics(
        completed_count=completed,
        failed_count=len(finished) - completed,
        average_duration=total / len(durations) if durations else 0.0,
        total_duration=total,
    )


def _timestamp(leaf: Leaf) -> str:
    return leaf.started_at.isoformat() if leaf.started_at else ""


def _duration(value: Optional[float]) -> str:
    return "" if value is None else f"{value:g}"


class ResultAggregator:
    """Serializes result trees to the supported export formats."""

    def __init__(self) -> None:
        self._templates = Environment(
            loader=PackageLoader("interaction_engine", "templates"),
            autoescape=select_autoescape(["html", "xml", "j2"]),
        )

    def compute_performance(self, results: Union[RunResult, Iterable[RunResult]]) -> PerformanceMetrics:
        return compute_performance(results)

    def performance_report(
        self,
        results: Sequence[RunResult],
        network: Optional[NetworkStats] = None,
    ) -> dict[str, Any]:
        return {
            "results": list(results),
            "metrics": compute_performance(results),
            "network": network or NetworkStats(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def export(
        self,
        results: Union[RunResult, Iterable[RunResult]],
        fmt: str,
        *,
        network: Optional[NetworkStats] = None,
    ) -> str:
        normalized = fmt.lower() if isinstance(fmt, str) else fmt
        LOGGER.debug("report_export", format=fmt)
        match normalized:
            case "json":
                return self.to_json(results, network=network)
            case "csv":
                return self.to_csv(results)
            case "html":
                return self.to_html(results)
            case "junit":
                return self.to_junit(results)
            case _:
                raise UnsupportedFormatError(fmt)

    def to_json(self, results: Union[RunResult, Iterable[RunResult]], *, network: Optional[NetworkStats] = None) -> str:
        """Indented dump of the result trees, wrapped with network stats when given."""
        payload: Any = _as_list(results)
        if network is not None:
            payload = {"results": payload, "network": network}
        payload = to_jsonable_python(payload, serialize_unknown=True)
        return json.dumps(payload, indent=2)

    def to_csv(self, results: Union[RunResult, Iterable[RunResult]]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for leaf in all_leaves(results):
            writer.writerow(
                [
                    leaf.name,
                    leaf.status.value,
                    _duration(leaf.duration),
                    leaf.error or "",
                    _timestamp(leaf),
                ]
            )
        return buffer.getvalue()

    def to_html(self, results: Union[RunResult, Iterable[RunResult]]) -> str:
        items = _as_list(results)
        template = self._templates.get_template("report.html.j2")
        sections = [
            {
                "title": result_title(result),
                "kind": "Sequence" if isinstance(result, SequenceResult) else "Suite",
                "status": result.status.value,
                "duration": _duration(result.duration),
                "errors": [error.message for error in result.errors] if isinstance(result, SequenceResult) else [],
                "leaves": [
                    {
                        "name": leaf.name,
                        "status": leaf.status.value,
                        "duration": _duration(leaf.duration),
                        "error": leaf.error or "",
                    }
                    for leaf in leaves(result)
                ],
            }
            for result in items
        ]
        return template.render(
            generated_at=datetime.now(timezone.utc).isoformat(),
            metrics=compute_performance(items),
            sections=sections,
        )

    def to_junit(self, results: Union[RunResult, Iterable[RunResult]]) -> str:
        root = ET.Element("testsuites")
        for result in _as_list(results):
            cases = leaves(result)
            suite = ET.SubElement(
                root,
                "testsuite",
                attrib={
                    "name": result_title(result),
                    "tests": str(len(cases)),
                    "failures": str(len([c for c in cases if c.status is ExecutionStatus.FAILED])),
                    "time": str((result.duration or 0) / 1000),
                },
            )
            for leaf in cases:
                case = ET.SubElement(
                    suite,
                    "testcase",
                    attrib={
                        "classname": result_title(result),
                        "name": leaf.name,
                        "time": str((leaf.duration or 0) / 1000),
                    },
                )
                if leaf.status is ExecutionStatus.FAILED:
                    failure = ET.SubElement(
                        case,
                        "failure",
                        attrib={"message": leaf.error or "Failed"},
                    )
                    failure.text = leaf.traceback or leaf.error or ""
        return ET.tostring(root, encoding="utf-8", xml_declaration=True).decode("utf-8")
