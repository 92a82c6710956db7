"""Sequence execution engine."""

from __future__ import annotations

from typing import Any, Optional, Protocol
import traceback

import structlog

from .executor import InteractionStepExecutor
from .models import (
    BaseStep,
    ErrorDetail,
    ExecutionStatus,
    InteractionSequence,
    SequenceResult,
    StepResult,
)

LOGGER = structlog.get_logger("interaction_engine.runner")


class SequenceObserver(Protocol):
    def start_sequence(self, total_steps: int, sequence_name: str) -> None: ...

    def report_step_result(self, result: StepResult) -> None: ...

    def finish_sequence(self, result: SequenceResult) -> None: ...


def _wait_after(descriptor: Any) -> Optional[float]:
    if isinstance(descriptor, BaseStep):
        return descriptor.wait_after
    if isinstance(descriptor, dict):
        raw = descriptor.get("wait_after", descriptor.get("waitAfter"))
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return float(raw)
    return None


class SequenceRunner:
    """Executes interaction sequences step by step in declared order."""

    def __init__(
        self,
        executor: InteractionStepExecutor,
        *,
        stop_on_failure: bool = True,
        observer: Optional[SequenceObserver] = None,
    ) -> None:
        self._executor = executor
        self._clock = executor.clock
        self.stop_on_failure = stop_on_failure
        self.observer = observer

    async def run(self, sequence: InteractionSequence | dict[str, Any]) -> SequenceResult:
        if not isinstance(sequence, InteractionSequence):
            sequence = InteractionSequence.model_validate(sequence)

        stop_on_failure = self.stop_on_failure if sequence.stop_on_failure is None else sequence.stop_on_failure
        logger = LOGGER.bind(sequence=sequence.name)
        result = SequenceResult(sequence_name=sequence.name)
        result.begin(self._clock.now())
        logger.info("sequence_started", steps=len(sequence.steps), stop_on_failure=stop_on_failure)
        if self.observer:
            self.observer.start_sequence(total_steps=len(sequence.steps), sequence_name=sequence.name)

        aborted = False
        try:
            for index, descriptor in enumerate(sequence.steps):
                step_result = await self._executor.execute(descriptor, index)
                result.steps.append(step_result)
                if self.observer:
                    self.observer.report_step_result(step_result)

                if step_result.status is ExecutionStatus.FAILED and stop_on_failure:
                    aborted = True
                    logger.warning("sequence_aborted", step=step_result.name, index=index, error=step_result.error)
                    break

                delay = _wait_after(descriptor)
                if delay:
                    await self._clock.sleep(delay)
        except Exception as exc:
            aborted = True
            result.errors.append(ErrorDetail(message=str(exc), traceback=traceback.format_exc()))
            logger.exception("sequence_crashed")

        result.finish(ExecutionStatus.FAILED if aborted else ExecutionStatus.COMPLETED, self._clock.now())
        logger.info(
            "sequence_finished",
            status=result.status.value,
            duration_ms=result.duration,
            failed_steps=sum(1 for step in result.steps if step.status is ExecutionStatus.FAILED),
        )
        if self.observer:
            self.observer.finish_sequence(result)
        return result
