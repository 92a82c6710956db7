"""Execution of single interaction steps against an element-tree adapter."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union
import inspect
import traceback

import structlog

from .adapter import ElementTreeAdapter
from .config import TimeoutSettings
from .drivers import DriverRegistry
from .errors import (
    ElementNotFoundError,
    NotFoundError,
    UnknownStepType,
    UnknownValidationType,
    ValidationMismatchError,
)
from .models import (
    AttributeValidation,
    ClickOptions,
    ClickStep,
    Coordinates,
    CustomStep,
    ExecutionStatus,
    ExistsValidation,
    InputStep,
    ScreenshotStep,
    ScrollOptions,
    ScrollStep,
    StepResult,
    TextValidation,
    Validation,
    ValidateStep,
    ValueValidation,
    VisibleValidation,
    WaitForElementStep,
    WaitStep,
    describe_step,
    parse_step,
)
from .timing import Clock, MonotonicClock

LOGGER = structlog.get_logger("interaction_engine.executor")

CLICK_EVENTS = ("mousedown", "mouseup", "click")

ScreenshotCapture = Callable[[dict[str, Any]], Union[Any, Awaitable[Any]]]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class InteractionStepExecutor:
    """Runs one step through ``pending -> running -> completed|failed``."""

    def __init__(
        self,
        adapter: ElementTreeAdapter,
        *,
        clock: Optional[Clock] = None,
        timeouts: Optional[TimeoutSettings] = None,
        capture: Optional[ScreenshotCapture] = None,
        drivers: Optional[DriverRegistry] = None,
    ) -> None:
        self.adapter = adapter
        self.clock = clock or MonotonicClock()
        self.timeouts = timeouts or TimeoutSettings()
        self._capture = capture
        self._drivers = drivers or DriverRegistry()

    async def execute(self, descriptor: Any, index: int) -> StepResult:
        name, kind = describe_step(descriptor, index)
        result = StepResult(index=index, name=name, type=kind)
        logger = LOGGER.bind(step=name, index=index, type=kind)
        result.begin(self.clock.now())

        try:
            step = parse_step(descriptor)
            result.output = await self._dispatch(step)
        except Exception as exc:
            result.error = str(exc)
            result.traceback = traceback.format_exc()
            result.finish(ExecutionStatus.FAILED, self.clock.now())
            logger.warning("step_failed", error=result.error, duration_ms=result.duration)
        else:
            result.finish(ExecutionStatus.COMPLETED, self.clock.now())
            logger.debug("step_completed", duration_ms=result.duration)
        return result

    async def _dispatch(self, step: Any) -> Any:
        match step:
            case ClickStep():
                await self.click(step.selector, step.options)
            case InputStep():
                await self.type_text(step.selector, step.value)
            case ScrollStep():
                await self.scroll(step.target, step.options)
            case WaitStep():
                await self.clock.sleep(step.duration)
            case WaitForElementStep():
                await self.wait_for_element(step.selector, step.timeout)
            case ScreenshotStep():
                return await self.screenshot(step.options)
            case ValidateStep():
                await self.validate(step.selector, step.validation)
            case CustomStep():
                return await self.run_custom(step)
            case _:
                raise UnknownStepType(getattr(step, "type", type(step).__name__))
        return None

    async def _require(self, selector: str) -> Any:
        element = await self.adapter.query(selector)
        if element is None:
            raise NotFoundError(f"Element not found: {selector}", target=selector)
        return element

    async def click(self, selector: str, options: Optional[ClickOptions] = None) -> None:
        options = options or ClickOptions()
        element = await self._require(selector)

        if options.scroll_into_view:
            await self.adapter.scroll_into_view(element, behavior="smooth", block="center")
            await self.clock.sleep(self.timeouts.click_settle)

        x, y = (await self.adapter.geometry(element)).center
        for event in CLICK_EVENTS:
            await self.adapter.dispatch(element, event, client_x=x, client_y=y, bubbles=True, cancelable=True)
            await self.clock.sleep(self.timeouts.click_event_gap)

    async def type_text(self, selector: str, value: str) -> None:
        element = await self._require(selector)
        await self.fill(element, value)

    async def fill(self, element: Any, value: str) -> None:
        """Focus, clear, then type ``value`` one character at a time."""

        adapter = self.adapter
        await adapter.dispatch(element, "focus")
        await self.clock.sleep(self.timeouts.focus_settle)

        await adapter.write_value(element, "")
        await self.clock.sleep(self.timeouts.focus_settle)

        for char in value:
            await adapter.write_value(element, await adapter.read_value(element) + char)
            await adapter.dispatch(element, "input", bubbles=True, data=char)
            await adapter.dispatch(element, "keyup", bubbles=True, key=char)
            await self.clock.sleep(self.timeouts.keystroke)

        await adapter.dispatch(element, "change", bubbles=True)
        await adapter.dispatch(element, "blur")
        await self.clock.sleep(self.timeouts.focus_settle)

    async def scroll(self, target: Union[str, Coordinates], options: Optional[ScrollOptions] = None) -> None:
        options = options or ScrollOptions()
        behavior = "smooth" if options.smooth else "auto"

        if isinstance(target, str):
            element = await self.adapter.query(target)
            if element is not None:
                await self.adapter.scroll_into_view(element, behavior=behavior, block=options.block)
            else:
                LOGGER.warning("scroll_target_missing", selector=target)
        else:
            await self.adapter.scroll_to(target.x, target.y, behavior=behavior)

        settle = options.settle if options.settle is not None else self.timeouts.scroll_settle
        await self.clock.sleep(settle)

    async def wait_for_element(self, selector: str, timeout: Optional[float] = None) -> Any:
        """Poll until ``selector`` is present and visible, or raise once ``timeout`` ms elapse."""

        limit = self.timeouts.wait_for_element if timeout is None else timeout
        started = self.clock.now()
        while self.clock.now() - started < limit:
            element = await self.adapter.query(selector)
            if element is not None and await self.adapter.is_visible(element):
                return element
            await self.clock.sleep(self.timeouts.poll_interval)

        raise ElementNotFoundError(
            f"Element not found within {limit:g}ms: {selector}",
            selector=selector,
            timeout=limit,
        )

    async def screenshot(self, options: dict[str, Any]) -> Any:
        if self._capture is None:
            LOGGER.info("screenshot_simulated", options=options)
            return {
                "status": "simulated",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "options": options,
            }
        return await _maybe_await(self._capture(options))

    async def validate(self, selector: str, validation: Validation) -> None:
        element = await self.adapter.query(selector)
        if element is None:
            raise ElementNotFoundError(f"Element not found: {selector}", selector=selector)

        match validation:
            case ExistsValidation():
                return
            case VisibleValidation():
                if not await self.adapter.is_visible(element):
                    raise ValidationMismatchError("Element is not visible", expected="visible", actual="hidden")
            case TextValidation():
                text = (await self.adapter.text_content(element)).strip()
                if validation.equals is not None and text != validation.equals:
                    raise ValidationMismatchError(
                        f'Text mismatch. Expected: "{validation.equals}", Got: "{text}"',
                        expected=validation.equals,
                        actual=text,
                    )
                if validation.contains is not None and validation.contains not in text:
                    raise ValidationMismatchError(
                        f'Text does not contain: "{validation.contains}"',
                        expected=validation.contains,
                        actual=text,
                    )
            case ValueValidation():
                value = await self.adapter.read_value(element)
                if validation.equals is not None and value != validation.equals:
                    raise ValidationMismatchError(
                        f'Value mismatch. Expected: "{validation.equals}", Got: "{value}"',
                        expected=validation.equals,
                        actual=value,
                    )
            case AttributeValidation():
                actual = await self.adapter.get_attribute(element, validation.attribute)
                if validation.equals is not None and actual != validation.equals:
                    raise ValidationMismatchError(
                        f'Attribute "{validation.attribute}" mismatch. '
                        f'Expected: "{validation.equals}", Got: "{actual}"',
                        expected=validation.equals,
                        actual=actual,
                    )
            case _:
                raise UnknownValidationType(getattr(validation, "type", type(validation).__name__))

    async def run_custom(self, step: CustomStep) -> Any:
        callback = step.execute
        if callback is None:
            callback = self._drivers.resolve(step.driver or "")
        return await _maybe_await(callback(self.adapter))
