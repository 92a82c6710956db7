"""Out-of-band recording of outgoing network calls.

Executors are instrumented by composition rather than patched in place::

    recorder = NetworkCallRecorder()
    client = httpx.AsyncClient()
    request = recorder.instrument(client.request)
    await request("GET", "https://example.com/api")
    recorder.stats()

Every call keeps its own record state in the wrapper's closure, so overlapping
calls never share timing data.
"""

from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, Optional, Protocol

import structlog

from .models import NetworkCallRecord, NetworkStats
from .timing import Clock, MonotonicClock

LOGGER = structlog.get_logger("interaction_engine.network")

AsyncRequestExecutor = Callable[..., Awaitable[Any]]
SettlementCallback = Callable[[Optional[Any], Optional[BaseException]], None]


class CallbackRequestExecutor(Protocol):
    def __call__(self, method: str, url: str, callback: SettlementCallback, **kwargs: Any) -> Any: ...


def status_of(response: Any) -> Optional[int]:
    """Status code of an httpx/urllib/aiohttp-style response object."""

    for attribute in ("status_code", "status"):
        value = getattr(response, attribute, None)
        if isinstance(value, int):
            return value
    getcode = getattr(response, "getcode", None)
    if callable(getcode):
        value = getcode()
        if isinstance(value, int):
            return value
    return None


def _is_success(status_code: Optional[int]) -> bool:
    return status_code is not None and 200 <= status_code < 300


class _PendingCall:
    """Timing state for one in-flight call; settles exactly once."""

    def __init__(self, recorder: "NetworkCallRecorder", method: str, url: str, kind: str) -> None:
        self._recorder = recorder
        self.method = method.upper()
        self.url = str(url)
        self.kind = kind
        self.start = recorder.clock.now()
        self._settled = False

    def settle(self, *, response: Any = None, error: Optional[BaseException] = None) -> Optional[NetworkCallRecord]:
        if self._settled:
            return None
        self._settled = True
        end = self._recorder.clock.now()
        status_code = status_of(response) if error is None else None
        record = NetworkCallRecord(
            method=self.method,
            url=self.url,
            kind=self.kind,  # type: ignore[arg-type]
            start=self.start,
            end=end,
            duration=end - self.start,
            status_code=status_code,
            success=error is None and _is_success(status_code),
            error=str(error) if error is not None else None,
        )
        self._recorder._append(record)
        return record


class NetworkCallRecorder:
    """Append-only log of instrumented calls with aggregate statistics."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock = clock or MonotonicClock()
        self._calls: list[NetworkCallRecord] = []

    def _append(self, record: NetworkCallRecord) -> None:
        self._calls.append(record)
        LOGGER.debug(
            "network_call_recorded",
            method=record.method,
            url=record.url,
            kind=record.kind,
            status_code=record.status_code,
            success=record.success,
            duration_ms=record.duration,
        )

    def instrument(self, executor: AsyncRequestExecutor) -> AsyncRequestExecutor:
        """Wrap an awaitable ``executor(method, url, **kwargs)``; results and errors pass through."""

        @functools.wraps(executor)
        async def instrumented(method: str, url: Any, *args: Any, **kwargs: Any) -> Any:
            pending = _PendingCall(self, method, url, "simple")
            try:
                response = await executor(method, url, *args, **kwargs)
            except Exception as exc:
                pending.settle(error=exc)
                raise
            pending.settle(response=response)
            return response

        return instrumented

    def instrument_callback(self, executor: CallbackRequestExecutor) -> CallbackRequestExecutor:
        """Wrap ``executor(method, url, callback, **kwargs)``, recording when ``callback`` fires."""

        @functools.wraps(executor)
        def instrumented(method: str, url: Any, callback: SettlementCallback, **kwargs: Any) -> Any:
            pending = _PendingCall(self, method, url, "callback")

            def on_settled(response: Optional[Any], error: Optional[BaseException]) -> None:
                pending.settle(response=response, error=error)
                callback(response, error)

            try:
                return executor(method, url, on_settled, **kwargs)
            except Exception as exc:
                pending.settle(error=exc)
                raise

        return instrumented

    def calls(self) -> list[NetworkCallRecord]:
        return list(self._calls)

    def clear(self) -> None:
        self._calls.clear()

    def stats(self) -> NetworkStats:
        calls = list(self._calls)
        if not calls:
            return NetworkStats()
        successful = sum(1 for call in calls if call.success)
        return NetworkStats(
            total=len(calls),
            successful=successful,
            failed=len(calls) - successful,
            average_duration=sum(call.duration for call in calls) / len(calls),
        )
