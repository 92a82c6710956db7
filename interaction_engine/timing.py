"""Millisecond clock used for step timing and pacing."""

from __future__ import annotations

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float: ...

    async def sleep(self, ms: float) -> None: ...


class MonotonicClock:
    """Wall-independent clock backed by ``time.perf_counter``; all values in ms."""

    def now(self) -> float:
        return time.perf_counter() * 1000

    async def sleep(self, ms: float) -> None:
        await asyncio.sleep(max(ms, 0) / 1000)
