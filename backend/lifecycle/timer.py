"""
Cancelable one-shot timers backed by asyncio tasks.

Each arm() bumps a generation counter and hands it to the callback, so a
callback that was already running when the timer was re-armed or canceled can
recognise itself as stale with is_current(). Canceling never interrupts a
callback that has begun firing; it only prevents one that is still sleeping.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger()

# Callback receives the generation it was armed with.
DeferredCallback = Callable[[int], Awaitable[None]]


class DeferredAction:
    def __init__(self, name: str) -> None:
        self._name = name
        self._generation = 0
        self._task: asyncio.Task[None] | None = None
        # every task not yet finished, including callbacks still firing after a re-arm
        self._tasks: set[asyncio.Task[None]] = set()
        self._fired = False
        self._deadline: float | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_armed(self) -> bool:
        """True while the timer is scheduled and has not fired yet."""
        return self._task is not None and not self._fired and not self._task.done()

    @property
    def remaining_seconds(self) -> float | None:
        if not self.is_armed or self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def is_current(self, generation: int) -> bool:
        """Whether generation still belongs to the most recent arm()."""
        return generation == self._generation

    def arm(self, delay: float, callback: DeferredCallback) -> int:
        """Schedule callback after delay seconds, replacing any pending run."""
        self.cancel()
        self._fired = False
        self._deadline = time.monotonic() + delay
        generation = self._generation
        self._task = asyncio.create_task(self._run(delay, callback, generation), name=f"deferred:{self._name}")
        self._tasks.add(self._task)
        self._task.add_done_callback(self._tasks.discard)
        return generation

    def cancel(self) -> bool:
        """Disarm the timer. Returns True if a pending (not yet fired) run was canceled."""
        self._generation += 1
        was_pending = self.is_armed
        if was_pending and self._task is not None:
            self._task.cancel()
        self._task = None
        self._deadline = None
        return was_pending

    async def aclose(self) -> None:
        """Cancel every outstanding task, including callbacks in progress, and wait for them."""
        self._generation += 1
        self._task = None
        self._deadline = None
        tasks = [task for task in self._tasks if not task.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self, delay: float, callback: DeferredCallback, generation: int) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return
        self._fired = True
        try:
            await callback(generation)
        except Exception:
            logger.exception("deferred action failed", timer=self._name)
