"""Periodic flush timer bound to one capture session."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from enum import StrEnum

logger = logging.getLogger(__name__)


class SchedulerState(StrEnum):
    """FlushScheduler lifecycle states."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class FlushScheduler:
    """Fires an async callback at a fixed period until stopped.

    The first fire happens one full interval after :meth:`start`. Once
    :meth:`stop` returns, no fire is in progress and none will follow.
    An instance runs at most once.
    """

    def __init__(self, name: str = "flush") -> None:
        self._name = name
        self._state = SchedulerState.IDLE
        self._task: asyncio.Task[None] | None = None
        self._firing = False
        self._fire_count = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def fire_count(self) -> int:
        return self._fire_count

    def start(self, interval_seconds: float, on_fire: Callable[[], Awaitable[object]]) -> None:
        """Begin firing *on_fire* every *interval_seconds*.

        Must be called from within a running event loop.

        Raises:
            RuntimeError: If the scheduler was already started or stopped.
            ValueError: If the interval is not a positive finite number.
        """
        if self._state != SchedulerState.IDLE:
            raise RuntimeError(f"FlushScheduler {self._name!r} cannot start from {self._state}")
        if not math.isfinite(interval_seconds) or interval_seconds <= 0:
            raise ValueError(
                f"interval_seconds must be positive and finite, got {interval_seconds}"
            )

        self._state = SchedulerState.RUNNING
        self._task = asyncio.get_running_loop().create_task(
            self._run(interval_seconds, on_fire), name=f"flush-scheduler-{self._name}"
        )

    async def stop(self) -> None:
        """Cancel future fires. Safe to call repeatedly or before start.

        A fire already in progress is allowed to finish, even if the caller
        is cancelled while waiting for it.
        """
        if self._state == SchedulerState.IDLE:
            self._state = SchedulerState.STOPPED
            return
        if self._state == SchedulerState.STOPPED:
            return

        self._state = SchedulerState.STOPPED
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        if not self._firing:
            task.cancel()
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise

    async def _run(
        self, interval_seconds: float, on_fire: Callable[[], Awaitable[object]]
    ) -> None:
        loop = asyncio.get_running_loop()
        next_fire = loop.time() + interval_seconds
        while self._state == SchedulerState.RUNNING:
            await asyncio.sleep(max(0.0, next_fire - loop.time()))
            if self._state != SchedulerState.RUNNING:
                return
            self._firing = True
            try:
                await on_fire()
            except Exception:
                logger.exception("Scheduled flush %r failed", self._name)
            finally:
                self._firing = False
                self._fire_count += 1
            next_fire += interval_seconds
