"""
Fixed-interval background jobs.

Each job sleeps ``initial_delay_s`` after start, then fires every ``every_s``
seconds. The blocking sync pass runs in a worker thread so the event loop
stays free for the HTTP endpoints. A job never overlaps itself: a tick that
comes due while the previous pass is still running is skipped.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from galedi.config.settings import IntervalConfig
from galedi.utils.logging import get_logger

logger = get_logger("galedi.service.scheduler")


@dataclass(frozen=True)
class IntervalSchedule:
    every_s: float
    initial_delay_s: float

    @classmethod
    def from_config(cls, config: IntervalConfig) -> IntervalSchedule:
        return cls(every_s=config.every_s, initial_delay_s=config.initial_delay_s)

    def first_fire(self, started_at: float) -> float:
        return started_at + max(0.0, self.initial_delay_s)

    def next_fire(self, previous_fire: float, now: float) -> float:
        """
        Next fire time after ``previous_fire``, on the fixed grid.

        Ticks missed while a pass was running are dropped, not replayed.
        """
        every = max(1.0, self.every_s)
        fire = previous_fire + every
        if fire <= now:
            missed = int((now - previous_fire) // every)
            fire = previous_fire + (missed + 1) * every
        return fire


class PeriodicJob:
    """Runs ``func`` in a thread on an interval schedule."""

    def __init__(self, name: str, func: Callable[[], dict[str, Any]], schedule: IntervalSchedule):
        self.name = name
        self.func = func
        self.schedule = schedule

        self._run_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

        self.next_fire_at: float | None = None
        self.last_started_at: float | None = None
        self.last_finished_at: float | None = None
        self.last_summary: dict[str, Any] | None = None
        self.last_error: str | None = None
        self.runs = 0
        self.skipped = 0

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def start(self) -> None:
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop(), name=f"galedi-{self.name}")

    async def stop(self, timeout: float = 30.0) -> None:
        """Let an in-flight pass finish (it observes the cancel token), then end the loop."""
        self._stopping.set()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
        except TimeoutError:
            logger.warning(f"{self.name}: still running after {timeout:g}s, abandoning")
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    async def run_once(self) -> dict[str, Any] | None:
        """
        Run one pass now.

        Returns:
            The pass summary, or None if a pass is already in progress
        """
        if self._run_lock.locked():
            self.skipped += 1
            logger.warning(f"{self.name}: previous run still in progress, skipping")
            return None

        async with self._run_lock:
            self.last_started_at = time.time()
            self.runs += 1
            try:
                summary = await asyncio.to_thread(self.func)
                self.last_summary = summary
                self.last_error = None
                return summary
            except Exception as e:
                self.last_error = str(e)
                logger.error(f"{self.name} run failed: {e}")
                raise
            finally:
                self.last_finished_at = time.time()

    async def _loop(self) -> None:
        fire = self.schedule.first_fire(time.time())
        self.next_fire_at = fire
        while not self._stopping.is_set():
            delay = fire - time.time()
            if delay > 0:
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=delay)
                    break
                except TimeoutError:
                    pass

            try:
                await self.run_once()
            except Exception as e:
                logger.debug(f"{self.name}: keeping schedule after failed run ({type(e).__name__})")

            fire = self.schedule.next_fire(fire, time.time())
            self.next_fire_at = fire

    def status(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "every_s": self.schedule.every_s,
            "running": self.running,
            "runs": self.runs,
            "skipped": self.skipped,
            "next_fire_at": _iso(self.next_fire_at),
            "last_started_at": _iso(self.last_started_at),
            "last_finished_at": _iso(self.last_finished_at),
            "last_error": self.last_error,
            "last_summary": self.last_summary,
        }


def _iso(ts: float | None) -> str | None:
    return datetime.fromtimestamp(ts, tz=UTC).isoformat() if ts else None
