"""Repeating timers that drive the polling cycles."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

log = logging.getLogger("polling-scheduler")


@dataclass
class PeriodicJob:
    name: str
    interval: float  # seconds
    func: Callable[[], Awaitable[Any]]


class PollingScheduler:
    """Runs each job on its own timer.

    Timers are independent and not phase-aligned. A tick fires a new cycle in
    the background, so a slow cycle does not delay the timer; with
    ``skip_overlapping`` a tick is dropped while the job's previous cycle is
    still running.
    """

    def __init__(
        self,
        jobs: Iterable[PeriodicJob],
        skip_overlapping: bool = True,
        shutdown_grace: float = 5.0,
    ) -> None:
        self.jobs = list(jobs)
        self.skip_overlapping = skip_overlapping
        self.shutdown_grace = shutdown_grace
        self.started_cycles: Counter[str] = Counter()
        self.skipped_cycles: Counter[str] = Counter()
        self._in_flight: Counter[str] = Counter()
        self._timers: list[asyncio.Task] = []
        self._cycles: set[asyncio.Task] = set()
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return bool(self._timers)

    def start(self) -> None:
        if self._timers:
            log.warning("Scheduler already running")
            return
        self._stop = asyncio.Event()
        for job in self.jobs:
            self._timers.append(asyncio.create_task(self._run_timer(job), name=f"timer:{job.name}"))
            log.info("Scheduled %s every %.1fs", job.name, job.interval)

    async def stop(self) -> None:
        if not self._timers:
            return
        self._stop.set()
        await asyncio.gather(*self._timers, return_exceptions=True)
        self._timers.clear()

        pending = set(self._cycles)
        if pending:
            _done, still_running = await asyncio.wait(pending, timeout=self.shutdown_grace)
            for task in still_running:
                task.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)
        log.info("Scheduler stopped")

    async def _run_timer(self, job: PeriodicJob) -> None:
        while not self._stop.is_set():
            self._tick(job)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=job.interval)
            except asyncio.TimeoutError:
                pass

    def _tick(self, job: PeriodicJob) -> None:
        if self.skip_overlapping and self._in_flight[job.name]:
            self.skipped_cycles[job.name] += 1
            log.warning("Previous %s cycle still running, skipping this tick", job.name)
            return
        self._in_flight[job.name] += 1
        self.started_cycles[job.name] += 1
        task = asyncio.create_task(self._run_cycle(job), name=f"cycle:{job.name}")
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)

    async def _run_cycle(self, job: PeriodicJob) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            await job.func()
        except Exception as exc:
            log.exception("%s cycle failed: %s", job.name, exc)
        finally:
            self._in_flight[job.name] -= 1
            log.debug("%s cycle took %.2fs", job.name, loop.time() - started)
