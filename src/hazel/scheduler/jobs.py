"""Scheduler for the lane timers using pure asyncio.

Jobs, each on its own interval:
- Normalization: process decisions with ``post_process`` pending
- Alignment: process decisions with ``post_alignment`` set
- Follow-up enqueue: queue decisions with an unhandled follow-up date
- Follow-up drain: act on queued follow-ups that are due

A lane never runs two ticks at once: when a tick is still running at the next
interval, that interval is skipped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hazel.config import HazelConfig
    from hazel.core import Hazel

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[object]]


class Scheduler:
    """Simple asyncio-based scheduler, one repeating timer per lane."""

    def __init__(self, hazel: Hazel, config: HazelConfig) -> None:
        sched = config.scheduler
        self._jobs: list[tuple[str, float, Job]] = [
            ("normalization", sched.normalize_interval, hazel.normalization.tick),
            ("alignment", sched.align_interval, hazel.alignment.tick),
            ("follow_up_enqueue", sched.follow_up_interval, hazel.follow_up.enqueue),
            ("follow_up_drain", sched.follow_up_interval, hazel.follow_up.drain),
        ]
        self._running: dict[str, asyncio.Task] = {}

    async def start(self, shutdown_event: asyncio.Event) -> None:
        """Run all lanes until shutdown_event is set."""
        logger.info(
            "Scheduler started (%s)",
            ", ".join(f"{name}={interval}s" for name, interval, _ in self._jobs),
        )
        await asyncio.gather(
            *(self._run_lane(name, interval, job, shutdown_event) for name, interval, job in self._jobs)
        )

        # Let in-flight ticks finish
        in_flight = [t for t in self._running.values() if not t.done()]
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
        logger.info("Scheduler stopped.")

    async def _run_lane(
        self, name: str, interval: float, job: Job, shutdown_event: asyncio.Event
    ) -> None:
        while not shutdown_event.is_set():
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
                break  # shutdown requested
            except asyncio.TimeoutError:
                pass  # interval elapsed, run the tick

            self.fire(name, job)

    def fire(self, name: str, job: Job) -> asyncio.Task | None:
        """Start a tick unless the lane's previous tick is still running."""
        previous = self._running.get(name)
        if previous is not None and not previous.done():
            logger.debug("Lane %s still running, skipping tick", name)
            return None
        task = asyncio.create_task(self._tick(name, job))
        self._running[name] = task
        return task

    async def _tick(self, name: str, job: Job) -> None:
        try:
            await job()
        except Exception as e:
            logger.error("Lane %s tick failed: %s", name, e)
