from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from marketplace_chat.application.exceptions import AppError
from marketplace_chat.application.policies.retry import backoff_seconds

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollingLoop(Generic[T]):
    """Periodic fetch-and-apply task with backoff and stale-result protection.

    Each loop owns one asyncio task. ``stop()`` bumps the generation so a
    fetch that completes after the loop was stopped (or restarted) is
    discarded instead of applied. Fetch errors never escape the loop: the
    previous state is kept and the next tick is delayed exponentially.
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[T]],
        apply: Callable[[T], None],
        *,
        interval: float,
        max_backoff: float = 60.0,
        failure_threshold: int = 3,
        on_degraded: Callable[[], None] | None = None,
        on_recovered: Callable[[], None] | None = None,
    ) -> None:
        self.name = name
        self._fetch = fetch
        self._apply = apply
        self._interval = interval
        self._max_backoff = max_backoff
        self._failure_threshold = failure_threshold
        self._on_degraded = on_degraded
        self._on_recovered = on_recovered

        self._generation = 0
        self._failures = 0
        self._degraded = False
        self._wake = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def degraded(self) -> bool:
        return self._degraded

    def start(self) -> None:
        if self.running:
            return
        self._generation += 1
        self._task = asyncio.create_task(self._run(self._generation), name=f"poll-{self.name}")
        logger.debug("Polling loop %s started (every %.1fs)", self.name, self._interval)

    async def stop(self) -> None:
        self._generation += 1
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Polling loop %s stopped", self.name)

    def trigger(self) -> None:
        """Poll again now instead of waiting for the next tick."""
        self._wake.set()

    def next_delay(self) -> float:
        if self._failures == 0:
            return self._interval
        return backoff_seconds(self._failures, base=self._interval, cap=self._max_backoff)

    async def run_once(self) -> bool:
        """One fetch-and-apply. Returns True if fresh data was applied."""
        generation = self._generation
        try:
            result = await self._fetch()
        except AppError as exc:
            self._record_failure()
            logger.warning(
                "Poll %s failed (%d in a row): %s: %s",
                self.name, self._failures, type(exc).__name__, exc.detail,
            )
            return False
        except Exception:
            self._record_failure()
            logger.exception("Poll %s failed (%d in a row)", self.name, self._failures)
            return False

        if generation != self._generation:
            logger.debug("Discarding stale %s result", self.name)
            return False

        self._apply(result)
        self._record_success()
        return True

    async def _run(self, generation: int) -> None:
        while generation == self._generation:
            self._wake.clear()
            try:
                await self.run_once()
            except Exception:
                # apply() errors are logged; the cadence continues
                logger.exception("Applying %s result failed", self.name)
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.next_delay())
            except TimeoutError:
                pass

    def _record_failure(self) -> None:
        self._failures += 1
        if not self._degraded and self._failures >= self._failure_threshold:
            self._degraded = True
            logger.error("Polling loop %s degraded after %d failures", self.name, self._failures)
            if self._on_degraded is not None:
                self._on_degraded()

    def _record_success(self) -> None:
        self._failures = 0
        if self._degraded:
            self._degraded = False
            logger.info("Polling loop %s recovered", self.name)
            if self._on_recovered is not None:
                self._on_recovered()
