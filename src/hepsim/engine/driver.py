"""
asyncio driver: admission loops, the scheduler tick loop and shutdown.

Everything runs on one event loop. Admission coroutines add sessions to the
registry; the tick coroutine wakes every tick_interval_ms and runs a
scheduler pass when min_tick_interval_ms has elapsed since the previous one.
request_stop() halts admissions and lets live calls drain; a second request
abandons the drain.
"""

import asyncio
import logging
import random
import time
from collections.abc import Callable
from datetime import datetime, timezone

from ..config import SimulationSettings
from ..exporters.base import MessageExporter
from ..generators.metric_generator import SimulationMetrics
from ..scenarios.scenario_loader import Scenario
from .registry import SessionRegistry
from .scheduler import SessionScheduler, TickResult
from .session import Session

logger = logging.getLogger(__name__)


class Driver:
    """Owns the timing loops of one simulation run."""

    def __init__(
        self,
        scenarios: list[Scenario],
        registry: SessionRegistry,
        scheduler: SessionScheduler,
        exporter: MessageExporter,
        settings: SimulationSettings | None = None,
        rng: random.Random | None = None,
        metrics: SimulationMetrics | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.scenarios = scenarios
        self.registry = registry
        self.scheduler = scheduler
        self.exporter = exporter
        self.settings = settings or SimulationSettings()
        self.rng = rng if rng is not None else random.Random()
        self.metrics = metrics
        self.clock = clock
        self.stopping = False
        self.forced = False
        self.ticks = 0
        self._last_tick: float | None = None
        self._tick_in_progress = False
        self._done = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    # Admission shaping

    def adjustment_factor(self, now: float | None = None) -> float:
        """
        Time-of-day scaling: hours between now (plus up to two seconds of
        jitter) and today's peak hour in UTC.
        """
        if now is None:
            now = self.clock()
        today = datetime.fromtimestamp(now, tz=timezone.utc)
        peak = today.replace(hour=self.settings.peak_hour_utc, minute=0, second=0, microsecond=0)
        now_ms = now * 1000
        peak_ms = peak.timestamp() * 1000
        return abs((now_ms - peak_ms) + self.rng.uniform(0, 2000)) / 1000 / 60 / 60

    def adjusted_delay(self, scenario: Scenario, now: float | None = None) -> float:
        """Milliseconds to wait before the next continuous admission."""
        return self.adjustment_factor(now) * 1000 / scenario.cps_high

    def burst_pause(self, scenario: Scenario) -> float:
        """Seconds between two bursts."""
        return scenario.interval + self.rng.uniform(0, scenario.interval_jitter)

    def admit(self, scenario: Scenario) -> list[Session]:
        """Admit one call for ``scenario`` unless the run is stopping."""
        if self.stopping:
            return []
        sessions = self.registry.create_for_scenario(scenario, self.clock())
        if sessions and self.metrics is not None:
            self.metrics.record_admitted(scenario.name, len(sessions))
        return sessions

    async def _continuous(self, scenario: Scenario) -> None:
        while not self.stopping:
            self.admit(scenario)
            await asyncio.sleep(self.adjusted_delay(scenario) / 1000)

    async def _burst(self, scenario: Scenario) -> None:
        while not self.stopping:
            for i in range(scenario.count):
                if self.stopping:
                    return
                self.admit(scenario)
                if i < scenario.count - 1:
                    await asyncio.sleep(scenario.spacing_ms / 1000)
            logger.debug("Burst of %d for %s admitted", scenario.count, scenario.name)
            await asyncio.sleep(self.burst_pause(scenario))

    # Ticking

    def on_tick(self) -> TickResult | None:
        """Timer callback; runs a scheduler pass when enough time has passed."""
        now = self.clock()
        if self._tick_in_progress:
            return None
        if (
            self._last_tick is not None
            and (now - self._last_tick) * 1000 < self.settings.min_tick_interval_ms
        ):
            return None
        self._tick_in_progress = True
        try:
            result = self.scheduler.advance_all(now)
        finally:
            self._tick_in_progress = False
        self._last_tick = now
        self.ticks += 1
        if result.failed:
            logger.debug("%d message(s) failed to send this tick", result.failed)
        if result.drained:
            logger.info("All sessions drained")
            self._done.set()
        return result

    async def _tick_loop(self) -> None:
        interval = self.settings.tick_interval_ms / 1000
        while not self._done.is_set():
            try:
                self.on_tick()
            except Exception:
                logger.exception("Scheduler pass failed")
            await asyncio.sleep(interval)

    # Lifecycle

    def request_stop(self) -> None:
        """First call drains live sessions, a second one stops immediately."""
        if self.stopping:
            logger.warning("Stop requested again, abandoning %d live session(s)", len(self.registry))
            self.forced = True
            self._done.set()
            return
        logger.info("Stop requested, draining %d live session(s)", len(self.registry))
        self.stopping = True
        self.scheduler.request_stop()

    async def run(self, duration: float | None = None) -> None:
        """Run until stopped and drained (or forced). ``duration`` schedules a stop."""
        loop = asyncio.get_running_loop()
        await self.exporter.start()
        timer = None
        try:
            for scenario in self.scenarios:
                if scenario.mode == "continuous":
                    self._tasks.append(asyncio.create_task(self._continuous(scenario)))
                elif scenario.mode == "burst":
                    self._tasks.append(asyncio.create_task(self._burst(scenario)))
            tick_task = asyncio.create_task(self._tick_loop())
            self._tasks.append(tick_task)
            if duration is not None:
                timer = loop.call_later(duration, self.request_stop)
            done_waiter = asyncio.create_task(self._done.wait())
            self._tasks.append(done_waiter)
            await asyncio.wait([done_waiter, tick_task], return_when=asyncio.FIRST_COMPLETED)
            if tick_task.done() and not self._done.is_set():
                logger.error("Tick loop ended unexpectedly, stopping")
                self.forced = True
        finally:
            if timer is not None:
                timer.cancel()
            for task in self._tasks:
                task.cancel()
            results = await asyncio.gather(*self._tasks, return_exceptions=True)
            for outcome in results:
                if isinstance(outcome, Exception) and not isinstance(outcome, asyncio.CancelledError):
                    logger.error("Simulation task failed: %r", outcome)
            self._tasks.clear()
            await self.exporter.shutdown()
