"""Minute-granularity rule scheduler and the MQTT action dispatcher."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, List, Optional

from .core.models import Rule
from .core.protocols import Publisher
from .rules import RuleStore

LOGGER = logging.getLogger(__name__)

TIME_FORMAT = "%H:%M"


@dataclass(frozen=True, slots=True)
class DispatchResult:
    rule_id: int
    topic: str
    success: bool


class ActionDispatcher:
    """Publishes a rule's message to its topic at QoS 0.

    The publish call runs in a worker thread bounded by ``timeout``; every
    failure is logged and reported as ``False`` instead of raised.
    """

    def __init__(self, publisher: Publisher, *, timeout: float = 5.0) -> None:
        self._publisher = publisher
        self._timeout = timeout

    async def dispatch(self, rule: Rule) -> bool:
        try:
            await asyncio.wait_for(
                asyncio.to_thread(
                    self._publisher.publish, rule.topic, rule.message, 0, False
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            LOGGER.error(
                "Timed out publishing rule %d to %s after %.1fs",
                rule.id,
                rule.topic,
                self._timeout,
            )
            return False
        except Exception as exc:
            LOGGER.error("Failed to publish rule %d to %s: %s", rule.id, rule.topic, exc)
            return False

        LOGGER.info("Published rule %d message to %s", rule.id, rule.topic)
        return True


class Scheduler:
    """Fires every rule whose ``time`` equals the current local HH:MM.

    The loop ticks, then waits ``interval`` seconds on a stop event; the time
    spent dispatching is not subtracted, so the cadence drifts slightly.
    Tests call :meth:`tick` directly with a fixed ``now``.
    """

    def __init__(
        self,
        rules: RuleStore,
        dispatcher: ActionDispatcher,
        *,
        interval: float = 60.0,
        refresh_solar_daily: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
        on_tick: Optional[Callable[[List[DispatchResult]], None]] = None,
    ) -> None:
        self._rules = rules
        self._dispatcher = dispatcher
        self._interval = interval
        self._refresh_solar_daily = refresh_solar_daily
        self._clock = clock or datetime.now
        self._on_tick = on_tick
        self._last_date: Optional[date] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="homehub-scheduler")
        LOGGER.info("Scheduler started (interval=%.0fs)", self._interval)

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        LOGGER.info("Scheduler stopped")

    async def tick(self, now: Optional[datetime] = None) -> List[DispatchResult]:
        now = now or self._clock()
        await self._maybe_refresh(now.date())

        current = now.strftime(TIME_FORMAT)
        LOGGER.debug("Scheduler tick at %s", current)

        results: List[DispatchResult] = []
        for rule in await self._rules.list():
            if rule.time != current:
                continue
            LOGGER.info("Rule %d matched %s; publishing to %s", rule.id, current, rule.topic)
            success = await self._dispatcher.dispatch(rule)
            results.append(DispatchResult(rule.id, rule.topic, success))
        return results

    async def _maybe_refresh(self, today: date) -> None:
        previous = self._last_date
        self._last_date = today
        if not self._refresh_solar_daily or previous is None or previous == today:
            return

        LOGGER.info("New day %s; refreshing solar rule times", today.isoformat())
        try:
            failed = await self._rules.refresh_solar_times()
        except Exception:
            LOGGER.exception("Solar time refresh failed")
            return
        if failed:
            LOGGER.warning("Solar refresh failed for rules %s", failed)

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                results = await self.tick()
            except Exception:
                LOGGER.exception("Scheduler tick failed")
            else:
                if self._on_tick is not None:
                    self._on_tick(results)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                break
            except asyncio.TimeoutError:
                pass
