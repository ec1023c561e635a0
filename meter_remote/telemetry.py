"""Telemetry Synchronizer: periodic and manual refresh of power and reading state."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace

from .api import MeterApiClient, MeterApiError
from .const import DEFAULT_REFRESH_INTERVAL, ERROR_TITLE, MSG_DASHBOARD_FAILED
from .events import Emitter
from .models import MeterIdentity, MeterReading, Notification, PowerSnapshot, TelemetryState
from .scheduling import RepeatingTask, start_repeating

logger = logging.getLogger(__name__)


class TelemetrySynchronizer:
    """Keeps the PowerSnapshot/MeterReading pair for one meter current.

    Refreshes are single-flight: while a fetch pair is outstanding, further
    refresh requests (manual or from the timer) wait for it instead of
    starting another. Each completed cycle publishes exactly one
    TelemetryState, built from both fetches of that cycle. A failed cycle
    keeps the previous snapshot and reading.
    """

    def __init__(
        self,
        api: MeterApiClient,
        meter: MeterIdentity,
        interval: float = DEFAULT_REFRESH_INTERVAL,
    ) -> None:
        self._api = api
        self._meter = meter
        self._interval = interval

        self.state = TelemetryState()
        self.on_state: Emitter[TelemetryState] = Emitter("telemetry state")
        self.on_refreshing: Emitter[bool] = Emitter("telemetry refreshing")
        self.on_notification: Emitter[Notification] = Emitter("telemetry notification")

        self._active = False
        self._generation = 0
        self._timer: RepeatingTask | None = None
        self._inflight: asyncio.Task | None = None
        self._refreshing = False

    @property
    def meter(self) -> MeterIdentity:
        return self._meter

    @property
    def active(self) -> bool:
        return self._active

    @property
    def refreshing(self) -> bool:
        """True while a fetch pair is outstanding."""
        return self._refreshing

    @property
    def snapshot(self) -> PowerSnapshot | None:
        return self.state.snapshot

    @property
    def reading(self) -> MeterReading | None:
        return self.state.reading

    async def activate(self) -> TelemetryState:
        """Start the refresh timer and run the initial refresh."""
        if self._active:
            return self.state
        self._active = True
        self._generation += 1
        logger.info(
            "Telemetry for meter %s active (every %.0fs)",
            self._meter.meter_number,
            self._interval,
        )
        self._timer = start_repeating(
            self.refresh, self._interval, name=f"telemetry-{self._meter.meter_number}"
        )
        return await self.refresh()

    def deactivate(self) -> None:
        """Cancel the timer and drop any result still in flight."""
        if not self._active:
            return
        self._active = False
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
        self._set_refreshing(False)
        logger.info("Telemetry for meter %s deactivated", self._meter.meter_number)

    async def refresh(self, after_pending: bool = False) -> TelemetryState:
        """Refresh now, or join the refresh already in flight.

        With after_pending, a cycle already in flight is awaited first and a
        new one is started afterwards, so the published state reflects
        backend changes made before this call. Only one fetch pair is ever
        outstanding.
        """
        if not self._active:
            logger.debug("Refresh ignored, synchronizer inactive")
            return self.state

        task = self._inflight
        if after_pending and task is not None and not task.done():
            logger.debug("Waiting for in-flight refresh before follow-up")
            await asyncio.wait({task})
            if not self._active:
                return self.state
            task = self._inflight

        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(
                self._run_cycle(self._generation),
                name=f"telemetry-refresh-{self._meter.meter_number}",
            )
            self._inflight = task
            self._set_refreshing(True)
        else:
            logger.debug("Refresh already in flight, joining it")

        await asyncio.wait({task})
        return self.state

    async def refresh_after_change(self) -> TelemetryState:
        """Refresh with data fetched after the caller's backend change."""
        return await self.refresh(after_pending=True)

    async def _run_cycle(self, generation: int) -> None:
        meter_number = self._meter.meter_number
        power, reading = await asyncio.gather(
            self._api.fetch_current_power(meter_number),
            self._api.fetch_latest_reading(meter_number),
            return_exceptions=True,
        )

        if generation != self._generation:
            logger.debug("Discarding refresh result for meter %s (deactivated)", meter_number)
            return

        try:
            failure = next(
                (r for r in (power, reading) if isinstance(r, BaseException)), None
            )
            if failure is None:
                self.state = TelemetryState(
                    snapshot=power,
                    reading=reading,
                    error=None,
                    updated_at=time.time(),
                )
                logger.debug(
                    "Meter %s: power=%.2f allocated=%.2f consumed=%.2f",
                    meter_number,
                    power.current_power,
                    power.total_allocated,
                    power.total_consumed,
                )
            else:
                if isinstance(failure, MeterApiError):
                    logger.warning("Telemetry refresh for meter %s failed: %s", meter_number, failure)
                else:
                    logger.error(
                        "Unexpected telemetry error for meter %s",
                        meter_number,
                        exc_info=failure,
                    )
                self.state = replace(self.state, error=str(failure) or type(failure).__name__)
                self.on_notification.emit(Notification(ERROR_TITLE, MSG_DASHBOARD_FAILED))
            self.on_state.emit(self.state)
        finally:
            self._set_refreshing(False)

    def _set_refreshing(self, value: bool) -> None:
        if value != self._refreshing:
            self._refreshing = value
            self.on_refreshing.emit(value)
