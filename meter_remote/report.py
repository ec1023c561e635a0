"""Report Retriever: on-demand fetch of the historical per-port report."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import replace

from .api import MeterApiClient, MeterApiError
from .const import ERROR_TITLE, MSG_REPORT_FAILED, NOT_AVAILABLE
from .events import Emitter
from .models import MeterIdentity, Notification, ReportEntry, ReportResult, ReportRow

logger = logging.getLogger(__name__)


def _fmt(value: float, unit: str) -> str:
    return f"{value:g} {unit}"


def to_row(entry: ReportEntry) -> ReportRow:
    """Render one entry for display in local time."""
    ts = entry.timestamp
    if ts.tzinfo is not None:
        ts = ts.astimezone()
    return ReportRow(
        date=ts.strftime("%Y-%m-%d"),
        time=ts.strftime("%H:%M:%S"),
        consumption=_fmt(entry.consumption, "kWh"),
        voltage=_fmt(entry.voltage, "V"),
        current=_fmt(entry.current, "A"),
        # A zero power factor is shown as missing, like a null one
        power_factor=f"{entry.power_factor:g}" if entry.power_factor else NOT_AVAILABLE,
        status_label=entry.status.label,
    )


def to_rows(entries: Iterable[ReportEntry]) -> tuple[ReportRow, ...]:
    return tuple(to_row(e) for e in entries)


class ReportRetriever:
    """Fetches the whole report for a meter each time it is loaded.

    Entries keep the order the backend returned. An empty report is a
    normal result. A failed load keeps the previously loaded entries.
    Concurrent load requests share one fetch.
    """

    def __init__(self, api: MeterApiClient, meter: MeterIdentity) -> None:
        self._api = api
        self._meter = meter
        self.result = ReportResult(meter_number=meter.meter_number)
        self.on_result: Emitter[ReportResult] = Emitter("report result")
        self.on_notification: Emitter[Notification] = Emitter("report notification")
        self._inflight: asyncio.Task | None = None

    @property
    def loading(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def load(self) -> ReportResult:
        task = self._inflight
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(
                self._fetch(), name=f"report-{self._meter.meter_number}"
            )
            self._inflight = task
        await asyncio.wait({task})
        return self.result

    async def _fetch(self) -> None:
        meter_number = self._meter.meter_number
        self.result = replace(self.result, loading=True)
        self.on_result.emit(self.result)
        try:
            entries = await self._api.fetch_port_report(meter_number)
        except MeterApiError as e:
            logger.warning("Port report for meter %s failed: %s", meter_number, e)
            self._fail(str(e))
            return
        except Exception as e:
            logger.exception("Unexpected error loading port report for meter %s", meter_number)
            self._fail(str(e) or type(e).__name__)
            return

        entries = tuple(entries)
        logger.info("Port report for meter %s: %d entries", meter_number, len(entries))
        self.result = ReportResult(
            meter_number=meter_number,
            entries=entries,
            rows=to_rows(entries),
        )
        self.on_result.emit(self.result)

    def _fail(self, message: str) -> None:
        self.result = replace(self.result, loading=False, error=message)
        self.on_notification.emit(Notification(ERROR_TITLE, MSG_REPORT_FAILED))
        self.on_result.emit(self.result)
