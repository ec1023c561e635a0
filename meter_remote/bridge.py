"""MQTT bridge: republishes component state and routes inbound commands."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine
from typing import Any

from .const import (
    TOPIC_NOTIFICATION,
    TOPIC_POWER_ALLOCATED,
    TOPIC_POWER_CONSUMED,
    TOPIC_POWER_CURRENT,
    TOPIC_READING_CONSUMPTION,
    TOPIC_READING_CURRENT,
    TOPIC_READING_TIMESTAMP,
    TOPIC_READING_VOLTAGE,
    TOPIC_REFRESH,
    TOPIC_REFRESHING,
    TOPIC_RELAY,
    TOPIC_RELAY_PENDING,
    TOPIC_RELAY_SET,
    TOPIC_REPORT,
    TOPIC_REPORT_REFRESH,
    TOPIC_STATUS,
)
from .models import Notification, RelayState, RelayStatus, ReportResult, TelemetryState
from .mqtt_client import MQTTClient
from .relay import RelayController
from .report import ReportRetriever
from .telemetry import TelemetrySynchronizer

logger = logging.getLogger(__name__)


def base_topic(prefix: str, meter_number: str) -> str:
    return f"{prefix.strip('/')}/{meter_number}"


class MeterBridge:
    """Presentation layer over MQTT for one meter."""

    def __init__(
        self,
        mqtt: MQTTClient,
        prefix: str,
        telemetry: TelemetrySynchronizer,
        relay: RelayController,
        report: ReportRetriever,
    ) -> None:
        self._mqtt = mqtt
        self._telemetry = telemetry
        self._relay = relay
        self._report = report
        self._base = base_topic(prefix, telemetry.meter.meter_number)
        self._tasks: set[asyncio.Task] = set()

    def topic(self, suffix: str) -> str:
        return f"{self._base}/{suffix}"

    def setup(self) -> None:
        """Hook component listeners and register command topics."""
        self._telemetry.on_state.add(self._on_telemetry)
        self._telemetry.on_refreshing.add(self._on_refreshing)
        self._telemetry.on_notification.add(self._on_notification)
        self._relay.on_status.add(self._on_relay)
        self._relay.on_notification.add(self._on_notification)
        self._report.on_result.add(self._on_report)
        self._report.on_notification.add(self._on_notification)

        self._mqtt.register(self.topic(TOPIC_RELAY_SET), self._handle_relay_set)
        self._mqtt.register(self.topic(TOPIC_REFRESH), self._handle_refresh)
        self._mqtt.register(self.topic(TOPIC_REPORT_REFRESH), self._handle_report_refresh)

    # ---- Outbound -------------------------------------------------------------

    def _publish(self, suffix: str, payload: str, retain: bool = False) -> None:
        self._mqtt.publish_nowait(self.topic(suffix), payload, retain)

    async def publish_status(self, online: bool) -> None:
        await self._mqtt.publish(self.topic(TOPIC_STATUS), "online" if online else "offline", retain=True)

    def _on_telemetry(self, state: TelemetryState) -> None:
        if state.snapshot is not None:
            self._publish(TOPIC_POWER_CURRENT, f"{state.snapshot.current_power:.2f}")
            self._publish(TOPIC_POWER_ALLOCATED, f"{state.snapshot.total_allocated:.2f}")
            self._publish(TOPIC_POWER_CONSUMED, f"{state.snapshot.total_consumed:.2f}")
        if state.reading is not None:
            self._publish(TOPIC_READING_CONSUMPTION, f"{state.reading.consumption:.2f}")
            self._publish(TOPIC_READING_VOLTAGE, f"{state.reading.voltage:.1f}")
            self._publish(TOPIC_READING_CURRENT, f"{state.reading.current:.2f}")
            self._publish(TOPIC_READING_TIMESTAMP, state.reading.timestamp.isoformat())

    def _on_refreshing(self, refreshing: bool) -> None:
        self._publish(TOPIC_REFRESHING, "ON" if refreshing else "OFF")

    def _on_relay(self, status: RelayStatus) -> None:
        self._publish(TOPIC_RELAY, status.state.value, retain=True)
        self._publish(TOPIC_RELAY_PENDING, "ON" if status.pending else "OFF")

    def _on_report(self, result: ReportResult) -> None:
        if result.loading:
            return
        payload = {
            "meter_number": result.meter_number,
            "empty": result.is_empty,
            "error": result.error,
            "rows": [row.to_dict() for row in result.rows],
        }
        self._publish(TOPIC_REPORT, json.dumps(payload), retain=True)

    def _on_notification(self, note: Notification) -> None:
        if note.is_error:
            logger.warning("%s: %s", note.title, note.message)
        else:
            logger.info("%s: %s", note.title, note.message)
        payload = {"title": note.title, "message": note.message, "error": note.is_error}
        self._publish(TOPIC_NOTIFICATION, json.dumps(payload))

    # ---- Inbound --------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle_relay_set(self, topic: str, payload: str) -> None:
        command = payload.strip().lower()
        if self._relay.pending:
            logger.warning("Relay command %r ignored, previous command pending", command)
            return
        if command == "toggle":
            self._spawn(self._relay.toggle())
            return
        try:
            desired = RelayState(command)
        except ValueError:
            logger.warning("Invalid relay command on %s: %s", topic, payload)
            return
        self._spawn(self._relay.set_state(desired))

    async def _handle_refresh(self, topic: str, payload: str) -> None:
        self._spawn(self._telemetry.refresh())

    async def _handle_report_refresh(self, topic: str, payload: str) -> None:
        self._spawn(self._report.load())

    async def wait_idle(self) -> None:
        """Wait for commands started from inbound messages."""
        if self._tasks:
            await asyncio.wait(set(self._tasks))
