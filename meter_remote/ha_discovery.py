"""HA MQTT Discovery: publish auto-discovery configs for the meter entities."""

from __future__ import annotations

import json
import logging

from .bridge import base_topic
from .config import AppConfig
from .const import (
    DEVICE_IDENTIFIER,
    DEVICE_MANUFACTURER,
    DEVICE_MODEL,
    DEVICE_NAME,
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
    TOPIC_REPORT_REFRESH,
    TOPIC_STATUS,
)
from .mqtt_client import MQTTClient

logger = logging.getLogger(__name__)


class HADiscoveryPublisher:
    """Publishes MQTT Discovery configs so HA auto-creates the meter entities."""

    def __init__(self, config: AppConfig, mqtt: MQTTClient, meter_number: str) -> None:
        self._mqtt = mqtt
        self._prefix = config.ha_discovery_prefix
        self._meter = meter_number
        self._base = base_topic(config.mqtt_topic_prefix, meter_number)
        self._uid = f"{DEVICE_IDENTIFIER}_{meter_number}"

    def _device_info(self) -> dict:
        return {
            "identifiers": [self._uid],
            "name": f"{DEVICE_NAME} {self._meter}",
            "manufacturer": DEVICE_MANUFACTURER,
            "model": DEVICE_MODEL,
        }

    def _common(self, key: str, name: str) -> dict:
        return {
            "name": name,
            "unique_id": f"{self._uid}_{key}",
            "availability_topic": f"{self._base}/{TOPIC_STATUS}",
            "device": self._device_info(),
        }

    async def publish_on_connect(self) -> None:
        """Wait for MQTT connection, then publish all discovery configs."""
        await self._mqtt.connected.wait()
        await self.publish_all()

    async def publish_all(self) -> None:
        logger.info("Publishing HA MQTT Discovery configs for meter %s", self._meter)
        for component, key, config in self.configs():
            topic = f"{self._prefix}/{component}/{self._uid}_{key}/config"
            await self._mqtt.publish(topic, json.dumps(config), retain=True)

    def configs(self) -> list[tuple[str, str, dict]]:
        """All (component, key, config) triples for this meter."""
        out: list[tuple[str, str, dict]] = []

        sensors = [
            ("current_power", "Current Power", TOPIC_POWER_CURRENT, "kWh", "mdi:flash"),
            ("total_allocated", "Total Allocated", TOPIC_POWER_ALLOCATED, "kWh", "mdi:gauge"),
            ("total_consumed", "Total Consumed", TOPIC_POWER_CONSUMED, "kWh", "mdi:counter"),
            ("consumption", "Latest Consumption", TOPIC_READING_CONSUMPTION, "kWh", "mdi:lightning-bolt"),
            ("voltage", "Voltage", TOPIC_READING_VOLTAGE, "V", "mdi:sine-wave"),
            ("current", "Current", TOPIC_READING_CURRENT, "A", "mdi:current-ac"),
        ]
        device_classes = {"kWh": "energy", "V": "voltage", "A": "current"}
        for key, name, suffix, unit, icon in sensors:
            config = self._common(key, name)
            config.update({
                "state_topic": f"{self._base}/{suffix}",
                "unit_of_measurement": unit,
                "device_class": device_classes[unit],
                "icon": icon,
            })
            if unit == "kWh":
                config["state_class"] = "total"
            else:
                config["state_class"] = "measurement"
            out.append(("sensor", key, config))

        reading_ts = self._common("reading_timestamp", "Latest Reading")
        reading_ts.update({
            "state_topic": f"{self._base}/{TOPIC_READING_TIMESTAMP}",
            "device_class": "timestamp",
            "icon": "mdi:clock-outline",
        })
        out.append(("sensor", "reading_timestamp", reading_ts))

        relay = self._common("relay", "Relay")
        relay.update({
            "command_topic": f"{self._base}/{TOPIC_RELAY_SET}",
            "state_topic": f"{self._base}/{TOPIC_RELAY}",
            "payload_on": "on",
            "payload_off": "off",
            "state_on": "on",
            "state_off": "off",
            "icon": "mdi:electric-switch",
        })
        out.append(("switch", "relay", relay))

        for key, name, suffix, icon in (
            ("relay_pending", "Relay Command Pending", TOPIC_RELAY_PENDING, "mdi:timer-sand"),
            ("refreshing", "Refreshing", TOPIC_REFRESHING, "mdi:refresh"),
        ):
            config = self._common(key, name)
            config.update({"state_topic": f"{self._base}/{suffix}", "icon": icon})
            out.append(("binary_sensor", key, config))

        for key, name, suffix, icon in (
            ("refresh", "Refresh", TOPIC_REFRESH, "mdi:refresh"),
            ("report_refresh", "Refresh Port Report", TOPIC_REPORT_REFRESH, "mdi:file-document-outline"),
        ):
            config = self._common(key, name)
            config.update({"command_topic": f"{self._base}/{suffix}", "icon": icon})
            out.append(("button", key, config))

        return out
