"""Configuration loading for the meter remote client."""

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass

from .const import (
    DEFAULT_BASE_URL,
    DEFAULT_HA_DISCOVERY_PREFIX,
    DEFAULT_METER_NUMBER,
    DEFAULT_MQTT_TOPIC_PREFIX,
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    OPTIONS_PATH,
    SESSION_FILE,
)

logger = logging.getLogger(__name__)


@dataclass
class AppConfig:
    """Application configuration."""

    # Backend
    base_url: str = DEFAULT_BASE_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    # Meter and credentials
    meter_number: str = DEFAULT_METER_NUMBER
    username: str = ""
    password: str = ""

    # Telemetry
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL

    # Session persistence
    session_file: str = SESSION_FILE

    # MQTT presentation
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: str = ""
    mqtt_password: str = ""
    mqtt_topic_prefix: str = DEFAULT_MQTT_TOPIC_PREFIX

    # HA Discovery
    ha_discovery_prefix: str = DEFAULT_HA_DISCOVERY_PREFIX

    log_level: str = "INFO"


def load_config(options_path: str = OPTIONS_PATH) -> AppConfig:
    """Load configuration from add-on options or environment variables."""
    config = AppConfig()

    # Try loading from add-on options.json
    if os.path.exists(options_path):
        try:
            with open(options_path) as f:
                options = json.load(f)
            logger.info("Loaded configuration from %s", options_path)
            _apply_options(config, options)
            return config
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to load %s: %s, falling back to env vars", options_path, e)

    # Fallback: environment variables
    _apply_env(config)
    return config


def _positive(name: str, raw, default: float) -> float:
    """Parse a strictly positive number, keeping the default on bad input."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid %s %r, using %.0f", name, raw, default)
        return default
    if not math.isfinite(value) or value <= 0:
        logger.warning("%s must be a positive number (got %s), using %.0f", name, raw, default)
        return default
    return value


def _apply_options(config: AppConfig, options: dict) -> None:
    """Apply options.json values to config."""
    if options.get("base_url"):
        config.base_url = options["base_url"].rstrip("/")
    if options.get("request_timeout") is not None:
        config.request_timeout = _positive(
            "request_timeout", options["request_timeout"], config.request_timeout
        )
    if options.get("meter_number"):
        config.meter_number = str(options["meter_number"])
    if options.get("username"):
        config.username = options["username"]
    if options.get("password"):
        config.password = options["password"]
    if options.get("refresh_interval") is not None:
        config.refresh_interval = _positive(
            "refresh_interval", options["refresh_interval"], config.refresh_interval
        )
    if options.get("session_file"):
        config.session_file = options["session_file"]
    if options.get("mqtt_host"):
        config.mqtt_host = options["mqtt_host"]
    if options.get("mqtt_port"):
        config.mqtt_port = int(options["mqtt_port"])
    if options.get("mqtt_username"):
        config.mqtt_username = options["mqtt_username"]
    if options.get("mqtt_password"):
        config.mqtt_password = options["mqtt_password"]
    if options.get("mqtt_topic_prefix"):
        config.mqtt_topic_prefix = options["mqtt_topic_prefix"].strip("/")
    if options.get("ha_discovery_prefix"):
        config.ha_discovery_prefix = options["ha_discovery_prefix"]
    if options.get("log_level"):
        config.log_level = str(options["log_level"]).upper()


def _apply_env(config: AppConfig) -> None:
    """Apply environment variables to config."""
    config.base_url = os.environ.get("METER_BASE_URL", config.base_url).rstrip("/")
    config.request_timeout = _positive(
        "request_timeout",
        os.environ.get("METER_REQUEST_TIMEOUT", config.request_timeout),
        config.request_timeout,
    )
    config.meter_number = os.environ.get("METER_NUMBER", config.meter_number)
    config.username = os.environ.get("METER_USERNAME", config.username)
    config.password = os.environ.get("METER_PASSWORD", config.password)
    config.refresh_interval = _positive(
        "refresh_interval",
        os.environ.get("METER_REFRESH_INTERVAL", config.refresh_interval),
        config.refresh_interval,
    )
    config.session_file = os.environ.get("METER_SESSION_FILE", config.session_file)

    config.mqtt_host = os.environ.get("MQTT_HOST", config.mqtt_host)
    config.mqtt_port = int(os.environ.get("MQTT_PORT", config.mqtt_port))
    config.mqtt_username = os.environ.get("MQTT_USERNAME", config.mqtt_username)
    config.mqtt_password = os.environ.get("MQTT_PASSWORD", config.mqtt_password)
    config.mqtt_topic_prefix = os.environ.get(
        "MQTT_TOPIC_PREFIX", config.mqtt_topic_prefix
    ).strip("/")
    config.ha_discovery_prefix = os.environ.get(
        "HA_DISCOVERY_PREFIX", config.ha_discovery_prefix
    )
    config.log_level = os.environ.get("LOG_LEVEL", config.log_level).upper()
