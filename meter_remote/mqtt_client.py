"""MQTT connection for the meter bridge, built on aiomqtt."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

import aiomqtt

from .config import AppConfig
from .const import MQTT_RECONNECT_DELAY

logger = logging.getLogger(__name__)

# Async callback(topic, payload) for a command topic
CommandHandler = Callable[[str, str], Coroutine[Any, Any, None]]


class MQTTClient:
    """Reconnecting MQTT connection with exact-topic command routing.

    Publishes made while disconnected are held per topic, keeping only the
    latest payload, and flushed once the connection is back. A reconnect
    therefore sends the current state of each topic once rather than every
    intermediate value.
    """

    def __init__(self, config: AppConfig, will_topic: str | None = None) -> None:
        self._config = config
        self._will_topic = will_topic
        self._handlers: dict[str, CommandHandler] = {}
        self._connected = asyncio.Event()
        self._client: aiomqtt.Client | None = None
        self._pending: dict[str, tuple[str, bool]] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def connected(self) -> asyncio.Event:
        """Event that is set while the broker connection is up."""
        return self._connected

    @property
    def pending(self) -> dict[str, tuple[str, bool]]:
        """Topic -> (payload, retain) waiting for a connection."""
        return dict(self._pending)

    def register(self, topic: str, handler: CommandHandler) -> None:
        self._handlers[topic] = handler
        logger.debug("Command topic registered: %s", topic)

    async def publish(self, topic: str, payload: str, retain: bool = False) -> None:
        """Send now if connected, otherwise replace the held value for topic."""
        client = self._client
        if client is not None and self._connected.is_set():
            try:
                await client.publish(topic, payload, retain=retain)
                return
            except aiomqtt.MqttError as e:
                logger.warning("Publish to %s failed (%s), holding latest value", topic, e)
        self._hold(topic, payload, retain)

    def publish_nowait(self, topic: str, payload: str, retain: bool = False) -> None:
        """Publish from a synchronous listener callback."""
        task = asyncio.get_running_loop().create_task(self.publish(topic, payload, retain))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background publish failed", exc_info=task.exception())

    def _hold(self, topic: str, payload: str, retain: bool) -> None:
        # Re-insert so flush order follows the most recent update
        self._pending.pop(topic, None)
        self._pending[topic] = (payload, retain)

    async def start(self) -> None:
        """Keep a broker connection open and route inbound commands."""
        will = None
        if self._will_topic:
            will = aiomqtt.Will(self._will_topic, "offline", retain=True)

        while True:
            logger.info(
                "Connecting to MQTT broker at %s:%d",
                self._config.mqtt_host,
                self._config.mqtt_port,
            )
            try:
                async with aiomqtt.Client(
                    hostname=self._config.mqtt_host,
                    port=self._config.mqtt_port,
                    username=self._config.mqtt_username or None,
                    password=self._config.mqtt_password or None,
                    will=will,
                ) as client:
                    await self._on_connect(client)
                    async for message in client.messages:
                        await self.handle_message(str(message.topic), message.payload)
            except aiomqtt.MqttError as e:
                logger.warning(
                    "MQTT connection lost: %s. Reconnecting in %ds...",
                    e,
                    MQTT_RECONNECT_DELAY,
                )
            finally:
                self._connected.clear()
                self._client = None
            await asyncio.sleep(MQTT_RECONNECT_DELAY)

    async def _on_connect(self, client: aiomqtt.Client) -> None:
        self._client = client
        for topic in self._handlers:
            await client.subscribe(topic)
        self._connected.set()
        logger.info("MQTT connected, %d command topics", len(self._handlers))
        await self.flush(client)

    async def flush(self, client: aiomqtt.Client) -> None:
        """Send every held value; stop at the first failure and keep the rest."""
        while self._pending:
            topic = next(iter(self._pending))
            payload, retain = self._pending[topic]
            await client.publish(topic, payload, retain=retain)
            # A newer value may have been held while this one was in flight
            if self._pending.get(topic) == (payload, retain):
                del self._pending[topic]

    async def handle_message(self, topic: str, payload: Any) -> None:
        """Route one inbound message to the handler for its exact topic."""
        handler = self._handlers.get(topic)
        if handler is None:
            logger.debug("No handler for %s", topic)
            return
        if isinstance(payload, (bytes, bytearray)):
            text = payload.decode("utf-8", errors="replace")
        else:
            text = "" if payload is None else str(payload)
        try:
            await handler(topic, text)
        except Exception:
            logger.exception("Command handler for %s failed", topic)
