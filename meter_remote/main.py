"""Entry point for the meter remote client."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import aiohttp

from .api import MeterApiClient, MeterApiError
from .bridge import MeterBridge, base_topic
from .config import AppConfig, load_config
from .const import TOPIC_STATUS
from .ha_discovery import HADiscoveryPublisher
from .mqtt_client import MQTTClient
from .persistence import SessionStore
from .relay import RelayController
from .report import ReportRetriever
from .session import AppSession
from .telemetry import TelemetrySynchronizer

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


async def open_session(api: MeterApiClient, config: AppConfig) -> AppSession:
    """Restore the stored session, logging in again when credentials are configured."""
    app_session = AppSession(api, SessionStore(config.session_file), config.meter_number)
    app_session.restore()

    # Cookies are not persisted, so a configured login always runs
    if config.username and config.password:
        try:
            await app_session.login(config.username, config.password)
        except MeterApiError as e:
            logger.error("Login as %s failed: %s", config.username, e)
    return app_session


async def main() -> None:
    """Run the meter remote client."""
    config = load_config()
    logging.getLogger().setLevel(config.log_level)
    logger.info("Starting meter remote client for %s", config.base_url)

    # Cookie jar must accept cookies from bare IP hosts
    async with aiohttp.ClientSession(cookie_jar=aiohttp.CookieJar(unsafe=True)) as http:
        api = MeterApiClient(http, config.base_url, timeout=config.request_timeout)
        app_session = await open_session(api, config)

        meter = app_session.meter()
        if meter is None:
            logger.error("No meter number configured and none in the stored session")
            return
        logger.info(
            "Meter %s, refresh every %.0fs, timeout %.0fs",
            meter.meter_number,
            config.refresh_interval,
            config.request_timeout,
        )

        # Initialize components
        telemetry = TelemetrySynchronizer(api, meter, config.refresh_interval)
        relay = RelayController(api, meter, on_confirmed=telemetry.refresh_after_change)
        report = ReportRetriever(api, meter)

        mqtt = MQTTClient(
            config, will_topic=f"{base_topic(config.mqtt_topic_prefix, meter.meter_number)}/{TOPIC_STATUS}"
        )
        bridge = MeterBridge(mqtt, config.mqtt_topic_prefix, telemetry, relay, report)
        bridge.setup()
        discovery = HADiscoveryPublisher(config, mqtt, meter.meter_number)

        # Shutdown handler
        shutdown_event = asyncio.Event()

        def _signal_handler() -> None:
            logger.info("Shutdown signal received")
            shutdown_event.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, _signal_handler)

        async def activate() -> None:
            await bridge.publish_status(True)
            await telemetry.activate()
            result = await report.load()
            # Report is newest first; its latest status seeds the relay
            if result.entries:
                relay.adopt(result.entries[0].status)

        async def shutdown_watcher() -> None:
            await shutdown_event.wait()
            logger.info("Shutting down: stopping telemetry")
            telemetry.deactivate()
            await bridge.publish_status(False)
            # Allow messages to be sent
            await asyncio.sleep(1)
            for task in asyncio.all_tasks():
                if task is not asyncio.current_task():
                    task.cancel()

        try:
            await asyncio.gather(
                mqtt.start(),
                activate(),
                discovery.publish_on_connect(),
                shutdown_watcher(),
            )
        except asyncio.CancelledError:
            logger.info("Tasks cancelled, exiting")
        except Exception:
            logger.exception("Unexpected error in main loop")
        finally:
            telemetry.deactivate()
            logger.info("Meter remote client stopped")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
