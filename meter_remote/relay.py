"""Relay Controller: optimistic relay toggle with backend reconciliation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .api import MeterApiClient, MeterApiError
from .const import ERROR_TITLE, MSG_RELAY_FAILED, MSG_RELAY_SUCCESS, SUCCESS_TITLE
from .events import Emitter
from .models import MeterIdentity, Notification, RelayPhase, RelayState, RelayStatus

logger = logging.getLogger(__name__)


class RelayController:
    """Toggles the relay of one meter.

    Idle -> Pending: cached state flips immediately and the command is sent.
    Pending -> Settled: cached state becomes the backend's confirmed value,
    or rolls back to the pre-toggle value on any failure.
    Settled -> Idle: after a success, one telemetry refresh is triggered first.

    Only one command is outstanding at a time; toggle requests made while
    Pending are refused.
    """

    def __init__(
        self,
        api: MeterApiClient,
        meter: MeterIdentity,
        initial: RelayState = RelayState.ON,
        on_confirmed: Callable[[], Awaitable[object]] | None = None,
    ) -> None:
        self._api = api
        self._meter = meter
        self._on_confirmed = on_confirmed

        self._state = initial
        self._confirmed: RelayState | None = None
        self._phase = RelayPhase.IDLE

        self.on_status: Emitter[RelayStatus] = Emitter("relay status")
        self.on_notification: Emitter[Notification] = Emitter("relay notification")

    @property
    def state(self) -> RelayState:
        """Cached relay state; optimistic while pending."""
        return self._state

    @property
    def phase(self) -> RelayPhase:
        return self._phase

    @property
    def pending(self) -> bool:
        return self._phase is RelayPhase.PENDING

    @property
    def can_toggle(self) -> bool:
        return self._phase is RelayPhase.IDLE

    @property
    def status(self) -> RelayStatus:
        return RelayStatus(state=self._state, phase=self._phase, confirmed=self._confirmed)

    def _transition(self, phase: RelayPhase, state: RelayState) -> None:
        """Single place where phase and cached state change."""
        if phase is not self._phase or state is not self._state:
            logger.info(
                "Meter %s relay: %s/%s -> %s/%s",
                self._meter.meter_number,
                self._phase.value, self._state.value,
                phase.value, state.value,
            )
        self._phase = phase
        self._state = state
        self.on_status.emit(self.status)

    def adopt(self, state: RelayState) -> bool:
        """Take a backend-reported relay state as confirmed while idle."""
        if self._phase is not RelayPhase.IDLE:
            return False
        self._confirmed = state
        self._transition(RelayPhase.IDLE, state)
        return True

    async def set_state(self, desired: RelayState) -> bool:
        """Drive the relay to desired, toggling only if it differs."""
        if self._phase is RelayPhase.IDLE and desired is self._state:
            logger.debug("Meter %s relay already %s", self._meter.meter_number, desired.value)
            return True
        return await self.toggle()

    async def toggle(self) -> bool:
        """Flip the relay.

        Returns True when the backend confirmed the command, False when the
        request was refused (already pending) or the command failed.
        """
        if self._phase is not RelayPhase.IDLE:
            logger.warning(
                "Meter %s relay command already pending, toggle refused",
                self._meter.meter_number,
            )
            return False

        previous = self._state
        desired = previous.flipped()
        self._transition(RelayPhase.PENDING, desired)

        try:
            confirmed = await self._api.set_relay_state(self._meter.meter_number, desired)
        except asyncio.CancelledError:
            self._transition(RelayPhase.SETTLED, previous)
            self._transition(RelayPhase.IDLE, previous)
            raise
        except Exception as e:
            if isinstance(e, MeterApiError):
                logger.warning("Meter %s relay command failed: %s", self._meter.meter_number, e)
            else:
                logger.exception("Unexpected error in relay command for meter %s", self._meter.meter_number)
            self._transition(RelayPhase.SETTLED, previous)
            self.on_notification.emit(Notification(ERROR_TITLE, MSG_RELAY_FAILED))
            self._transition(RelayPhase.IDLE, previous)
            return False

        self._confirmed = confirmed
        self._transition(RelayPhase.SETTLED, confirmed)
        self.on_notification.emit(
            Notification(SUCCESS_TITLE, MSG_RELAY_SUCCESS.format(confirmed.value.upper()), is_error=False)
        )
        try:
            if self._on_confirmed is not None:
                await self._on_confirmed()
        except Exception:
            logger.exception("Post-command refresh failed for meter %s", self._meter.meter_number)
        finally:
            self._transition(RelayPhase.IDLE, confirmed)
        return True
