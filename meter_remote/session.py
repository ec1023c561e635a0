"""Top-level login state, restored once at startup."""

from __future__ import annotations

import logging

from .api import MeterApiClient
from .models import MeterIdentity, SessionInfo
from .persistence import SessionStore

logger = logging.getLogger(__name__)


class AppSession:
    """Holds the logged-in/logged-out state for the application."""

    def __init__(
        self,
        api: MeterApiClient,
        store: SessionStore,
        default_meter_number: str = "",
    ) -> None:
        self._api = api
        self._store = store
        self._default_meter = default_meter_number
        self.current: SessionInfo | None = None

    @property
    def logged_in(self) -> bool:
        return self.current is not None

    def restore(self) -> SessionInfo | None:
        """Load a persisted session; called once at startup."""
        self.current = self._store.load()
        if self.current:
            logger.info("Restored session for %s", self.current.username)
        return self.current

    async def login(self, username: str, password: str) -> SessionInfo:
        """Authenticate and persist the resulting session.

        Raises AuthError (or a transport error) and leaves the previous
        state untouched on failure.
        """
        result = await self._api.authenticate(username, password)
        meter_number = None
        if isinstance(result.user, dict) and result.user.get("meter_number"):
            meter_number = str(result.user["meter_number"])
        self.current = SessionInfo(
            username=username,
            role=result.role,
            meter_number=meter_number or self._default_meter or None,
            user=result.user,
        )
        self._store.save(self.current)
        return self.current

    def logout(self) -> None:
        if self.current:
            logger.info("Logged out %s", self.current.username)
        self.current = None
        self._store.clear()

    def meter(self) -> MeterIdentity | None:
        """Meter to show: the session's own meter, else the configured one."""
        if self.current and self.current.meter_number:
            return MeterIdentity(self.current.meter_number)
        if self._default_meter:
            return MeterIdentity(self._default_meter)
        return None
