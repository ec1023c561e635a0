"""Backend REST client for the power meter service."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from .const import (
    DEFAULT_REQUEST_TIMEOUT,
    ROUTE_ADMIN_USER_DELETE,
    ROUTE_ADMIN_USER_UPDATE,
    ROUTE_ADMIN_USERS,
    ROUTE_CURRENT_POWER,
    ROUTE_LATEST_READING,
    ROUTE_LOGIN,
    ROUTE_PORT_REPORT,
    ROUTE_REGISTER,
    ROUTE_RELAY_CONTROL,
    ROUTE_UPDATE_CONSUMPTION,
)
from .models import (
    MeterReading,
    PowerSnapshot,
    RegistrationForm,
    RelayState,
    ReportEntry,
    SessionResult,
    UserRecord,
)

logger = logging.getLogger(__name__)


# ---- Exceptions ----------------------------------------------------------------


class MeterApiError(Exception):
    """Base class for every failure raised by the client."""


class NetworkError(MeterApiError):
    """No connectivity, DNS failure or connection reset."""


class ApiTimeoutError(MeterApiError, TimeoutError):
    """Request exceeded the configured timeout."""


class ServerError(MeterApiError):
    """Backend answered with a non-2xx status."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.message = message


class AuthError(MeterApiError):
    """Credentials rejected or login response unusable."""


class MalformedResponseError(MeterApiError):
    """Response body could not be parsed into the expected shape."""


def _error_message(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        for key in ("error", "message"):
            if body.get(key):
                return str(body[key])
    if isinstance(body, str) and body.strip():
        return body.strip()[:200]
    return fallback


def _multipart(fields: dict[str, Any]) -> aiohttp.MultipartWriter:
    """Build a multipart/form-data body; the auth endpoints reject urlencoded forms."""
    writer = aiohttp.MultipartWriter("form-data")
    for name, value in fields.items():
        if value is None:
            continue
        part = writer.append(str(value))
        part.set_content_disposition("form-data", name=name)
    return writer


# ---- Client ----------------------------------------------------------------------


class MeterApiClient:
    """Typed calls against the meter backend.

    The client never retries; every failure is raised as a MeterApiError
    subclass and retry policy is left to the caller. Session cookies live in
    the cookie jar of the aiohttp session passed in.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _request(
        self,
        method: str,
        route: str,
        *,
        json_body: Any | None = None,
        data: Any | None = None,
        params: dict[str, str] | None = None,
    ) -> tuple[int, Any]:
        """Send a request and return (status, decoded body).

        Raises NetworkError/ApiTimeoutError for transport failures and
        MalformedResponseError when the body is not JSON. Status handling is
        left to the caller.
        """
        url = f"{self._base_url}{route}"
        try:
            async with self._session.request(
                method,
                url,
                json=json_body,
                data=data,
                params=params,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            ) as resp:
                raw = await resp.read()
                charset = resp.charset or "utf-8"
                status = resp.status
        except asyncio.TimeoutError as e:
            logger.warning("%s %s timed out after %.0fs", method, route, self._timeout.total)
            raise ApiTimeoutError(f"{method} {route} timed out") from e
        except aiohttp.ClientError as e:
            logger.warning("%s %s failed: %s", method, route, e)
            raise NetworkError(f"{method} {route} failed: {e}") from e

        logger.debug("%s %s -> %d", method, route, status)
        try:
            text = raw.decode(charset)
        except (UnicodeDecodeError, LookupError) as e:
            if status >= 400:
                return status, raw.decode("utf-8", errors="replace")
            raise MalformedResponseError(f"Undecodable body from {route}: {e}") from e
        if not text.strip():
            return status, None
        try:
            return status, json.loads(text)
        except ValueError as e:
            if status >= 400:
                return status, text
            raise MalformedResponseError(f"Invalid JSON from {route}: {text[:200]}") from e

    async def _call(self, method: str, route: str, **kwargs: Any) -> Any:
        status, body = await self._request(method, route, **kwargs)
        if status >= 400:
            message = _error_message(body, f"{method} {route} failed")
            logger.warning("%s %s -> %d %s", method, route, status, message)
            raise ServerError(status, message)
        return body

    # ---- Authentication -------------------------------------------------------

    async def authenticate(self, username: str, password: str) -> SessionResult:
        """POST /login with multipart form fields."""
        try:
            status, body = await self._request(
                "POST",
                ROUTE_LOGIN,
                data=_multipart({"username": username, "password": password}),
            )
        except MalformedResponseError as e:
            raise AuthError(f"Unreadable login response: {e}") from e

        if status >= 400:
            raise AuthError(_error_message(body, f"Login failed with HTTP {status}"))
        if not isinstance(body, dict):
            raise AuthError("Unreadable login response")
        if not body.get("success"):
            raise AuthError(_error_message(body, "Invalid username or password"))

        logger.info("Logged in as %s (role=%s)", username, body.get("role"))
        return SessionResult(user=body.get("user"), role=body.get("role"))

    async def register(self, form: RegistrationForm) -> dict[str, Any]:
        """POST /register with multipart form fields."""
        body = await self._call("POST", ROUTE_REGISTER, data=_multipart(form.to_form()))
        if isinstance(body, dict) and body.get("success") is False:
            raise ServerError(200, _error_message(body, "Registration failed"))
        return body if isinstance(body, dict) else {}

    # ---- Telemetry ------------------------------------------------------------

    async def fetch_current_power(self, meter_number: str) -> PowerSnapshot:
        body = await self._call("GET", ROUTE_CURRENT_POWER.format(meter_number))
        try:
            return PowerSnapshot.from_dict(body)
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(f"Unexpected current power payload: {e}") from e

    async def fetch_latest_reading(self, meter_number: str) -> MeterReading:
        body = await self._call("GET", ROUTE_LATEST_READING.format(meter_number))
        try:
            return MeterReading.from_dict(body)
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(f"Unexpected latest reading payload: {e}") from e

    async def fetch_port_report(self, meter_number: str) -> list[ReportEntry]:
        """GET the full report; entries are returned in backend order."""
        body = await self._call("GET", ROUTE_PORT_REPORT.format(meter_number))
        if not isinstance(body, list):
            logger.warning("Port report for %s is not a list, treating as empty", meter_number)
            return []
        try:
            return [ReportEntry.from_dict(item) for item in body]
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(f"Unexpected port report entry: {e}") from e

    # ---- Power management -----------------------------------------------------

    async def set_relay_state(self, meter_number: str, desired: RelayState) -> RelayState:
        """Command the relay and return the state the backend confirmed.

        A response without a status field is taken as acceptance of desired.
        """
        body = await self._call(
            "POST",
            ROUTE_RELAY_CONTROL,
            json_body={"meter_number": meter_number, "status": desired.value},
        )
        if isinstance(body, dict):
            if body.get("success") is False:
                raise ServerError(200, _error_message(body, "Relay command rejected"))
            raw = body.get("status")
            if raw is not None:
                try:
                    confirmed = RelayState(str(raw).lower())
                except ValueError as e:
                    raise MalformedResponseError(f"Unknown relay status {raw!r}") from e
                if confirmed is not desired:
                    logger.warning(
                        "Meter %s: relay requested %s, backend kept %s",
                        meter_number, desired.value, confirmed.value,
                    )
                return confirmed
        return desired

    async def update_consumption(self, payload: dict[str, Any]) -> Any:
        return await self._call("POST", ROUTE_UPDATE_CONSUMPTION, json_body=payload)

    # ---- Admin ----------------------------------------------------------------

    async def list_users(self, search: str = "") -> list[UserRecord]:
        body = await self._call("GET", ROUTE_ADMIN_USERS, params={"search": search})
        if not isinstance(body, list):
            raise MalformedResponseError("User list is not a list")
        try:
            return [UserRecord.from_dict(item) for item in body]
        except (KeyError, TypeError) as e:
            raise MalformedResponseError(f"Unexpected user record: {e}") from e

    async def update_user(self, user_id: Any, fields: dict[str, Any]) -> Any:
        return await self._call("POST", ROUTE_ADMIN_USER_UPDATE.format(user_id), json_body=fields)

    async def delete_user(self, user_id: Any) -> Any:
        return await self._call("DELETE", ROUTE_ADMIN_USER_DELETE.format(user_id))
