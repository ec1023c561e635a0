"""Data models for the meter remote client."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any

from .const import LABEL_CONNECTED, LABEL_DISCONNECTED


class RelayState(Enum):
    """Relay position at the meter."""

    ON = "on"
    OFF = "off"

    def flipped(self) -> RelayState:
        return RelayState.OFF if self is RelayState.ON else RelayState.ON

    @property
    def label(self) -> str:
        return LABEL_CONNECTED if self is RelayState.ON else LABEL_DISCONNECTED


class RelayPhase(Enum):
    """Relay controller phases."""

    IDLE = "idle"
    PENDING = "pending"  # Command in flight, cached state is optimistic
    SETTLED = "settled"  # Command resolved, about to return to idle


def parse_timestamp(raw: Any) -> datetime:
    """Parse a backend timestamp.

    Accepts ISO 8601 strings (with or without a trailing Z), RFC 1123 strings
    as produced by Flask's JSON encoder, and epoch seconds.
    """
    if isinstance(raw, bool):
        raise ValueError(f"Invalid timestamp: {raw!r}")
    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(raw, tz=timezone.utc)
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError(f"Invalid timestamp: {raw!r}")
    text = raw.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid timestamp: {raw!r}") from e


def _number(payload: dict[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{key} is not numeric: {value!r}")
    return float(value)


@dataclass(frozen=True)
class MeterIdentity:
    """Key for all telemetry and report queries."""

    meter_number: str


@dataclass(frozen=True)
class PowerSnapshot:
    """Current power figures for a meter (kWh)."""

    current_power: float
    total_allocated: float
    total_consumed: float

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> PowerSnapshot:
        return cls(
            current_power=_number(payload, "current_power"),
            total_allocated=_number(payload, "total_allocated"),
            total_consumed=_number(payload, "total_consumed"),
        )


@dataclass(frozen=True)
class MeterReading:
    """Latest reading reported by a meter."""

    timestamp: datetime
    consumption: float  # kWh
    voltage: float  # V
    current: float  # A

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> MeterReading:
        return cls(
            timestamp=parse_timestamp(payload["timestamp"]),
            consumption=_number(payload, "consumption"),
            voltage=_number(payload, "voltage"),
            current=_number(payload, "current"),
        )


@dataclass(frozen=True)
class ReportEntry:
    """One historical per-port reading."""

    timestamp: datetime
    consumption: float
    voltage: float
    current: float
    power_factor: float | None
    status: RelayState

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ReportEntry:
        power_factor = payload.get("power_factor")
        return cls(
            timestamp=parse_timestamp(payload["timestamp"]),
            consumption=_number(payload, "consumption"),
            voltage=_number(payload, "voltage"),
            current=_number(payload, "current"),
            power_factor=None if power_factor is None else float(power_factor),
            status=RelayState(str(payload["status"]).lower()),
        )


@dataclass(frozen=True)
class SessionResult:
    """Outcome of a successful login."""

    user: Any = None
    role: str | None = None


@dataclass
class SessionInfo:
    """Persisted login session."""

    username: str
    role: str | None = None
    meter_number: str | None = None
    user: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "role": self.role,
            "meter_number": self.meter_number,
            "user": self.user,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> SessionInfo:
        return cls(
            username=str(payload["username"]),
            role=payload.get("role"),
            meter_number=payload.get("meter_number"),
            user=payload.get("user"),
        )


@dataclass(frozen=True)
class RegistrationForm:
    """Fields accepted by the registration endpoint."""

    username: str
    password: str
    email: str
    full_name: str
    meter_number: str
    phone_number: str = ""

    def to_form(self) -> dict[str, str]:
        return {
            "username": self.username,
            "password": self.password,
            "email": self.email,
            "fullName": self.full_name,
            "meterNumber": self.meter_number,
            "phoneNumber": self.phone_number,
        }


@dataclass(frozen=True)
class Notification:
    """A single user-visible message."""

    title: str
    message: str
    is_error: bool = True


@dataclass(frozen=True)
class TelemetryState:
    """Last published telemetry for a meter.

    snapshot and reading always come from the same refresh cycle; after a
    failed cycle both keep their previous values and error is set.
    """

    snapshot: PowerSnapshot | None = None
    reading: MeterReading | None = None
    error: str | None = None
    updated_at: float | None = None


@dataclass(frozen=True)
class RelayStatus:
    """Relay controller state as seen by a presentation layer."""

    state: RelayState
    phase: RelayPhase = RelayPhase.IDLE
    confirmed: RelayState | None = None

    @property
    def pending(self) -> bool:
        return self.phase is RelayPhase.PENDING


@dataclass(frozen=True)
class ReportRow:
    """Display-ready rendering of a ReportEntry."""

    date: str
    time: str
    consumption: str
    voltage: str
    current: str
    power_factor: str
    status_label: str

    def to_dict(self) -> dict[str, str]:
        return {
            "date": self.date,
            "time": self.time,
            "consumption": self.consumption,
            "voltage": self.voltage,
            "current": self.current,
            "power_factor": self.power_factor,
            "status": self.status_label,
        }


@dataclass(frozen=True)
class ReportResult:
    """Ordered, read-only report for one meter."""

    meter_number: str
    entries: tuple[ReportEntry, ...] = ()
    rows: tuple[ReportRow, ...] = ()
    error: str | None = None
    loading: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.entries


@dataclass
class UserRecord:
    """User entry from the admin API."""

    id: Any
    username: str
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> UserRecord:
        extra = {k: v for k, v in payload.items() if k not in ("id", "username")}
        return cls(id=payload["id"], username=str(payload.get("username", "")), extra=extra)
