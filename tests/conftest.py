import asyncio
from datetime import datetime

import pytest

from meter_remote.models import MeterIdentity, MeterReading, PowerSnapshot, RelayState, ReportEntry

METER = MeterIdentity("12345678")


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks run up to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeApi:
    """Stand-in transport whose calls can be held open with asyncio.Event gates."""

    def __init__(self):
        self.power = PowerSnapshot(current_power=5, total_allocated=100, total_consumed=40)
        self.reading = MeterReading(
            timestamp=datetime(2024, 10, 15, 10, 0, 0), consumption=1.5, voltage=230.0, current=6.5
        )
        self.report = []
        self.power_error = None
        self.reading_error = None
        self.relay_error = None
        self.report_error = None
        self.relay_result = None
        self.gate = None
        self.relay_gate = None
        self.report_gate = None
        self.power_calls = 0
        self.reading_calls = 0
        self.report_calls = 0
        self.relay_calls = []

    async def fetch_current_power(self, meter_number):
        self.power_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.power_error is not None:
            raise self.power_error
        return self.power

    async def fetch_latest_reading(self, meter_number):
        self.reading_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.reading_error is not None:
            raise self.reading_error
        return self.reading

    async def fetch_port_report(self, meter_number):
        self.report_calls += 1
        if self.report_gate is not None:
            await self.report_gate.wait()
        if self.report_error is not None:
            raise self.report_error
        return list(self.report)

    async def set_relay_state(self, meter_number, desired):
        self.relay_calls.append(desired)
        if self.relay_gate is not None:
            await self.relay_gate.wait()
        if self.relay_error is not None:
            raise self.relay_error
        return self.relay_result or desired


def make_entry(day: int, status: RelayState = RelayState.ON, power_factor=0.95) -> ReportEntry:
    return ReportEntry(
        timestamp=datetime(2024, 10, day, 8, 30, 0),
        consumption=2.5,
        voltage=231.0,
        current=4.0,
        power_factor=power_factor,
        status=status,
    )


@pytest.fixture
def fake_api():
    return FakeApi()
