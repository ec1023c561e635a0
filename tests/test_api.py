import asyncio

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from meter_remote.api import (
    ApiTimeoutError,
    AuthError,
    MalformedResponseError,
    MeterApiClient,
    NetworkError,
    ServerError,
)
from meter_remote.models import PowerSnapshot, RegistrationForm, RelayState

READING = {
    "timestamp": "2024-10-15T10:00:00",
    "consumption": 1.5,
    "voltage": 230,
    "current": 6.5,
}

REPORT = [
    {
        "timestamp": "Tue, 15 Oct 2024 10:00:00 GMT",
        "consumption": 2.0,
        "voltage": 229.5,
        "current": 5,
        "power_factor": 0.9,
        "status": "on",
    },
    {
        "timestamp": "2024-10-14T10:00:00Z",
        "consumption": 1.0,
        "voltage": 231,
        "current": 3,
        "power_factor": None,
        "status": "OFF",
    },
]


def build_app(seen):
    async def login(request):
        seen["login_content_type"] = request.content_type
        form = await request.post()
        if form.get("username") == "paci" and form.get("password") == "paci@123":
            return web.json_response({"success": True, "user": {"meter_number": "12345678"}, "role": "user"})
        if form.get("username") == "garbled":
            return web.Response(body=b"\xff\xfe", content_type="application/json")
        if form.get("username") == "locked":
            return web.json_response({"success": False, "error": "Account locked"})
        return web.json_response({"success": False, "error": "Invalid credentials"}, status=401)

    async def register(request):
        seen["register"] = dict(await request.post())
        return web.json_response({"success": True})

    async def current_power(request):
        meter = request.match_info["meter"]
        if meter == "slow":
            await asyncio.sleep(1)
        if meter == "undecodable":
            return web.Response(body=b'{"current_power": "\xff\xfe"}', content_type="application/json")
        if meter == "garbage":
            return web.Response(text="<html>oops</html>")
        if meter == "unknown":
            return web.json_response({"error": "Meter not found"}, status=404)
        if meter == "partial":
            return web.json_response({"current_power": 5})
        return web.json_response({"current_power": 5, "total_allocated": 100, "total_consumed": 40})

    async def latest_reading(request):
        return web.json_response(READING)

    async def port_report(request):
        meter = request.match_info["meter"]
        if meter == "empty":
            return web.json_response([])
        if meter == "wrapped":
            return web.json_response({"message": "no data"})
        if meter == "broken":
            return web.json_response([{"timestamp": "yesterday"}])
        return web.json_response(REPORT)

    async def relay_control(request):
        body = await request.json()
        seen["relay"] = body
        if body["meter_number"] == "rejecting":
            return web.json_response({"success": False, "error": "Relay offline"})
        if body["meter_number"] == "stuck":
            return web.json_response({"success": True, "status": "on"})
        if body["meter_number"] == "silent":
            return web.json_response({"success": True})
        return web.json_response({"success": True, "status": body["status"]})

    async def update_consumption(request):
        seen["consumption"] = await request.json()
        return web.json_response({"success": True})

    async def users(request):
        search = request.query.get("search", "")
        records = [{"id": 1, "username": "paci", "email": "p@x"}, {"id": 2, "username": "admin"}]
        return web.json_response([r for r in records if search in r["username"]])

    async def update_user(request):
        seen["update_user"] = (request.match_info["user_id"], await request.json())
        return web.json_response({"success": True})

    async def delete_user(request):
        seen["delete_user"] = request.match_info["user_id"]
        return web.json_response({"success": True})

    app = web.Application()
    app.router.add_post("/login", login)
    app.router.add_post("/register", register)
    app.router.add_get("/api/current_power/{meter}", current_power)
    app.router.add_get("/api/latest-reading/{meter}", latest_reading)
    app.router.add_get("/api/port_report/{meter}", port_report)
    app.router.add_post("/api/relay_control", relay_control)
    app.router.add_post("/api/update_consumption", update_consumption)
    app.router.add_get("/admin/api/users", users)
    app.router.add_post("/admin/api/users/{user_id}/update", update_user)
    app.router.add_delete("/admin/api/users/{user_id}/delete", delete_user)
    return app


@pytest.fixture
def seen():
    return {}


@pytest.fixture
async def server(seen):
    test_server = TestServer(build_app(seen))
    await test_server.start_server()
    yield test_server
    await test_server.close()


@pytest.fixture
async def client(server):
    async with aiohttp.ClientSession() as session:
        yield MeterApiClient(session, f"http://{server.host}:{server.port}/", timeout=0.3)


async def test_fetch_current_power(client):
    snapshot = await client.fetch_current_power("12345678")
    assert snapshot == PowerSnapshot(current_power=5, total_allocated=100, total_consumed=40)


async def test_fetch_latest_reading(client):
    reading = await client.fetch_latest_reading("12345678")
    assert reading.timestamp.year == 2024
    assert reading.voltage == 230.0
    assert reading.current == 6.5


async def test_server_error_carries_backend_message(client):
    with pytest.raises(ServerError) as info:
        await client.fetch_current_power("unknown")
    assert info.value.status == 404
    assert info.value.message == "Meter not found"


async def test_non_json_body_is_malformed(client):
    with pytest.raises(MalformedResponseError):
        await client.fetch_current_power("garbage")


async def test_missing_fields_are_malformed(client):
    with pytest.raises(MalformedResponseError):
        await client.fetch_current_power("partial")


async def test_timeout(client):
    with pytest.raises(ApiTimeoutError) as info:
        await client.fetch_current_power("slow")
    assert isinstance(info.value, TimeoutError)


async def test_connection_refused_is_network_error():
    async with aiohttp.ClientSession() as session:
        api = MeterApiClient(session, "http://127.0.0.1:1", timeout=2)
        with pytest.raises(NetworkError):
            await api.fetch_latest_reading("12345678")


async def test_port_report_keeps_order_and_parses_status(client):
    entries = await client.fetch_port_report("12345678")
    assert [e.status for e in entries] == [RelayState.ON, RelayState.OFF]
    assert entries[0].timestamp.day == 15
    assert entries[0].power_factor == 0.9
    assert entries[1].power_factor is None


async def test_port_report_empty_and_non_list(client):
    assert await client.fetch_port_report("empty") == []
    assert await client.fetch_port_report("wrapped") == []


async def test_port_report_bad_entry(client):
    with pytest.raises(MalformedResponseError):
        await client.fetch_port_report("broken")


async def test_authenticate_uses_multipart(client, seen):
    result = await client.authenticate("paci", "paci@123")
    assert result.role == "user"
    assert result.user == {"meter_number": "12345678"}
    assert seen["login_content_type"] == "multipart/form-data"


async def test_authenticate_rejected(client):
    with pytest.raises(AuthError, match="Invalid credentials"):
        await client.authenticate("paci", "wrong")


async def test_authenticate_unsuccessful_payload(client):
    with pytest.raises(AuthError, match="Account locked"):
        await client.authenticate("locked", "x")


async def test_register_sends_form_fields(client, seen):
    form = RegistrationForm(
        username="new",
        password="pw",
        email="new@example.com",
        full_name="New User",
        meter_number="87654321",
        phone_number="555",
    )
    await client.register(form)
    assert seen["register"]["fullName"] == "New User"
    assert seen["register"]["meterNumber"] == "87654321"


async def test_set_relay_state_sends_json(client, seen):
    confirmed = await client.set_relay_state("12345678", RelayState.OFF)
    assert confirmed is RelayState.OFF
    assert seen["relay"] == {"meter_number": "12345678", "status": "off"}


async def test_set_relay_state_returns_backend_value(client):
    assert await client.set_relay_state("stuck", RelayState.OFF) is RelayState.ON


async def test_set_relay_state_without_status_accepts_desired(client):
    assert await client.set_relay_state("silent", RelayState.OFF) is RelayState.OFF


async def test_set_relay_state_rejected(client):
    with pytest.raises(ServerError, match="Relay offline"):
        await client.set_relay_state("rejecting", RelayState.ON)


async def test_update_consumption(client, seen):
    await client.update_consumption({"meter_number": "12345678", "consumption": 1.2})
    assert seen["consumption"]["consumption"] == 1.2


async def test_admin_calls(client, seen):
    users = await client.list_users("pac")
    assert [u.username for u in users] == ["paci"]
    assert users[0].extra == {"email": "p@x"}

    await client.update_user(1, {"email": "q@x"})
    assert seen["update_user"] == ("1", {"email": "q@x"})

    await client.delete_user(2)
    assert seen["delete_user"] == "2"


async def test_undecodable_body_is_malformed(client):
    with pytest.raises(MalformedResponseError):
        await client.fetch_current_power("undecodable")


async def test_undecodable_login_body_is_auth_error(client):
    with pytest.raises(AuthError):
        await client.authenticate("garbled", "x")
