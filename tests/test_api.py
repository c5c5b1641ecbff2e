from __future__ import annotations

from typing import Dict

import pytest
from fastapi.testclient import TestClient

from fakes import (
    FakeTransport, make_analog, make_device, make_switch, make_temperature, wait_until_sync
)
from instrument_gateway.app.config import Settings
from instrument_gateway.app.core.gateway_manager import gateway_manager
from instrument_gateway.app.main import create_app
from instrument_gateway.app.models.device_config import ItemKey, ItemKind


def _settings() -> Settings:
    return Settings(error_pause_s=0.001, fault_timeout_s=0.001, cycle_interval_s=0.001, max_errors=3)


def _transports() -> Dict[str, FakeTransport]:
    return {
        "box1": FakeTransport({
            b"a": [b"\x80"], b"l": [b"\x91"], b"m": [b"\x01"],
            b"s": [b"\x01"], b"S": [b"K"], b"C": [b"K"],
        }),
        "box2": FakeTransport({b"h": [b"\x00"], b"H": [b"N"]}),
    }


def _devices():
    return {
        "box1": make_device(
            "box1",
            adcs=[make_analog("battery", "box1", cmdget=b"a"), make_analog("silent", "box1", cmdget=b"z")],
            tmpts=[make_temperature("room", "box1")],
            swts=[make_switch("pump", "box1")],
        ),
        "box2": make_device("box2", swts=[make_switch("heater", "box2", cmdget=b"h", cmdset=b"H", cmdclr=b"c")]),
    }


@pytest.fixture
def client():
    transports = _transports()
    app = create_app(
        _settings(),
        devices=_devices(),
        transport_factory=lambda device: transports[device.device_id],
        configure_logging=False,
    )
    with TestClient(app) as test_client:
        wait_until_sync(lambda: all(
            gateway_manager.cache.get(key) is not None
            for key in (
                ItemKey("box1", ItemKind.ANALOG, "battery"),
                ItemKey("box1", ItemKind.TEMPERATURE, "room"),
                ItemKey("box1", ItemKind.SWITCH, "pump"),
                ItemKey("box2", ItemKind.SWITCH, "heater"),
            )
        ))
        test_client.transports = transports
        yield test_client


def test_get_readings_as_plain_text(client) -> None:
    analog = client.get("/box1/adcs/battery")
    temperature = client.get("/box1/tmpts/room")
    switch = client.get("/box1/swts/pump")

    assert analog.status_code == 200
    assert analog.text == "2.50\n"
    assert analog.headers["content-type"].startswith("text/plain")
    assert temperature.text == "25.1\n"
    assert switch.text == "true\n"
    assert client.get("/box2/swts/heater").text == "false\n"


@pytest.mark.parametrize("path", ["/box9/adcs/battery", "/box1/volts/battery", "/box1/adcs/nope", "/box2/adcs/battery"])
def test_unknown_targets_are_bad_requests(client, path: str) -> None:
    response = client.get(path)

    assert response.status_code == 400
    assert response.json()["detail"]["error_type"] == "ItemNotFoundError"


def test_item_without_reading_is_unavailable(client) -> None:
    response = client.get("/box1/adcs/silent")

    assert response.status_code == 503
    assert response.json()["detail"]["item_id"] == "silent"


def test_set_switch(client) -> None:
    response = client.post("/box1/swts/pump", content=b"false")

    assert response.status_code == 200
    assert response.content == b""
    assert b"C" in client.transports["box1"].writes
    # cached value follows the next poll, not the command
    assert gateway_manager.cache.get(ItemKey("box1", ItemKind.SWITCH, "pump")).value is True


@pytest.mark.parametrize("body", [b"TRUE", b"true\n", b"1", b""])
def test_set_switch_rejects_malformed_bodies(client, body: bytes) -> None:
    response = client.post("/box1/swts/pump", content=body)

    assert response.status_code == 400
    assert response.json()["detail"]["error_type"] == "InvalidRequestError"
    assert b"S" not in client.transports["box1"].writes


def test_only_switches_accept_commands(client) -> None:
    assert client.post("/box1/adcs/battery", content=b"true").status_code == 400
    assert client.post("/box1/swts/nope", content=b"true").status_code == 400


def test_missing_ack_is_a_server_error(client) -> None:
    response = client.post("/box2/swts/heater", content=b"true")

    assert response.status_code == 500
    assert response.json()["detail"]["error_type"] == "AckError"
    assert response.json()["detail"]["device_id"] == "box2"


def test_health_endpoints(client) -> None:
    health = client.get("/api/v1/health")
    device = client.get("/api/v1/health/devices/box1")

    assert health.status_code in (200, 503)
    assert health.json()["total_devices"] == 2
    assert device.status_code == 200
    assert device.json()["device_id"] == "box1"
    assert device.json()["metrics"]["successful_exchanges"] >= 1
    assert client.get("/api/v1/health/devices/box9").status_code == 400
    assert client.get("/api/v1/health/live").json()["alive"] is True
    assert client.get("/api/v1/health/ready").json()["ready"] is True


def test_root_and_status(client) -> None:
    assert client.get("/").json()["message"] == "Instrument Gateway is running"
    assert client.get("/api/v1").json()["version"] == "1.0.0"

    status = client.get("/status").json()
    assert status["device_count"] == 2
    assert status["values"]["box1"]["adcs"]["battery"]["value"] == 2.5
    assert status["values"]["box1"]["adcs"]["silent"] is None


def test_shutdown_closes_every_transport() -> None:
    transports = _transports()
    app = create_app(
        _settings(),
        devices=_devices(),
        transport_factory=lambda device: transports[device.device_id],
        configure_logging=False,
    )

    with TestClient(app):
        assert gateway_manager.is_initialized

    assert not gateway_manager.is_initialized
    assert all(not transport.is_open for transport in transports.values())
