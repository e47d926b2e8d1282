"""Common test fixtures for desk controller tests."""

import struct
from unittest.mock import AsyncMock, MagicMock

import pytest

from desk_controller.controller import BASE_HEIGHT_M, RAW_UNITS_PER_METER, DeskController

DESK_ADDRESS = "AA:BB:CC:DD:EE:FF"


def height_payload(height_m: float, speed: int = 0) -> bytearray:
    """Encode a height the way the desk reports it."""
    raw = round((height_m - BASE_HEIGHT_M) * RAW_UNITS_PER_METER)
    return bytearray(struct.pack("<Hh", raw, speed))


@pytest.fixture
def mock_ble_device() -> MagicMock:
    """Return a mock BLE device."""
    device = MagicMock()
    device.address = DESK_ADDRESS
    device.name = "Desk 4242"
    return device


@pytest.fixture
def mock_bleak_client() -> MagicMock:
    """Return a mock Bleak client."""
    client = MagicMock()
    client.is_connected = True
    client.connect = AsyncMock(return_value=True)
    client.disconnect = AsyncMock()
    client.start_notify = AsyncMock()
    client.stop_notify = AsyncMock()
    client.write_gatt_char = AsyncMock()
    client.read_gatt_char = AsyncMock(return_value=height_payload(0.74))
    return client


@pytest.fixture
def connected_desk(mock_ble_device, mock_bleak_client) -> DeskController:
    """Return a controller that behaves as if connect() succeeded."""
    desk = DeskController(DESK_ADDRESS)
    desk.device = mock_ble_device
    desk.client = mock_bleak_client
    desk._connected = True
    return desk


@pytest.fixture
def fast_moves(monkeypatch):
    """Remove the real delays from movement loops."""
    import desk_controller.controller as controller

    monkeypatch.setattr(controller, "MOVE_STEP_INTERVAL", 0)
    monkeypatch.setattr(controller, "SETTLE_DELAY", 0)
