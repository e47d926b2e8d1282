"""
IKEA Idåsen / Linak Standing Desk Session

Owns the BLE connection to a single desk identified by its hardware address.
Heights are exposed in meters.

Protocol reverse-engineered from:
- https://github.com/anson-vandoren/linak-desk-spec
- https://github.com/j5lien/esphome-idasen-desk-controller
"""

import asyncio
import logging
import struct
import warnings
from contextlib import suppress

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from desk_controller.exceptions import (
    DeskConnectionError,
    DeskMoveError,
    DeskNotFoundError,
    DeskReadError,
    DeskSubscribeError,
)
from desk_controller.monitor import HeightCell

# Suppress bleak's internal asyncio warnings (race condition in CoreBluetooth backend)
warnings.filterwarnings("ignore", message=".*invalid state.*")
logging.getLogger("bleak").setLevel(logging.ERROR)

logger = logging.getLogger(__name__)


# === LINAK BLE UUIDS ===
UUID_COMMAND = "99fa0002-338a-1024-8a49-009c0215f78a"
UUID_HEIGHT = "99fa0021-338a-1024-8a49-009c0215f78a"

# === COMMANDS ===
CMD_UP = bytearray([0x47, 0x00])
CMD_DOWN = bytearray([0x46, 0x00])
CMD_STOP = bytearray([0xFF, 0x00])
CMD_WAKEUP = bytearray([0xFE, 0x00])

# === CONSTANTS ===
BASE_HEIGHT_M = 0.62
MIN_HEIGHT_M = 0.62
MAX_HEIGHT_M = 1.27

# Raw height units are tenths of a millimeter
RAW_UNITS_PER_METER = 10_000

MOVE_TOLERANCE_M = 0.005
MOVE_STEP_INTERVAL = 0.1
SETTLE_DELAY = 0.3
STALL_LIMIT = 3


def raw_to_meters(raw: int) -> float:
    """Convert raw units to meters (includes base offset)."""
    return round(BASE_HEIGHT_M + raw / RAW_UNITS_PER_METER, 4)


def parse_height_data(data: bytes) -> tuple[float, int]:
    """Parse height characteristic data. Returns (height_m, speed)."""
    if len(data) < 4:
        raise DeskReadError(f"Height payload too short ({len(data)} bytes)")
    raw_height, speed = struct.unpack("<Hh", bytes(data[0:4]))
    return raw_to_meters(raw_height), speed


class DeskController:
    """Session with an IKEA Idåsen / Linak standing desk."""

    def __init__(
        self,
        address: str,
        connect_timeout: float = 30.0,
        scan_timeout: float = 10.0,
    ):
        self.address = address
        self.connect_timeout = connect_timeout
        self.scan_timeout = scan_timeout
        self.device = None
        self.client = None
        self._connected = False
        self._disconnecting = False  # Track intentional disconnect
        self._height_cells: list[HeightCell] = []

    @property
    def name(self) -> str:
        """Advertised name of the connected desk."""
        if self.device is not None and self.device.name:
            return self.device.name
        return self.address

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """
        Resolve the desk address and connect.

        Raises:
            DeskNotFoundError: If nothing advertises at the address
            DeskConnectionError: If the scan or connection fails
        """
        logger.debug("searching for desk at %s", self.address)

        try:
            self.device = await BleakScanner.find_device_by_address(
                self.address, timeout=self.scan_timeout
            )
        except BleakError as e:
            raise DeskConnectionError(f"BLE scan failed: {e}") from e

        if not self.device:
            raise DeskNotFoundError(f"Desk at {self.address} not found. Is it powered on?")

        logger.debug("found %s, connecting", self.name)

        self.client = BleakClient(
            self.device,
            timeout=self.connect_timeout,
            disconnected_callback=self._on_disconnect,
        )
        try:
            await self.client.connect()
        except asyncio.TimeoutError as e:
            raise DeskConnectionError("Connection timed out") from e
        except BleakError as e:
            raise DeskConnectionError(f"BLE error: {e}") from e

        if not self.client.is_connected:
            raise DeskConnectionError("Connection failed")

        self._connected = True
        self._disconnecting = False
        await self._safe_write(CMD_WAKEUP)

    def _on_disconnect(self, client: BleakClient):
        """Handle disconnection and end any notification streams."""
        was_connected = self._connected
        self._connected = False
        if was_connected and not self._disconnecting:
            logger.warning("Disconnected unexpectedly")
        for cell in self._height_cells:
            cell.close()

    async def _safe_write(self, cmd: bytearray) -> bool:
        """Write a command, reporting failure instead of raising."""
        if not self._connected or not self.client:
            return False
        try:
            await self.client.write_gatt_char(UUID_COMMAND, cmd)
            return True
        except BleakError as e:
            logger.debug("command write failed: %s", e)
            return False

    async def _read_height(self) -> float:
        if not self._connected or not self.client:
            raise DeskReadError("Not connected")
        try:
            data = await self.client.read_gatt_char(UUID_HEIGHT)
        except BleakError as e:
            raise DeskReadError(f"Failed to read height: {e}") from e
        height, _speed = parse_height_data(data)
        return height

    async def get_height(self) -> float:
        """Get current desk height in meters."""
        return await self._read_height()

    async def stop(self):
        """Emergency stop desk movement."""
        await self._safe_write(CMD_STOP)
        logger.info("Stopped")

    async def move_to_target(self, target: float, tolerance: float = MOVE_TOLERANCE_M) -> float:
        """
        Move desk to an absolute height with collision detection.

        Args:
            target: Target height in meters
            tolerance: Acceptable error margin in meters

        Returns:
            Final height in meters once the desk has settled

        Raises:
            DeskMoveError: If the target is out of range, the desk is blocked,
                or communication fails during movement
        """
        if not MIN_HEIGHT_M <= target <= MAX_HEIGHT_M:
            raise DeskMoveError(
                f"Target {target}m outside supported range {MIN_HEIGHT_M}-{MAX_HEIGHT_M}m"
            )

        try:
            current = await self._read_height()
        except DeskReadError as e:
            raise DeskMoveError(f"Cannot start move: {e}") from e

        if abs(target - current) <= tolerance:
            logger.debug("already at %sm", current)
            return current

        direction = "up" if target > current else "down"
        cmd = CMD_UP if direction == "up" else CMD_DOWN

        # Stopping distance accounts for momentum (gravity assists downward)
        stopping_distance = 0.010 if direction == "down" else 0.008

        logger.info("moving %s: %sm -> %sm", direction, current, target)

        stall_count = 0
        commands_sent = 0
        last_height = current

        try:
            while True:
                if not self._connected:
                    raise DeskMoveError("Lost connection during movement")

                current = await self._read_height()
                remaining = target - current if direction == "up" else current - target

                if remaining <= stopping_distance:
                    break

                # Collision detection: height not changing once commands are flowing
                if commands_sent and current == last_height:
                    stall_count += 1
                    if stall_count >= STALL_LIMIT:
                        raise DeskMoveError(f"Collision detected at {current}m (blocked)")
                else:
                    stall_count = 0
                    last_height = current

                if not await self._safe_write(cmd):
                    raise DeskMoveError("Lost connection during movement")
                commands_sent += 1

                await asyncio.sleep(MOVE_STEP_INTERVAL)

            await self._safe_write(CMD_STOP)
            await asyncio.sleep(SETTLE_DELAY)
            final = await self._read_height()

        except DeskReadError as e:
            await self._safe_write(CMD_STOP)
            raise DeskMoveError(f"Lost height feedback during movement: {e}") from e
        except DeskMoveError:
            await self._safe_write(CMD_STOP)
            raise

        logger.debug("move done: %sm (error: %.4fm)", final, abs(final - target))
        return final

    async def monitor_height_notification_stream(self, cell: HeightCell) -> HeightCell:
        """
        Deliver height notifications into ``cell`` in the background.

        Raises:
            DeskSubscribeError: If not connected or notifications cannot start
        """
        if not self._connected or not self.client:
            raise DeskSubscribeError("Not connected")

        def _height_callback(sender, data: bytearray):
            try:
                height, _speed = parse_height_data(data)
            except DeskReadError as e:
                logger.debug("ignoring height notification: %s", e)
                return
            cell.set(height)

        try:
            await self.client.start_notify(UUID_HEIGHT, _height_callback)
        except BleakError as e:
            raise DeskSubscribeError(f"Failed to subscribe to height: {e}") from e

        self._height_cells.append(cell)
        return cell

    async def disconnect(self):
        """Disconnect from the desk gracefully."""
        self._disconnecting = True
        if self.client:
            with suppress(BleakError):
                if self._connected and self._height_cells:
                    await self.client.stop_notify(UUID_HEIGHT)
                await self.client.disconnect()
            self._connected = False
            self._height_cells.clear()
            logger.debug("disconnected")
