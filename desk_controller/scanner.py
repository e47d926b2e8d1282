"""
BLE Device Scanner

Finds nearby desks so their hardware address can be configured.
"""

from dataclasses import dataclass

from bleak import BleakScanner
from bleak.exc import BleakError
from rich.console import Console
from rich.table import Table

from desk_controller.exceptions import DeskConnectionError

LINAK_SERVICE_PREFIX = "99fa"


@dataclass
class ScannedDevice:
    """Information about a discovered BLE device."""

    name: str | None
    address: str
    rssi: int
    manufacturer_id: int | None = None
    service_uuids: list[str] | None = None

    @property
    def is_desk(self) -> bool:
        """Check if this device appears to be a Linak desk."""
        if self.name and "desk" in self.name.lower():
            return True
        if self.service_uuids:
            return any(uuid.lower().startswith(LINAK_SERVICE_PREFIX) for uuid in self.service_uuids)
        return False


async def scan_devices(
    timeout: float = 10.0,
    filter_desks: bool = False,
) -> list[ScannedDevice]:
    """
    Scan for BLE devices.

    Args:
        timeout: Scan duration in seconds
        filter_desks: If True, only return devices that appear to be desks

    Returns:
        List of discovered devices, sorted by signal strength (strongest first)

    Raises:
        DeskConnectionError: If the Bluetooth adapter cannot scan
    """
    devices: list[ScannedDevice] = []

    try:
        discovered = await BleakScanner.discover(timeout=timeout, return_adv=True)
    except BleakError as e:
        raise DeskConnectionError(f"BLE scan failed: {e}") from e

    for address, (device, adv_data) in discovered.items():
        manufacturer_id = None
        if adv_data.manufacturer_data:
            manufacturer_id = next(iter(adv_data.manufacturer_data))

        scanned = ScannedDevice(
            name=device.name,
            address=address,
            rssi=adv_data.rssi,
            manufacturer_id=manufacturer_id,
            service_uuids=adv_data.service_uuids or None,
        )

        if filter_desks and not scanned.is_desk:
            continue

        devices.append(scanned)

    devices.sort(key=lambda d: d.rssi, reverse=True)

    return devices


def print_devices(devices: list[ScannedDevice], console: Console | None = None) -> None:
    """Print a table of discovered devices."""
    console = console or Console()
    if not devices:
        console.print("No devices found.")
        return

    table = Table()
    table.add_column("Name", max_width=24, overflow="ellipsis", no_wrap=True)
    table.add_column("Address")
    table.add_column("RSSI", justify="right")
    table.add_column("Notes")

    for device in devices:
        notes = []
        if device.is_desk:
            notes.append("[green]DESK[/]")
        if device.manufacturer_id:
            notes.append(f"MFG:0x{device.manufacturer_id:04X}")

        table.add_row(
            device.name or "(unknown)",
            device.address,
            f"{device.rssi} dBm",
            ", ".join(notes),
        )

    console.print(table)
