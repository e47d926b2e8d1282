"""
CLI interface for desk control.

Provides the ``desk`` command (sit, stand, absolute moves and height
monitoring) and ``desk-scan`` for finding the desk's hardware address.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from contextlib import suppress
from enum import Enum

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from desk_controller.config import (
    DEFAULT_SCAN_TIMEOUT,
    ENV_LOG_LEVEL,
    SIT_HEIGHT_M,
    STAND_HEIGHT_M,
    Settings,
    resolve_log_level,
)
from desk_controller.controller import DeskController
from desk_controller.exceptions import (
    DeskCommunicationError,
    DeskConnectionError,
    DeskError,
    DeskNotFoundError,
)
from desk_controller.monitor import HeightCell, HeightMonitor
from desk_controller.scanner import print_devices, scan_devices

logger = logging.getLogger(__name__)

error_console = Console(stderr=True)


class Action(Enum):
    """What a single invocation does after connecting."""

    MOVE = "move"
    STAND = "stand"
    SIT = "sit"
    MONITOR = "monitor"
    IDLE = "idle"


def uint8(value: str) -> int:
    """argparse type for a whole number of centimeters (0-255)."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer value: {value!r}") from None
    if not 0 <= number <= 255:
        raise argparse.ArgumentTypeError(f"{number} is outside 0-255")
    return number


def centimeters_to_meters(value: int) -> float:
    return value / 100


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="desk",
        description="Control an IKEA Idåsen / Linak standing desk over BLE.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                # Connect and report the height (with -v)
  %(prog)s --sit          # Move to 74cm
  %(prog)s --stand        # Move to 112cm
  %(prog)s --move 95      # Move to 95cm
  %(prog)s --monitor      # Log height changes until Ctrl+C
""",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--sit", action="store_true", help=f"Move to the sitting preset ({SIT_HEIGHT_M}m)"
    )
    parser.add_argument(
        "--stand", action="store_true", help=f"Move to the standing preset ({STAND_HEIGHT_M}m)"
    )
    parser.add_argument(
        "-m",
        "--monitor",
        action="store_true",
        help="Log height changes, including manual moves, until interrupted",
    )
    parser.add_argument(
        "-t",
        "--move",
        dest="move_to",
        type=uint8,
        metavar="CM",
        help="Move to a height in centimeters; takes priority over other actions",
    )
    parser.add_argument(
        "-a",
        "--address",
        help="Desk hardware address (default: $DESK_ADDRESS)",
    )
    return parser


def select_action(args: argparse.Namespace) -> Action:
    """Pick the single action for this run (move > stand > sit > monitor)."""
    if args.move_to is not None:
        return Action.MOVE
    if args.stand:
        return Action.STAND
    if args.sit:
        return Action.SIT
    if args.monitor:
        return Action.MONITOR
    return Action.IDLE


def configure_logging(verbose: bool) -> int:
    """Log to stdout at the level from $DESK_LOG_LEVEL, or DEBUG with --verbose."""
    level = resolve_log_level(os.getenv(ENV_LOG_LEVEL), verbose)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(file=sys.stdout), show_path=False)],
        force=True,
    )
    return level


async def monitor_height(desk: DeskController, interval: float) -> None:
    """Log height changes until SIGINT/SIGTERM or the stream ends."""
    cell = await desk.monitor_height_notification_stream(HeightCell())

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    signals = (signal.SIGINT, signal.SIGTERM)
    for sig in signals:
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await HeightMonitor(cell, interval).run(stop)
    finally:
        for sig in signals:
            with suppress(NotImplementedError):
                loop.remove_signal_handler(sig)


async def move_desk(desk: DeskController, target: float) -> None:
    """Move to target, stopping the desk if the move is interrupted."""
    try:
        await desk.move_to_target(target)
    except (asyncio.CancelledError, KeyboardInterrupt):
        logger.warning("move interrupted, stopping desk")
        await desk.stop()
        raise


async def run(args: argparse.Namespace, settings: Settings) -> None:
    """Connect to the desk and perform the selected action."""
    logger.debug("input arguments %s", vars(args))
    action = select_action(args)

    desk = DeskController(
        args.address or settings.address,
        connect_timeout=settings.connect_timeout,
        scan_timeout=settings.scan_timeout,
    )
    await desk.connect()

    try:
        logger.info("connected to desk: %s", desk.name)

        if action is Action.MOVE:
            await move_desk(desk, centimeters_to_meters(args.move_to))
            return

        height = await desk.get_height()
        logger.debug("starting desk position %s", height)

        if action is Action.STAND:
            await move_desk(desk, STAND_HEIGHT_M)
        elif action is Action.SIT:
            await move_desk(desk, SIT_HEIGHT_M)
        elif action is Action.MONITOR:
            await monitor_height(desk, settings.monitor_interval)

    finally:
        await desk.disconnect()


async def run_scan(timeout: float):
    """Scan for BLE devices."""
    console = Console()
    console.print(f"🔍 Scanning for BLE devices ({timeout:g} seconds)...\n")
    devices = await scan_devices(timeout=timeout)
    print_devices(devices, console)

    desks = [d for d in devices if d.is_desk]
    if desks:
        console.print(f"\n✅ Found {len(desks)} desk(s):")
        for desk in desks:
            console.print(f"   • {desk.name} ({desk.address})", markup=False)
        console.print("\nSet DESK_ADDRESS to the address of your desk.")
    else:
        console.print("\n⚠️  No desks found. Make sure your desk is powered on.")


def _report(e: DeskError) -> None:
    if isinstance(e, DeskNotFoundError):
        message = f"❌ {e}"
    elif isinstance(e, DeskConnectionError):
        message = f"❌ Connection failed: {e}"
    elif isinstance(e, DeskCommunicationError):
        message = f"❌ Communication error: {e}"
    else:
        message = f"❌ {e}"
    error_console.print(message, markup=False, highlight=False)


def main(argv: list[str] | None = None) -> None:
    """Entry point for desk command."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    settings = Settings.from_env()

    try:
        asyncio.run(run(args, settings))
    except DeskError as e:
        _report(e)
        sys.exit(1)
    except KeyboardInterrupt:
        error_console.print("\n🛑 Interrupted")
        sys.exit(130)


def main_scan(argv: list[str] | None = None) -> None:
    """Entry point for desk-scan command."""
    load_dotenv()
    parser = argparse.ArgumentParser(prog="desk-scan", description="Scan for nearby BLE desks.")
    parser.add_argument(
        "-d",
        "--duration",
        type=float,
        default=None,
        help=f"Scan duration in seconds (default: $DESK_SCAN_TIMEOUT or {DEFAULT_SCAN_TIMEOUT:g})",
    )
    args = parser.parse_args(argv)
    configure_logging(verbose=False)
    timeout = args.duration or Settings.from_env().scan_timeout

    try:
        asyncio.run(run_scan(timeout))
    except DeskError as e:
        _report(e)
        sys.exit(1)


if __name__ == "__main__":
    main()
