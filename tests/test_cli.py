"""Tests for the desk command."""

import asyncio
import logging
import os
import signal
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from desk_controller.cli import (
    Action,
    build_parser,
    centimeters_to_meters,
    configure_logging,
    main,
    main_scan,
    run,
    select_action,
)
from desk_controller.config import Settings
from desk_controller.exceptions import DeskConnectionError, DeskMoveError, DeskNotFoundError
from desk_controller.monitor import HeightCell
from desk_controller.scanner import ScannedDevice


def parse(*argv: str):
    return build_parser().parse_args(list(argv))


@pytest.fixture
def mock_desk():
    """Patch the CLI's DeskController with a connected mock session."""
    desk = MagicMock()
    desk.name = "Desk 4242"
    desk.connect = AsyncMock()
    desk.disconnect = AsyncMock()
    desk.get_height = AsyncMock(return_value=0.8)
    desk.move_to_target = AsyncMock(side_effect=lambda target: target)
    desk.stop = AsyncMock()
    desk.monitor_height_notification_stream = AsyncMock(side_effect=lambda cell: cell)

    with patch("desk_controller.cli.DeskController", return_value=desk) as mock_cls:
        desk.cls = mock_cls
        yield desk


@pytest.fixture
def no_logging_setup():
    with patch("desk_controller.cli.configure_logging") as mock_configure:
        yield mock_configure


@pytest.mark.parametrize(
    ("argv", "expected"),
    [
        ((), Action.IDLE),
        (("--monitor",), Action.MONITOR),
        (("--sit",), Action.SIT),
        (("--stand",), Action.STAND),
        (("--sit", "--stand"), Action.STAND),
        (("--sit", "--monitor"), Action.SIT),
        (("--move", "90", "--sit", "--stand", "-m"), Action.MOVE),
        (("-t", "0"), Action.MOVE),
    ],
)
def test_select_action_priority(argv, expected):
    assert select_action(parse(*argv)) is expected


def test_parser_short_flags():
    args = parse("-v", "-m", "-t", "74", "-a", "11:22:33:44:55:66")

    assert args.verbose
    assert args.monitor
    assert args.move_to == 74
    assert args.address == "11:22:33:44:55:66"


@pytest.mark.parametrize("value", ["256", "-1", "abc", "7.5"])
def test_parser_rejects_non_uint8_move(value, capsys):
    with pytest.raises(SystemExit) as exc_info:
        parse("--move", value)

    assert exc_info.value.code == 2


@pytest.mark.parametrize("value", [0, 1, 62, 74, 99, 112, 127, 255])
def test_centimeters_to_meters(value):
    assert centimeters_to_meters(value) == value / 100


@pytest.mark.asyncio
async def test_run_move_takes_priority(mock_desk):
    await run(parse("--move", "74", "--sit", "--stand", "--monitor"), Settings())

    mock_desk.move_to_target.assert_awaited_once_with(0.74)
    mock_desk.get_height.assert_not_awaited()
    mock_desk.monitor_height_notification_stream.assert_not_awaited()
    mock_desk.disconnect.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_stand(mock_desk):
    await run(parse("--stand", "--sit"), Settings())

    mock_desk.get_height.assert_awaited_once()
    mock_desk.move_to_target.assert_awaited_once_with(1.12)


@pytest.mark.asyncio
async def test_run_sit(mock_desk):
    await run(parse("--sit", "--monitor"), Settings())

    mock_desk.move_to_target.assert_awaited_once_with(0.74)
    mock_desk.monitor_height_notification_stream.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_idle_reads_height_once(mock_desk, caplog):
    with caplog.at_level(logging.DEBUG, logger="desk_controller.cli"):
        await run(parse(), Settings())

    mock_desk.get_height.assert_awaited_once()
    mock_desk.move_to_target.assert_not_awaited()
    assert "connected to desk: Desk 4242" in caplog.text
    assert "starting desk position 0.8" in caplog.text


@pytest.mark.asyncio
async def test_run_uses_configured_address(mock_desk):
    settings = Settings(address="11:22:33:44:55:66", connect_timeout=7.0, scan_timeout=3.0)

    await run(parse(), settings)

    mock_desk.cls.assert_called_once_with(
        "11:22:33:44:55:66", connect_timeout=7.0, scan_timeout=3.0
    )


@pytest.mark.asyncio
async def test_run_address_flag_overrides_settings(mock_desk):
    await run(parse("-a", "AA:AA:AA:AA:AA:AA"), Settings(address="11:22:33:44:55:66"))

    assert mock_desk.cls.call_args.args[0] == "AA:AA:AA:AA:AA:AA"


@pytest.mark.asyncio
async def test_run_monitor(mock_desk):
    with patch("desk_controller.cli.HeightMonitor") as mock_monitor_cls:
        mock_monitor_cls.return_value.run = AsyncMock()
        await run(parse("--monitor"), Settings(monitor_interval=0.2))

    cell = mock_desk.monitor_height_notification_stream.await_args.args[0]
    assert isinstance(cell, HeightCell)
    mock_monitor_cls.assert_called_once_with(cell, 0.2)
    stop_event = mock_monitor_cls.return_value.run.await_args.args[0]
    assert isinstance(stop_event, asyncio.Event)
    mock_desk.move_to_target.assert_not_awaited()
    mock_desk.disconnect.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="asyncio signal handlers need a Unix event loop")
async def test_run_monitor_until_interrupted(mock_desk, caplog):
    """SIGINT ends monitoring cleanly after logging each height transition."""
    feeder = []

    async def feed(cell):
        for height in [0.74, 0.74, 0.90, 0.90, 1.12]:
            cell.set(height)
            await asyncio.sleep(0.03)
        os.kill(os.getpid(), signal.SIGINT)

    def subscribe(cell):
        feeder.append(asyncio.ensure_future(feed(cell)))
        return cell

    mock_desk.monitor_height_notification_stream.side_effect = subscribe

    with caplog.at_level(logging.INFO, logger="desk_controller.monitor"):
        await asyncio.wait_for(run(parse("--monitor"), Settings(monitor_interval=0.01)), timeout=5)
    await feeder[0]

    lines = [r.getMessage() for r in caplog.records if r.name == "desk_controller.monitor"]
    assert lines == ["height: 0.74", "height: 0.9", "height: 1.12"]
    mock_desk.disconnect.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.parametrize("interrupt", [asyncio.CancelledError, KeyboardInterrupt])
@pytest.mark.parametrize("argv", [("--move", "100"), ("--stand",), ("--sit",)])
async def test_run_interrupted_move_stops_desk(mock_desk, argv, interrupt):
    mock_desk.move_to_target.side_effect = interrupt

    with pytest.raises(interrupt):
        await run(parse(*argv), Settings())

    mock_desk.stop.assert_awaited_once()
    mock_desk.disconnect.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_failed_move_does_not_send_extra_stop(mock_desk):
    mock_desk.move_to_target.side_effect = DeskMoveError("Collision detected at 0.9m")

    with pytest.raises(DeskMoveError):
        await run(parse("--stand"), Settings())

    mock_desk.stop.assert_not_awaited()
    mock_desk.disconnect.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_connection_failure_does_nothing_else(mock_desk):
    mock_desk.connect.side_effect = DeskConnectionError("timed out")

    with pytest.raises(DeskConnectionError):
        await run(parse("--sit"), Settings())

    mock_desk.get_height.assert_not_awaited()
    mock_desk.move_to_target.assert_not_awaited()


def test_main_exits_zero_after_move(mock_desk, no_logging_setup):
    main(["--move", "74"])

    mock_desk.move_to_target.assert_awaited_once_with(0.74)
    no_logging_setup.assert_called_once_with(False)


def test_main_connection_failure_exits_nonzero(mock_desk, no_logging_setup, capsys):
    mock_desk.connect.side_effect = DeskConnectionError("BLE error: adapter busy")

    with pytest.raises(SystemExit) as exc_info:
        main(["--sit"])

    assert exc_info.value.code == 1
    mock_desk.move_to_target.assert_not_awaited()
    assert "Connection failed: BLE error: adapter busy" in capsys.readouterr().err


def test_main_desk_not_found(mock_desk, no_logging_setup, capsys):
    mock_desk.connect.side_effect = DeskNotFoundError("Desk at AA not found")

    with pytest.raises(SystemExit) as exc_info:
        main([])

    assert exc_info.value.code == 1
    assert "Desk at AA not found" in capsys.readouterr().err


def test_main_move_failure_exits_nonzero(mock_desk, no_logging_setup, capsys):
    mock_desk.move_to_target.side_effect = DeskMoveError("Collision detected at 0.9m")

    with pytest.raises(SystemExit) as exc_info:
        main(["--stand"])

    assert exc_info.value.code == 1
    assert "Communication error: Collision detected" in capsys.readouterr().err
    mock_desk.disconnect.assert_awaited_once()


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def test_configure_logging_verbose(restore_root_logger, monkeypatch):
    monkeypatch.delenv("DESK_LOG_LEVEL", raising=False)

    assert configure_logging(verbose=True) == logging.DEBUG
    assert restore_root_logger.level == logging.DEBUG


def test_configure_logging_env_level(restore_root_logger, monkeypatch):
    monkeypatch.setenv("DESK_LOG_LEVEL", "warning")

    assert configure_logging(verbose=False) == logging.WARNING
    assert restore_root_logger.level == logging.WARNING


def test_main_scan_lists_desks(no_logging_setup, capsys):
    desks = [
        ScannedDevice(name="Desk 4242", address="33:33:33:33:33:33", rssi=-60),
        ScannedDevice(name="Phone", address="11:11:11:11:11:11", rssi=-80),
    ]

    with patch("desk_controller.cli.scan_devices", new=AsyncMock(return_value=desks)) as mock_scan:
        main_scan(["--duration", "2"])

    mock_scan.assert_awaited_once_with(timeout=2.0)
    out = capsys.readouterr().out
    assert "Found 1 desk(s)" in out
    assert "Desk 4242 (33:33:33:33:33:33)" in out


def test_main_scan_adapter_failure(no_logging_setup, capsys):
    with patch(
        "desk_controller.cli.scan_devices",
        new=AsyncMock(side_effect=DeskConnectionError("BLE scan failed: no adapter")),
    ):
        with pytest.raises(SystemExit) as exc_info:
            main_scan([])

    assert exc_info.value.code == 1
    assert "no adapter" in capsys.readouterr().err
