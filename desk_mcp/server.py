"""
MCP Server for IKEA Standing Desk Control.

Exposes desk control as tools that LLMs can call via the Model Context Protocol.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastmcp import Context, FastMCP

from desk_controller import (
    MAX_HEIGHT_M,
    MIN_HEIGHT_M,
    SIT_HEIGHT_M,
    STAND_HEIGHT_M,
    DeskCommunicationError,
    DeskConnectionError,
    DeskController,
    DeskNotFoundError,
    Settings,
)

# Create MCP server
mcp = FastMCP(
    "Standing Desk Controller",
    instructions="Control your IKEA Idåsen / Linak standing desk via BLE. "
    "Tools: get_height (check position), move_to_height (absolute positioning in cm), "
    "sit/stand (preset positions), stop_desk (emergency stop).",
)


def _describe(height_m: float) -> str:
    return f"{height_m * 100:.1f}cm"


def _error_message(e: Exception) -> str:
    if isinstance(e, DeskNotFoundError):
        return "Error: Desk not found. Is it powered on?"
    if isinstance(e, DeskConnectionError):
        return f"Error: Could not connect to desk - {e}"
    return f"Error: Communication failed - {e}"


@asynccontextmanager
async def get_desk() -> AsyncIterator[DeskController]:
    """Context manager for desk connection with automatic cleanup."""
    settings = Settings.from_env()
    desk = DeskController(
        settings.address,
        connect_timeout=settings.connect_timeout,
        scan_timeout=settings.scan_timeout,
    )
    try:
        await desk.connect()
        yield desk
    finally:
        await desk.disconnect()


async def _move(target_m: float) -> str:
    try:
        async with get_desk() as desk:
            final = await desk.move_to_target(target_m)
            return f"Moved to {_describe(final)}. Target was {_describe(target_m)}."
    except (DeskConnectionError, DeskCommunicationError) as e:
        return _error_message(e)


@mcp.tool()
async def get_height(ctx: Context) -> str:
    """
    Get the current desk height.

    Returns the height in centimeters.
    """
    try:
        async with get_desk() as desk:
            height = await desk.get_height()
            return f"Current height: {_describe(height)}"
    except (DeskConnectionError, DeskCommunicationError) as e:
        return _error_message(e)


@mcp.tool()
async def move_to_height(ctx: Context, height_cm: int) -> str:
    """
    Move the desk to a specific height in centimeters.

    Args:
        height_cm: Target height in centimeters (valid range: 62-127cm)

    Returns:
        Result of the movement including final height.
    """
    if not 0 <= height_cm <= 255:
        return "Error: height_cm must be between 0 and 255"
    target = height_cm / 100
    if not MIN_HEIGHT_M <= target <= MAX_HEIGHT_M:
        return f"Error: Height must be between {_describe(MIN_HEIGHT_M)} and {_describe(MAX_HEIGHT_M)}"
    return await _move(target)


@mcp.tool()
async def sit(ctx: Context) -> str:
    """Move the desk to the sitting preset."""
    return await _move(SIT_HEIGHT_M)


@mcp.tool()
async def stand(ctx: Context) -> str:
    """Move the desk to the standing preset."""
    return await _move(STAND_HEIGHT_M)


@mcp.tool()
async def stop_desk(ctx: Context) -> str:
    """
    Emergency stop - immediately halt desk movement.

    Use this if the desk is moving and you need to stop it immediately.
    """
    try:
        async with get_desk() as desk:
            await desk.stop()
            height = await desk.get_height()
            return f"Desk stopped at {_describe(height)}"
    except (DeskConnectionError, DeskCommunicationError) as e:
        return _error_message(e)


def run_server():
    """Run the MCP server."""
    load_dotenv()
    mcp.run()


if __name__ == "__main__":
    run_server()
