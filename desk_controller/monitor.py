"""
Height monitoring.

A ``HeightCell`` is written by the desk's notification callback and polled
by ``HeightMonitor``, which logs every height transition.
"""

import asyncio
import logging
import threading

from desk_controller.exceptions import DeskSubscribeError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.05


class HeightCell:
    """Latest reported desk height, guarded by a lock."""

    def __init__(self, initial: float = 0.0):
        self._lock = threading.Lock()
        self._value = initial
        self._closed = False

    def set(self, value: float) -> None:
        with self._lock:
            self._value = value

    def get(self) -> float:
        with self._lock:
            return self._value

    def close(self) -> None:
        """Mark the producing stream as ended."""
        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed


class HeightMonitor:
    """Poll a height cell and log each change."""

    def __init__(self, cell: HeightCell, interval: float = DEFAULT_POLL_INTERVAL):
        if interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {interval}")
        self.cell = cell
        self.interval = interval
        # A first genuine reading of exactly 0.0 is indistinguishable from
        # "no reading yet" and is not logged.
        self.previous = 0.0

    def poll_once(self) -> float | None:
        """
        Check the cell once.

        Returns:
            The new height if it changed since the last poll, else None

        Raises:
            DeskSubscribeError: If the notification stream has ended
        """
        if self.cell.closed:
            raise DeskSubscribeError("Height notification stream closed")

        height = self.cell.get()
        if height == self.previous:
            return None

        logger.info("height: %s", height)
        self.previous = height
        return height

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """
        Poll until ``stop_event`` is set.

        Without a stop event this only ends by raising.
        """
        stop_event = stop_event or asyncio.Event()
        while not stop_event.is_set():
            self.poll_once()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
