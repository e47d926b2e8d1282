"""
Desk Controller - command-line control for BLE standing desks.

This package provides tools for connecting to, moving and monitoring
IKEA Idåsen / Linak standing desks over Bluetooth Low Energy.
"""

from desk_controller.config import SIT_HEIGHT_M, STAND_HEIGHT_M, Settings
from desk_controller.controller import MAX_HEIGHT_M, MIN_HEIGHT_M, DeskController
from desk_controller.exceptions import (
    DeskCommunicationError,
    DeskConnectionError,
    DeskError,
    DeskMoveError,
    DeskNotFoundError,
    DeskReadError,
    DeskSubscribeError,
)
from desk_controller.monitor import HeightCell, HeightMonitor

__all__ = [
    # Controller
    "DeskController",
    "MIN_HEIGHT_M",
    "MAX_HEIGHT_M",
    # Errors
    "DeskError",
    "DeskNotFoundError",
    "DeskConnectionError",
    "DeskCommunicationError",
    "DeskReadError",
    "DeskMoveError",
    "DeskSubscribeError",
    # Monitoring
    "HeightCell",
    "HeightMonitor",
    # Config
    "Settings",
    "SIT_HEIGHT_M",
    "STAND_HEIGHT_M",
]
