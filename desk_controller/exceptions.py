"""Desk controller exceptions."""


class DeskError(Exception):
    """Base exception for desk controller errors."""


class DeskConnectionError(DeskError):
    """Raised when connection to desk fails."""


class DeskNotFoundError(DeskConnectionError):
    """Raised when no desk advertises at the configured address."""


class DeskCommunicationError(DeskError):
    """Raised when BLE communication fails during operation."""


class DeskReadError(DeskCommunicationError):
    """Raised when the height characteristic cannot be read or decoded."""


class DeskMoveError(DeskCommunicationError):
    """Raised when a move is rejected or does not complete."""


class DeskSubscribeError(DeskCommunicationError):
    """Raised when the height notification stream fails or ends."""
