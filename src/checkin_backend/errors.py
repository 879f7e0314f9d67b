"""Exception types raised by the check-in services."""


class CheckinError(Exception):
    """Base class for all check-in backend errors."""


class StorageError(CheckinError):
    """Database could not be opened, initialized or written."""


class GuestNotFoundError(CheckinError):
    def __init__(self, guest_id: int):
        super().__init__(f"Guest {guest_id} not found")
        self.guest_id = guest_id


class InvalidActionError(CheckinError):
    def __init__(self, action: str):
        super().__init__(f"Invalid action: {action!r} (expected 'in' or 'out')")
        self.action = action


class ExportError(CheckinError):
    """Export directory or file could not be written."""
