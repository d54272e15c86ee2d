"""
Custom Exception Classes for the pool monitor

Hierarchical exception structure for error handling across services.
None of these terminate the process: the polling loop logs them and the
affected period simply ends up with missing data.
"""


class BsmonError(Exception):
    """Base exception for all monitor errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(BsmonError):
    """Configuration-related errors"""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(f"Config Error: {message}", recoverable)


class DeviceError(BsmonError):
    """Device communication errors"""

    def __init__(
        self,
        message: str,
        device_name: str | None = None,
        recoverable: bool = True,
    ):
        self.device_name = device_name
        super().__init__(f"Device Error: {message}", recoverable)


class TransientReadError(DeviceError):
    """A single field read failed or timed out; the whole tick is discarded"""

    def __init__(
        self,
        message: str,
        device_name: str | None = None,
        field_name: str | None = None,
        timed_out: bool = False,
    ):
        self.field_name = field_name
        self.timed_out = timed_out
        super().__init__(message, device_name, recoverable=True)


class DeviceConnectionError(DeviceError):
    """Transport-level failure (connect refused, socket closed, handshake timeout)"""

    def __init__(
        self,
        message: str,
        device_name: str | None = None,
        host: str | None = None,
        port: int | None = None,
    ):
        self.host = host
        self.port = port
        super().__init__(message, device_name, recoverable=True)


class PersistenceError(BsmonError):
    """Creating or appending to a log file failed"""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(f"Persistence Error: {message}", recoverable=True)


class MalformedHistoryError(BsmonError):
    """A stored log row could not be parsed"""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        line_number: int | None = None,
    ):
        self.path = path
        self.line_number = line_number
        location = f"{path}:{line_number}" if path and line_number else (path or "?")
        super().__init__(f"Malformed row at {location}: {message}", recoverable=True)
