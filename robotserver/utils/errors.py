"""
Custom exception types for the RobotServer request/response pipeline.
Keep this focused and non-redundant; prefer built-ins where appropriate.
"""


class RobotServerError(RuntimeError):
    """Base class for failures reported by the SDK core."""

    prefix = "RobotServer Error"

    def __init__(self, message: str):
        self.original_message = message
        super().__init__(f"{self.prefix}: {message}")

    def __str__(self):
        return f"{self.prefix}: {self.original_message}"


class TransportError(RobotServerError):
    """Connect/write/read failure on the byte stream."""

    prefix = "Transport Error"


class CorrelationError(RobotServerError):
    """A pending request could not be matched to a response."""

    prefix = "Correlation Error"


class RequestTimeoutError(CorrelationError):
    """No response arrived before the request deadline."""

    prefix = "Request Timeout"


class SessionClosedError(CorrelationError):
    """The session was torn down while the request was outstanding."""

    prefix = "Session Closed"
