"""
RobotServer Python SDK

A client-side protocol engine for commanding and querying a quadruped robot over
the RobotServer XML-over-TCP protocol.

Key components:
- RobotServerSdk: Synchronous facade (connect, status, motion, navigation)
- AsyncRobotServerClient: asyncio front end over the same core
- NavigationTaskTracker: Start / cancel / query lifecycle of the navigation task
- TransportSession: The single connection, framing and response routing
- MockRobotStream: In-process simulated robot for tests and demos
"""

from ._version import __version__
from .client.async_client import AsyncRobotServerClient
from .client.navigation import NavigationTaskTracker, TaskState
from .client.sdk import RobotServerSdk, SdkOptions
from .protocol.types import (
    ErrorCodeCancelTask,
    ErrorCodeNavigation,
    ErrorCodeQueryStatus,
    NavigationPoint,
    RealTimeStatus,
    TaskStatusResult,
)
from .transports import MockRobotStream, TransportSession

__all__ = [
    "__version__",
    "RobotServerSdk",
    "SdkOptions",
    "AsyncRobotServerClient",
    "NavigationTaskTracker",
    "TaskState",
    "TransportSession",
    "MockRobotStream",
    "NavigationPoint",
    "RealTimeStatus",
    "TaskStatusResult",
    "ErrorCodeNavigation",
    "ErrorCodeQueryStatus",
    "ErrorCodeCancelTask",
]
