"""
Transport modules for the RobotServer SDK.

This package provides the connection session and the byte streams it can run
over: a TCP socket to the robot, or an in-process simulated robot.
"""

from .mock_transport import MockRobotState, MockRobotStream
from .tcp_transport import ByteStream, SessionState, SocketStream, TransportSession
from .transport_factory import create_session, create_stream_factory, is_simulation_mode

__all__ = [
    "ByteStream",
    "SocketStream",
    "SessionState",
    "TransportSession",
    "MockRobotStream",
    "MockRobotState",
    "create_session",
    "create_stream_factory",
    "is_simulation_mode",
]
