"""
Transport factory for creating RobotServer sessions.

This module selects the byte stream behind a TransportSession based on
configuration and environment: a real TCP socket, or the in-process mock robot
when simulation mode is enabled.
"""

import logging
import os
from collections.abc import Callable

from .. import config as cfg
from .mock_transport import MockRobotStream
from .tcp_transport import ByteStream, SocketStream, TransportSession

logger = logging.getLogger(__name__)


def is_simulation_mode() -> bool:
    """
    Check if simulation mode is enabled.

    Returns:
        True if ROBOTSERVER_FAKE_ROBOT is set to a truthy value
    """
    fake_robot = str(os.getenv("ROBOTSERVER_FAKE_ROBOT", "0")).lower()
    return fake_robot in ("1", "true", "yes", "on")


def create_stream_factory(transport_type: str | None = None, **kwargs) -> Callable[[], ByteStream]:
    """
    Return a zero-argument factory producing the byte stream for a session.

    Args:
        transport_type: Explicit type ('tcp', 'mock', or None for auto)
        **kwargs: Passed to the stream constructor

    The mock factory hands out one shared MockRobotStream, so the simulated robot
    keeps its state (position, active task) across reconnects.
    """
    if transport_type is None:
        transport_type = "mock" if is_simulation_mode() else "tcp"

    if transport_type == "mock":
        logger.info("Creating MockRobotStream for simulation")
        stream = MockRobotStream(**kwargs)
        return lambda: stream
    if transport_type == "tcp":
        logger.debug("Using TCP socket stream")
        return lambda: SocketStream(**kwargs)
    raise ValueError(f"Unknown transport type: {transport_type}")


def create_session(
    transport_type: str | None = None,
    *,
    request_timeout: float = cfg.REQUEST_TIMEOUT_S,
    connect_timeout: float = cfg.CONNECT_TIMEOUT_S,
    **kwargs,
) -> TransportSession:
    """Create an unconnected TransportSession over the selected stream type."""
    return TransportSession(
        create_stream_factory(transport_type, **kwargs),
        request_timeout=request_timeout,
        connect_timeout=connect_timeout,
    )
