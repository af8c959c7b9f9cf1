"""
Synchronous facade for the RobotServer SDK.

RobotServerSdk wires a TransportSession and a NavigationTaskTracker together and
exposes the operations an application needs. It holds no protocol logic:
blocking helpers wait on the session's futures, asynchronous helpers hand the
future back.

- Blocking helpers return None / False on any local error and log it.
- Do not call blocking helpers from inside a response callback; callbacks run on
  the receive thread, which is the thread that would deliver the reply.
"""

import concurrent.futures
import logging
from collections.abc import Callable, Iterable
from concurrent.futures import Future
from dataclasses import dataclass

from .. import config as cfg
from .._version import __version__
from ..protocol.types import (
    MotionControlRequest,
    NavigationPoint,
    RealTimeStatus,
    RealTimeStatusRequest,
    TaskStatusResult,
)
from ..transports.tcp_transport import ByteStream, TransportSession
from ..transports.transport_factory import create_stream_factory
from ..utils.errors import RobotServerError
from .navigation import NavigationTaskTracker, ResultCallback

logger = logging.getLogger(__name__)

# Extra wall-clock slack on top of the request deadline for blocking helpers
_WAIT_MARGIN_S = 1.0


@dataclass
class SdkOptions:
    """Timeouts (seconds) applied to the session."""

    request_timeout: float = cfg.REQUEST_TIMEOUT_S
    connect_timeout: float = cfg.CONNECT_TIMEOUT_S


class RobotServerSdk:
    """
    Client for one robot.

    Example:
        with RobotServerSdk() as sdk:
            if sdk.connect("192.168.1.120", 30000):
                status = sdk.get_real_time_status()
    """

    # ---------- lifecycle ----------

    def __init__(
        self,
        options: SdkOptions | None = None,
        *,
        stream_factory: Callable[[], ByteStream] | None = None,
        transport_type: str | None = None,
    ) -> None:
        self.options = options or SdkOptions()
        self.session = TransportSession(
            stream_factory or create_stream_factory(transport_type),
            request_timeout=self.options.request_timeout,
            connect_timeout=self.options.connect_timeout,
        )
        self.navigation = NavigationTaskTracker(self.session)

    def __enter__(self) -> "RobotServerSdk":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    def connect(self, host: str = cfg.ROBOT_HOST, port: int = cfg.ROBOT_PORT) -> bool:
        return self.session.connect(host, port)

    def disconnect(self) -> None:
        self.session.disconnect()

    def is_connected(self) -> bool:
        return self.session.is_connected()

    @staticmethod
    def get_version() -> str:
        return __version__

    # ---------- blocking queries ----------

    def get_real_time_status(self) -> RealTimeStatus | None:
        """Request a telemetry snapshot and wait for it."""
        return self._wait(self.session.request(RealTimeStatusRequest()), "real-time status")

    def query_navigation_task_status(self) -> TaskStatusResult | None:
        """Query the navigation task and wait for the status snapshot."""
        return self._wait(self.navigation.query_status(), "navigation task status")

    def cancel_navigation_task(self) -> bool:
        """Cancel the navigation task; True only if the robot reports SUCCESS."""
        result = self._wait(self.navigation.cancel_task(), "cancel navigation task")
        return result is not None and result.succeeded

    # ---------- asynchronous commands ----------

    def motion_control(
        self, command: int, value: float, callback: ResultCallback | None = None
    ) -> Future:
        """
        Send a motion command; callback(result, error) fires when it completes.

        command: 1=forward, 2=backward, 3=turn left, 4=turn right, 6=stop,
                 11=left, 12=right, 20=gait switch
        """
        future = self.session.request(MotionControlRequest(command=int(command), value=float(value)))
        if callback is not None:
            future.add_done_callback(lambda f: _forward(f, callback))
        return future

    def start_navigation_task(
        self, points: Iterable[NavigationPoint], callback: ResultCallback | None = None
    ) -> Future:
        """Start a navigation task over `points`, in order."""
        return self.navigation.start_task(points, callback)

    # ---------- internals ----------

    def _wait(self, future: Future, what: str):
        # request_timeout <= 0 means no deadline; block until teardown completes it
        limit = self.options.request_timeout
        try:
            return future.result(timeout=limit + _WAIT_MARGIN_S if limit > 0 else None)
        except RobotServerError as e:
            logger.error(f"{what} failed: {e}")
        except concurrent.futures.TimeoutError:
            logger.error(f"{what} failed: no completion within {self.options.request_timeout}s")
        return None


def _forward(future: Future, callback: ResultCallback) -> None:
    error = future.exception()
    try:
        callback(None if error else future.result(), error)
    except Exception:
        logger.exception("motion_control callback raised")
