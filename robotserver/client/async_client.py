"""
Async client for the RobotServer SDK.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Future

from .. import config as cfg
from ..protocol.types import (
    CancelTaskResult,
    ErrorCodeQueryStatus,
    MotionControlRequest,
    MotionControlResult,
    NavigationPoint,
    NavigationTaskResult,
    RealTimeStatus,
    RealTimeStatusRequest,
    TaskStatusResult,
)
from ..transports.tcp_transport import ByteStream
from ..utils.errors import RobotServerError
from .sdk import RobotServerSdk, SdkOptions

logger = logging.getLogger(__name__)


class AsyncRobotServerClient:
    """
    asyncio front end over the same session and tracker as RobotServerSdk.

    Requests are issued without blocking the loop; their futures are awaited via
    asyncio.wrap_future. connect/disconnect block on the socket, so they run in
    the default executor.
    """

    def __init__(
        self,
        host: str = cfg.ROBOT_HOST,
        port: int = cfg.ROBOT_PORT,
        options: SdkOptions | None = None,
        *,
        stream_factory: Callable[[], ByteStream] | None = None,
        transport_type: str | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self._sdk = RobotServerSdk(
            options, stream_factory=stream_factory, transport_type=transport_type
        )

    @property
    def sdk(self) -> RobotServerSdk:
        """Access the underlying synchronous facade if you need it."""
        return self._sdk

    # --------------- Lifecycle ---------------

    async def __aenter__(self) -> "AsyncRobotServerClient":
        if not await self.connect():
            raise ConnectionError(f"Could not connect to robot at {self.host}:{self.port}")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    async def connect(self) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._sdk.connect, self.host, self.port)

    async def disconnect(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._sdk.disconnect)

    def is_connected(self) -> bool:
        return self._sdk.is_connected()

    # --------------- Internal helpers ---------------

    async def _await(self, future: Future, what: str):
        """Await a session future; local failures are logged and become None."""
        try:
            return await asyncio.wrap_future(future)
        except RobotServerError as e:
            logger.error(f"{what} failed: {e}")
            return None

    # --------------- Queries ---------------

    async def get_real_time_status(self) -> RealTimeStatus | None:
        return await self._await(
            self._sdk.session.request(RealTimeStatusRequest()), "real-time status"
        )

    async def query_navigation_task_status(self) -> TaskStatusResult | None:
        return await self._await(self._sdk.navigation.query_status(), "navigation task status")

    # --------------- Commands ---------------

    async def motion_control(self, command: int, value: float) -> MotionControlResult | None:
        request = MotionControlRequest(command=int(command), value=float(value))
        return await self._await(self._sdk.session.request(request), "motion control")

    async def start_navigation_task(
        self, points: Iterable[NavigationPoint]
    ) -> NavigationTaskResult | None:
        return await self._await(self._sdk.navigation.start_task(points), "start navigation task")

    async def cancel_navigation_task(self) -> bool:
        result: CancelTaskResult | None = await self._await(
            self._sdk.navigation.cancel_task(), "cancel navigation task"
        )
        return result is not None and result.succeeded

    async def wait_for_task_completion(
        self, timeout: float = 60.0, interval: float = 0.5
    ) -> TaskStatusResult | None:
        """
        Poll the task status until it is no longer EXECUTING or timeout expires.

        Returns the last status snapshot, or None if the deadline passed first.
        """
        end_time = time.time() + timeout
        while time.time() < end_time:
            status = await self.query_navigation_task_status()
            if status is not None and status.error_code != ErrorCodeQueryStatus.EXECUTING:
                return status
            await asyncio.sleep(interval)
        logger.warning(f"Navigation task still running after {timeout}s")
        return None
