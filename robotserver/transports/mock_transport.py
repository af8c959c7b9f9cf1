"""
Mock robot stream for simulation and testing.

This module provides an in-process robot that speaks the framed XML protocol.
It implements the same interface as SocketStream, so the transport session,
correlation table and navigation tracker run unchanged on top of it.
"""

import logging
import threading
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field

import numpy as np

from .. import config as cfg
from ..protocol import wire
from ..protocol.types import (
    AsduType,
    CancelTaskRequest,
    Envelope,
    ErrorCodeCancelTask,
    ErrorCodeNavigation,
    ErrorCodeQueryStatus,
    MotionControlRequest,
    NavigationPoint,
    NavigationTaskRequest,
    QueryStatusRequest,
    RealTimeStatus,
    RealTimeStatusRequest,
    Request,
)

logger = logging.getLogger(__name__)

ItemBlocks = list[list[tuple[str, str]]]


def _default_status() -> RealTimeStatus:
    return RealTimeStatus(
        motion_state=1,
        electricity=87,
        location=1,
        gait_state=1,
        motor_state=1,
        control_mode=1,
    )


@dataclass
class MockRobotState:
    """Internal state of the simulated robot."""

    status: RealTimeStatus = field(default_factory=_default_status)

    # Active navigation task
    path: list[NavigationPoint] = field(default_factory=list)
    waypoint_index: int = 0
    task_active: bool = False

    # Fraction of the remaining distance covered per status query (0 < f <= 1)
    step_fraction: float = 1.0

    # Forced error codes for the next replies (SUCCESS = behave normally)
    navigation_error: ErrorCodeNavigation | int = ErrorCodeNavigation.SUCCESS
    cancel_error: ErrorCodeCancelTask | int = ErrorCodeCancelTask.SUCCESS
    motion_error: int = 0

    last_motion: tuple[int, float] | None = None

    @property
    def position(self) -> np.ndarray:
        return self.status.position

    def move_to(self, target: np.ndarray) -> float:
        """Set the reported position, accumulating odometry; returns distance moved."""
        distance = float(np.linalg.norm(target - self.position))
        self.status.pos_x, self.status.pos_y, self.status.pos_z = (float(v) for v in target)
        self.status.cur_odom += distance
        self.status.sum_odom += distance
        return distance


class MockRobotStream:
    """
    Simulated robot endpoint implementing the ByteStream interface.

    Notes:
    - With auto_respond=True every request is answered as soon as it is written.
    - With auto_respond=False requests are held; answer them in any order with
      respond_to(seq) / respond_all() to exercise out-of-order delivery.
    - silent_types lists ASDU codes the robot never answers (drives timeouts).
    """

    def __init__(self, *, auto_respond: bool = True, state: MockRobotState | None = None) -> None:
        self.state = state or MockRobotState()
        self.auto_respond = auto_respond
        self.silent_types: set[int] = set()

        # Fault injection
        self.refuse_connect = False
        self.fail_writes = False

        self.address: tuple[str, int] | None = None
        self.connect_calls = 0
        self.received: list[Envelope] = []

        self._lock = threading.Lock()
        self._held: dict[int, Envelope] = {}
        self._decoder = wire.FrameDecoder()

        self._rx = bytearray()
        self._rx_cond = threading.Condition()
        self._connected = False

        logger.info("MockRobotStream initialized - simulation mode active")

    # ---------- ByteStream interface ----------

    def connect(self, host: str, port: int, timeout: float) -> None:
        self.connect_calls += 1
        if self.refuse_connect:
            raise ConnectionRefusedError(f"mock robot refused connection to {host}:{port}")
        with self._rx_cond:
            self._rx.clear()
            self._connected = True
        self._decoder.reset()
        self.address = (host, int(port))
        logger.info(f"MockRobotStream connected as {host}:{port}")

    def send(self, data: bytes) -> None:
        if not self._connected:
            raise BrokenPipeError("mock robot stream is closed")
        if self.fail_writes:
            raise BrokenPipeError("simulated write failure")
        with self._lock:
            frames = self._decoder.feed(data)
        for seq, body in frames:
            self._on_request(seq, body)

    def recv(self, max_bytes: int) -> bytes | None:
        with self._rx_cond:
            if not self._rx and self._connected:
                self._rx_cond.wait(cfg.RECV_POLL_S)
            if self._rx:
                chunk = bytes(self._rx[:max_bytes])
                del self._rx[:max_bytes]
                return chunk
            return None if self._connected else b""

    def close(self) -> None:
        with self._rx_cond:
            self._connected = False
            self._rx_cond.notify_all()
        logger.info("MockRobotStream closed")

    # ---------- test controls ----------

    def is_connected(self) -> bool:
        return self._connected

    def close_from_peer(self) -> None:
        """Simulate the robot closing the connection (reader sees EOF)."""
        self.close()

    def inject(self, data: bytes) -> None:
        """Queue raw bytes for the client to receive."""
        with self._rx_cond:
            self._rx += data
            self._rx_cond.notify_all()

    def push_response(
        self,
        seq: int,
        type_code: int,
        item_blocks: ItemBlocks | None,
        command: int = 1,
    ) -> None:
        """Render, frame and queue an arbitrary response document."""
        body = wire.render_document(type_code, command, item_blocks).encode("utf-8")
        self.inject(wire.pack_frame(seq, body))

    def held_sequences(self) -> list[int]:
        with self._lock:
            return list(self._held)

    def respond_to(self, seq: int) -> bool:
        """Answer a held request. Returns False if nothing was held for seq."""
        with self._lock:
            envelope = self._held.pop(seq, None)
        if envelope is None:
            return False
        self._reply(envelope)
        return True

    def respond_all(self) -> int:
        with self._lock:
            held = list(self._held.values())
            self._held.clear()
        for envelope in held:
            self._reply(envelope)
        return len(held)

    # ---------- robot side ----------

    def _on_request(self, seq: int, body: bytes) -> None:
        try:
            envelope = self._parse_request(seq, body)
        except ET.ParseError as e:
            logger.warning(f"MockRobotStream: unparseable request seq={seq}: {e}")
            return
        if envelope is None:
            return
        with self._lock:
            self.received.append(envelope)
            if not self.auto_respond:
                self._held[seq] = envelope
                return
        self._reply(envelope)

    def _parse_request(self, seq: int, body: bytes) -> Envelope | None:
        root = ET.fromstring(body)
        type_code = wire.parse_number(root.findtext("Type"), "int")
        command = wire.parse_number(root.findtext("Command"), "int") or 0
        timestamp = (root.findtext("Time") or "").strip()
        blocks = root.findall("Items")

        request: Request
        if type_code == AsduType.REAL_TIME_STATUS:
            request = RealTimeStatusRequest(timestamp=timestamp)
        elif type_code == AsduType.MOTION_CONTROL:
            value = wire.parse_number(blocks[0].findtext("Value") if blocks else None, "float")
            request = MotionControlRequest(
                command=int(command), value=float(value or 0.0), timestamp=timestamp
            )
        elif type_code == AsduType.NAVIGATION_TASK:
            points = [self._parse_point(block) for block in blocks]
            request = NavigationTaskRequest(points=tuple(points), timestamp=timestamp)
        elif type_code == AsduType.QUERY_STATUS:
            request = QueryStatusRequest(timestamp=timestamp)
        elif type_code == AsduType.CANCEL_TASK:
            request = CancelTaskRequest(timestamp=timestamp)
        else:
            logger.warning(f"MockRobotStream: ignoring request with ASDU type {type_code}")
            return None
        return Envelope(sequence=seq, type_code=int(type_code), timestamp=timestamp, body=request)

    @staticmethod
    def _parse_point(block: ET.Element) -> NavigationPoint:
        values = {}
        for name, attr, kind in wire.NAVIGATION_POINT_FIELDS:
            parsed = wire.parse_number(block.findtext(name), kind)
            if parsed is not None:
                values[attr] = parsed
        return NavigationPoint(**values)

    def _reply(self, envelope: Envelope) -> None:
        if envelope.type_code in self.silent_types:
            logger.debug(f"MockRobotStream: staying silent for seq={envelope.sequence}")
            return
        handler = {
            AsduType.REAL_TIME_STATUS: self._handle_status,
            AsduType.MOTION_CONTROL: self._handle_motion,
            AsduType.NAVIGATION_TASK: self._handle_navigation,
            AsduType.QUERY_STATUS: self._handle_query,
            AsduType.CANCEL_TASK: self._handle_cancel,
        }[AsduType(envelope.type_code)]
        with self._lock:
            blocks = handler(envelope.body)
        self.push_response(envelope.sequence, envelope.type_code, blocks)

    def _handle_status(self, request: RealTimeStatusRequest) -> ItemBlocks:
        self.state.status.cur_runtime += 1
        self.state.status.sum_runtime += 1
        return [wire.item_block(self.state.status, wire.REAL_TIME_STATUS_FIELDS)]

    def _handle_motion(self, request: MotionControlRequest) -> ItemBlocks:
        self.state.last_motion = (request.command, request.value)
        if self.state.motion_error == 0:
            self.state.status.speed = max(0.0, float(request.value))
        value_field = wire.MOTION_CONTROL_FIELDS[:1]
        return [wire.item_block(request, value_field) + [("ErrorCode", str(int(self.state.motion_error)))]]

    def _handle_navigation(self, request: NavigationTaskRequest) -> ItemBlocks:
        st = self.state
        code = st.navigation_error
        if code == ErrorCodeNavigation.SUCCESS:
            if st.task_active:
                code = ErrorCodeNavigation.FAILURE  # one task at a time
            elif not request.points:
                code = ErrorCodeNavigation.INVALID_PARAM
            else:
                st.path = list(request.points)
                st.waypoint_index = 0
                st.task_active = True
                st.status.cur_odom = 0.0
        value = request.points[-1].value if request.points else 0
        return [[("Value", str(value)), ("ErrorCode", str(int(code))), ("ErrorStatus", "0")]]

    def _handle_query(self, request: QueryStatusRequest) -> ItemBlocks:
        st = self.state
        if not st.task_active:
            value = st.path[-1].value if st.path else 0
            code = ErrorCodeQueryStatus.COMPLETED
            return [[("Value", str(value)), ("Status", str(st.waypoint_index)), ("ErrorCode", str(int(code)))]]

        target_point = st.path[st.waypoint_index]
        target = target_point.position
        current = st.position
        step = current + st.step_fraction * (target - current)
        if np.allclose(step, target, atol=1e-6):
            step = target
        st.move_to(step)
        if np.allclose(st.position, target, atol=1e-6):
            st.status.angle_yaw = target_point.angle_yaw
            st.waypoint_index += 1
            if st.waypoint_index >= len(st.path):
                st.task_active = False

        code = ErrorCodeQueryStatus.EXECUTING if st.task_active else ErrorCodeQueryStatus.COMPLETED
        return [
            [
                ("Value", str(target_point.value)),
                ("Status", str(st.waypoint_index)),
                ("ErrorCode", str(int(code))),
            ]
        ]

    def _handle_cancel(self, request: CancelTaskRequest) -> ItemBlocks:
        st = self.state
        code = st.cancel_error
        if code == ErrorCodeCancelTask.SUCCESS:
            if st.task_active:
                st.task_active = False
            else:
                code = ErrorCodeCancelTask.FAILURE
        return [[("ErrorCode", str(int(code)))]]
