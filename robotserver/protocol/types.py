"""
Type definitions for the RobotServer protocol.

Defines the closed set of message kinds, their ASDU type codes, the error-code
enums reported by the robot, and the dataclasses used across the public API.
Requests are immutable; responses are created empty and filled in by the codec.
"""

import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import ClassVar, TypeVar, Union

import numpy as np
from spatialmath import SE3

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Sequence numbers are unsigned 16-bit and wrap on overflow
SEQUENCE_MODULO = 1 << 16


def current_timestamp() -> str:
    """Local wall-clock time as 'YYYY-MM-DD HH:MM:SS' (no timezone)."""
    return time.strftime(TIMESTAMP_FORMAT, time.localtime())


class MessageKind(Enum):
    """Every message the SDK sends or receives."""

    REAL_TIME_STATUS_REQ = "REAL_TIME_STATUS_REQ"
    REAL_TIME_STATUS_RESP = "REAL_TIME_STATUS_RESP"
    MOTION_CONTROL_REQ = "MOTION_CONTROL_REQ"
    MOTION_CONTROL_RESP = "MOTION_CONTROL_RESP"
    NAVIGATION_TASK_REQ = "NAVIGATION_TASK_REQ"
    NAVIGATION_TASK_RESP = "NAVIGATION_TASK_RESP"
    QUERY_STATUS_REQ = "QUERY_STATUS_REQ"
    QUERY_STATUS_RESP = "QUERY_STATUS_RESP"
    CANCEL_TASK_REQ = "CANCEL_TASK_REQ"
    CANCEL_TASK_RESP = "CANCEL_TASK_RESP"

    @property
    def is_request(self) -> bool:
        return self.value.endswith("_REQ")


class AsduType(IntEnum):
    """ASDU type codes shared by each request/response pair."""

    MOTION_CONTROL = 2
    REAL_TIME_STATUS = 1002
    NAVIGATION_TASK = 1003
    CANCEL_TASK = 1004
    QUERY_STATUS = 1007


class ErrorCodeNavigation(IntEnum):
    """Result of a start-navigation request."""

    SUCCESS = 0
    FAILURE = 1
    CANCELLED = 2
    TIMEOUT = 3
    INVALID_PARAM = 4


class ErrorCodeQueryStatus(IntEnum):
    """Task state reported by a query-status response."""

    COMPLETED = 0
    EXECUTING = 1
    FAILED = 2
    TIMEOUT = 3


class ErrorCodeCancelTask(IntEnum):
    """Result of a cancel-task request."""

    SUCCESS = 0
    FAILURE = 1
    TIMEOUT = 2


E = TypeVar("E", bound=IntEnum)


def coerce_code(enum_cls: type[E], raw: int) -> E | int:
    """Map a wire integer onto enum_cls, keeping unknown values as plain ints."""
    try:
        return enum_cls(raw)
    except ValueError:
        return raw


# =========================
# Value objects
# =========================


@dataclass(frozen=True)
class NavigationPoint:
    """One waypoint of a navigation path."""

    map_id: int = 0
    value: int = 0
    pos_x: float = 0.0
    pos_y: float = 0.0
    pos_z: float = 0.0
    angle_yaw: float = 0.0
    point_info: int = 0
    gait: int = 0
    speed: int = 0
    manner: int = 0
    obs_mode: int = 0
    nav_mode: int = 0
    terrain: int = 0
    posture: int = 0

    @classmethod
    def from_pose(cls, pose: SE3, *, unit: str = "rad", **params: int) -> "NavigationPoint":
        """
        Build a waypoint from an SE3 pose, taking position and yaw (ZYX order).

        Remaining motion parameters (map_id, gait, speed, ...) are passed as keywords.
        """
        x, y, z = (float(v) for v in pose.t)
        yaw = float(pose.rpy(unit=unit, order="zyx")[2])
        return cls(pos_x=x, pos_y=y, pos_z=z, angle_yaw=yaw, **params)

    @property
    def position(self) -> np.ndarray:
        return np.array([self.pos_x, self.pos_y, self.pos_z], dtype=np.float64)


# =========================
# Requests
# =========================


@dataclass(frozen=True)
class RealTimeStatusRequest:
    kind: ClassVar[MessageKind] = MessageKind.REAL_TIME_STATUS_REQ
    timestamp: str = field(default_factory=current_timestamp)


@dataclass(frozen=True)
class MotionControlRequest:
    """
    Motion command for the robot.

    command: 1=forward, 2=backward, 3=turn left, 4=turn right, 6=stop,
             11=left, 12=right, 20=gait switch
    value:   velocity (m/s or rad/s) or gait id, depending on command
    """

    kind: ClassVar[MessageKind] = MessageKind.MOTION_CONTROL_REQ
    command: int = 1
    value: float = -1.0
    timestamp: str = field(default_factory=current_timestamp)


@dataclass(frozen=True)
class NavigationTaskRequest:
    kind: ClassVar[MessageKind] = MessageKind.NAVIGATION_TASK_REQ
    points: tuple[NavigationPoint, ...] = ()
    timestamp: str = field(default_factory=current_timestamp)

    def __post_init__(self):
        # Path order is significant; freeze whatever sequence was passed in
        object.__setattr__(self, "points", tuple(self.points))


@dataclass(frozen=True)
class QueryStatusRequest:
    kind: ClassVar[MessageKind] = MessageKind.QUERY_STATUS_REQ
    timestamp: str = field(default_factory=current_timestamp)


@dataclass(frozen=True)
class CancelTaskRequest:
    kind: ClassVar[MessageKind] = MessageKind.CANCEL_TASK_REQ
    timestamp: str = field(default_factory=current_timestamp)


# =========================
# Responses
# =========================


@dataclass
class RealTimeStatus:
    """Telemetry snapshot returned for a real-time status request."""

    kind: ClassVar[MessageKind] = MessageKind.REAL_TIME_STATUS_RESP

    motion_state: int = 0
    pos_x: float = 0.0
    pos_y: float = 0.0
    pos_z: float = 0.0
    angle_yaw: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0
    speed: float = 0.0
    cur_odom: float = 0.0
    sum_odom: float = 0.0
    cur_runtime: int = 0
    sum_runtime: int = 0
    res: float = 0.0
    x0: float = 0.0
    y0: float = 0.0
    h: int = 0
    electricity: int = 0
    location: int = 0
    rtk_state: int = 0
    on_dock_state: int = 0
    gait_state: int = 0
    motor_state: int = 0
    charge_state: int = 0
    control_mode: int = 0
    map_update_state: int = 0

    @property
    def position(self) -> np.ndarray:
        """[x, y, z] as a float64 array."""
        return np.array([self.pos_x, self.pos_y, self.pos_z], dtype=np.float64)

    def pose(self, unit: str = "rad") -> SE3:
        """Body pose from position and roll/pitch/yaw (ZYX order)."""
        return SE3.Trans(self.pos_x, self.pos_y, self.pos_z) * SE3.RPY(
            [self.roll, self.pitch, self.yaw], unit=unit, order="zyx"
        )


@dataclass
class MotionControlResult:
    kind: ClassVar[MessageKind] = MessageKind.MOTION_CONTROL_RESP
    value: float = 0.0
    error_code: int = 0  # 0=success, 1=failure

    @property
    def succeeded(self) -> bool:
        return self.error_code == 0


@dataclass
class NavigationTaskResult:
    kind: ClassVar[MessageKind] = MessageKind.NAVIGATION_TASK_RESP
    value: int = 0
    error_code: ErrorCodeNavigation | int = ErrorCodeNavigation.SUCCESS
    error_status: int = 0

    @property
    def succeeded(self) -> bool:
        return self.error_code == ErrorCodeNavigation.SUCCESS


@dataclass
class TaskStatusResult:
    kind: ClassVar[MessageKind] = MessageKind.QUERY_STATUS_RESP
    value: int = 0
    status: int = 0
    error_code: ErrorCodeQueryStatus | int = ErrorCodeQueryStatus.COMPLETED


@dataclass
class CancelTaskResult:
    kind: ClassVar[MessageKind] = MessageKind.CANCEL_TASK_RESP
    error_code: ErrorCodeCancelTask | int = ErrorCodeCancelTask.SUCCESS

    @property
    def succeeded(self) -> bool:
        return self.error_code == ErrorCodeCancelTask.SUCCESS


Request = Union[
    RealTimeStatusRequest,
    MotionControlRequest,
    NavigationTaskRequest,
    QueryStatusRequest,
    CancelTaskRequest,
]
Response = Union[
    RealTimeStatus,
    MotionControlResult,
    NavigationTaskResult,
    TaskStatusResult,
    CancelTaskResult,
]
Message = Union[Request, Response]


@dataclass(frozen=True)
class Envelope:
    """Sequence-numbered, timestamped wrapper around a message body."""

    sequence: int
    type_code: int
    timestamp: str
    body: Message
