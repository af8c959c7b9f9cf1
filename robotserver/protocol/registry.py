"""
Message registry for the RobotServer protocol.

Maps each message kind to its ASDU type code and response factory, and maps type
codes observed on the wire back to the response kind the codec should decode.
The message set is fixed by the protocol, so the table is built once at import.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from .types import (
    AsduType,
    CancelTaskResult,
    MessageKind,
    MotionControlResult,
    NavigationTaskResult,
    RealTimeStatus,
    Response,
    TaskStatusResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessagePair:
    """One request/response pair sharing an ASDU type code."""

    type_code: AsduType
    request_kind: MessageKind
    response_kind: MessageKind
    response_factory: Callable[[], Response]


_PAIRS: tuple[MessagePair, ...] = (
    MessagePair(
        AsduType.REAL_TIME_STATUS,
        MessageKind.REAL_TIME_STATUS_REQ,
        MessageKind.REAL_TIME_STATUS_RESP,
        RealTimeStatus,
    ),
    MessagePair(
        AsduType.MOTION_CONTROL,
        MessageKind.MOTION_CONTROL_REQ,
        MessageKind.MOTION_CONTROL_RESP,
        MotionControlResult,
    ),
    MessagePair(
        AsduType.NAVIGATION_TASK,
        MessageKind.NAVIGATION_TASK_REQ,
        MessageKind.NAVIGATION_TASK_RESP,
        NavigationTaskResult,
    ),
    MessagePair(
        AsduType.QUERY_STATUS,
        MessageKind.QUERY_STATUS_REQ,
        MessageKind.QUERY_STATUS_RESP,
        TaskStatusResult,
    ),
    MessagePair(
        AsduType.CANCEL_TASK,
        MessageKind.CANCEL_TASK_REQ,
        MessageKind.CANCEL_TASK_RESP,
        CancelTaskResult,
    ),
)


class MessageRegistry:
    """
    Lookup tables over the fixed request/response pairs.

    Lookups by kind raise KeyError for a kind that is not registered (a programming
    error); lookups by wire type code return None so that unknown traffic can be
    dropped and logged by the caller.
    """

    def __init__(self, pairs: tuple[MessagePair, ...] = _PAIRS) -> None:
        self._by_kind: dict[MessageKind, MessagePair] = {}
        self._by_code: dict[int, MessagePair] = {}
        for pair in pairs:
            self._register(pair)

    def _register(self, pair: MessagePair) -> None:
        code = int(pair.type_code)
        if code in self._by_code:
            raise ValueError(f"ASDU type code {code} is already registered")
        self._by_code[code] = pair
        self._by_kind[pair.request_kind] = pair
        self._by_kind[pair.response_kind] = pair
        logger.debug(f"Registered ASDU {code}: {pair.request_kind.name} -> {pair.response_kind.name}")

    def type_code(self, kind: MessageKind) -> int:
        """ASDU type code for a request or response kind."""
        return int(self._by_kind[kind].type_code)

    def response_kind(self, kind: MessageKind) -> MessageKind:
        """Response kind that answers the given request (or response) kind."""
        return self._by_kind[kind].response_kind

    def new_response(self, kind: MessageKind) -> Response:
        """Construct an empty response object ready for the codec to populate."""
        pair = self._by_kind[kind]
        if kind != pair.response_kind:
            raise ValueError(f"{kind.name} is not a response kind")
        return pair.response_factory()

    def kind_for_type_code(self, code: int) -> MessageKind | None:
        """Response kind for a type code seen on the wire, or None if unknown."""
        pair = self._by_code.get(int(code))
        return pair.response_kind if pair else None

    def list_type_codes(self) -> list[int]:
        return sorted(self._by_code)


registry = MessageRegistry()
