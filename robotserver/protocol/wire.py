"""
Wire protocol helpers for the RobotServer TCP link.

This module centralizes the XML encoding of requests, the decoding of response
bodies into typed objects, and the binary frame header that carries the sequence
number and body length on the byte stream.
"""

import logging
import re
import struct
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterable, Sequence
from typing import Any
from xml.sax.saxutils import escape

from ..config import TRACE
from .registry import registry
from .types import (
    ErrorCodeCancelTask,
    ErrorCodeNavigation,
    ErrorCodeQueryStatus,
    MessageKind,
    Response,
    coerce_code,
    current_timestamp,
)

logger = logging.getLogger(__name__)

ROOT_TAG = "PatrolDevice"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

# Frame header: sync(4) | body length u32 LE | sequence u16 LE | format u8 | reserved(5)
SYNC = b"\xeb\x91\xeb\x90"
FORMAT_XML = 0x01
RESERVED = bytes(5)
HEADER = struct.Struct("<4sIHB5s")
HEADER_SIZE = HEADER.size  # 16
MAX_BODY_LEN = 0xFFFFFFFF

_BOM = b"\xef\xbb\xbf"
_XML_WHITESPACE = b" \t\r\n"

__all__ = [
    "ROOT_TAG",
    "SYNC",
    "HEADER_SIZE",
    "current_timestamp",
    "render_document",
    "item_block",
    "encode",
    "parse_number",
    "decode",
    "decode_into",
    "peek_type_code",
    "peek_timestamp",
    "pack_frame",
    "FrameDecoder",
]

# Field tables: (wire element, attribute, value type). Order is the wire order.
# "uint" marks unsigned counters; text-stream extraction rejects a leading '-'.
FieldSpec = tuple[str, str, str]

NAVIGATION_POINT_FIELDS: tuple[FieldSpec, ...] = (
    ("MapId", "map_id", "int"),
    ("Value", "value", "int"),
    ("PosX", "pos_x", "float"),
    ("PosY", "pos_y", "float"),
    ("PosZ", "pos_z", "float"),
    ("AngleYaw", "angle_yaw", "float"),
    ("PointInfo", "point_info", "int"),
    ("Gait", "gait", "int"),
    ("Speed", "speed", "int"),
    ("Manner", "manner", "int"),
    ("ObsMode", "obs_mode", "int"),
    ("NavMode", "nav_mode", "int"),
    ("Terrain", "terrain", "int"),
    ("Posture", "posture", "int"),
)

REAL_TIME_STATUS_FIELDS: tuple[FieldSpec, ...] = (
    ("MotionState", "motion_state", "int"),
    ("PosX", "pos_x", "float"),
    ("PosY", "pos_y", "float"),
    ("PosZ", "pos_z", "float"),
    ("AngleYaw", "angle_yaw", "float"),
    ("Roll", "roll", "float"),
    ("Pitch", "pitch", "float"),
    ("Yaw", "yaw", "float"),
    ("Speed", "speed", "float"),
    ("CurOdom", "cur_odom", "float"),
    ("SumOdom", "sum_odom", "float"),
    ("CurRuntime", "cur_runtime", "uint"),
    ("SumRuntime", "sum_runtime", "uint"),
    ("Res", "res", "float"),
    ("X0", "x0", "float"),
    ("Y0", "y0", "float"),
    ("H", "h", "int"),
    ("Electricity", "electricity", "int"),
    ("Location", "location", "int"),
    ("RTKState", "rtk_state", "int"),
    ("OnDockState", "on_dock_state", "int"),
    ("GaitState", "gait_state", "int"),
    ("MotorState", "motor_state", "int"),
    ("ChargeState", "charge_state", "int"),
    ("ControlMode", "control_mode", "int"),
    ("MapUpdateState", "map_update_state", "int"),
)

MOTION_CONTROL_FIELDS: tuple[FieldSpec, ...] = (
    ("Value", "value", "float"),
    ("ErrorCode", "error_code", "int"),
)

NAVIGATION_TASK_FIELDS: tuple[FieldSpec, ...] = (
    ("Value", "value", "int"),
    ("ErrorCode", "error_code", "int"),
    ("ErrorStatus", "error_status", "int"),
)

QUERY_STATUS_FIELDS: tuple[FieldSpec, ...] = (
    ("Value", "value", "int"),
    ("Status", "status", "int"),
    ("ErrorCode", "error_code", "int"),
)

CANCEL_TASK_FIELDS: tuple[FieldSpec, ...] = (("ErrorCode", "error_code", "int"),)

_DECODE_FIELDS: dict[MessageKind, tuple[FieldSpec, ...]] = {
    MessageKind.REAL_TIME_STATUS_RESP: REAL_TIME_STATUS_FIELDS,
    MessageKind.MOTION_CONTROL_RESP: MOTION_CONTROL_FIELDS,
    MessageKind.NAVIGATION_TASK_RESP: NAVIGATION_TASK_FIELDS,
    MessageKind.QUERY_STATUS_RESP: QUERY_STATUS_FIELDS,
    MessageKind.CANCEL_TASK_RESP: CANCEL_TASK_FIELDS,
}

# error_code attributes that map onto an enum after parsing
_ERROR_ENUMS: dict[MessageKind, type] = {
    MessageKind.NAVIGATION_TASK_RESP: ErrorCodeNavigation,
    MessageKind.QUERY_STATUS_RESP: ErrorCodeQueryStatus,
    MessageKind.CANCEL_TASK_RESP: ErrorCodeCancelTask,
}


# =========================
# Encoding helpers
# =========================


def _fmt(value: object, kind: str) -> str:
    """Format a field value for the wire according to its declared type."""
    if kind == "float":
        number = float(value)  # type: ignore[arg-type]
        # Integral values go out as "0" / "-1", matching stream-style output
        if number.is_integer() and abs(number) < 1e15:
            return str(int(number))
        return repr(number)
    if kind in ("int", "uint"):
        return str(int(value))  # type: ignore[call-overload]
    return escape(str(value))


def render_document(
    type_code: int,
    command: int,
    item_blocks: Sequence[Sequence[tuple[str, str]]] | None = None,
    timestamp: str | None = None,
) -> str:
    """
    Render a PatrolDevice XML document.

    item_blocks=None renders a single empty <Items/>; otherwise one <Items> element
    is emitted per block, each holding (name, text) children in the given order.
    An empty list therefore renders no Items element at all.
    """
    lines = [
        XML_DECLARATION,
        f"<{ROOT_TAG}>",
        f"<Type>{int(type_code)}</Type>",
        f"<Command>{int(command)}</Command>",
        f"<Time>{escape(timestamp or current_timestamp())}</Time>",
    ]
    if item_blocks is None:
        lines.append("<Items/>")
    else:
        for block in item_blocks:
            lines.append("<Items>")
            lines.extend(f"  <{name}>{text}</{name}>" for name, text in block)
            lines.append("</Items>")
    lines.append(f"</{ROOT_TAG}>")
    return "\n".join(lines)


def item_block(obj: object, fields: Iterable[FieldSpec]) -> list[tuple[str, str]]:
    """Build one (name, text) block from obj's attributes in field-table order."""
    return [(name, _fmt(getattr(obj, attr), kind)) for name, attr, kind in fields]


def _encode_empty(message: Any) -> str:
    return render_document(registry.type_code(message.kind), 1, None, message.timestamp)


def _encode_motion_control(message: Any) -> str:
    return render_document(
        registry.type_code(message.kind),
        message.command,
        [[("Value", _fmt(message.value, "float"))]],
        message.timestamp,
    )


def _encode_navigation_task(message: Any) -> str:
    blocks = [item_block(point, NAVIGATION_POINT_FIELDS) for point in message.points]
    return render_document(registry.type_code(message.kind), 1, blocks, message.timestamp)


_ENCODERS: dict[MessageKind, Callable[[Any], str]] = {
    MessageKind.REAL_TIME_STATUS_REQ: _encode_empty,
    MessageKind.MOTION_CONTROL_REQ: _encode_motion_control,
    MessageKind.NAVIGATION_TASK_REQ: _encode_navigation_task,
    MessageKind.QUERY_STATUS_REQ: _encode_empty,
    MessageKind.CANCEL_TASK_REQ: _encode_empty,
}


def encode(message: Any) -> bytes:
    """
    Encode a request into its UTF-8 XML body.

    Responses are never serialized by the SDK; they encode to b"".
    """
    encoder = _ENCODERS.get(message.kind)
    if encoder is None:
        return b""
    return encoder(message).encode("utf-8")


# =========================
# Decoding helpers
# =========================

_INT_RE = re.compile(r"\s*([+-]?\d+)")
_UINT_RE = re.compile(r"\s*\+?(\d+)")
_FLOAT_RE = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_number(text: str | None, kind: str) -> int | float | None:
    """
    Text-stream style extraction: skip leading whitespace, take the longest valid
    numeric prefix. Returns None when no prefix parses ("abc", "", None).
    """
    if not text:
        return None
    if kind == "float":
        m = _FLOAT_RE.match(text)
        return float(m.group(1)) if m else None
    m = (_UINT_RE if kind == "uint" else _INT_RE).match(text)
    return int(m.group(1)) if m else None


def decode_into(response: Response, data: bytes | str) -> bool:
    """
    Populate response in place from an XML body.

    Returns False if the kind is not a response, the document does not parse, or
    the PatrolDevice root / Items child is missing. Absent fields keep their current
    value; malformed numeric text leaves the field unchanged.
    """
    fields = _DECODE_FIELDS.get(response.kind)
    if fields is None:
        return False
    try:
        raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        root = ET.fromstring(raw)
        if root.tag != ROOT_TAG:
            logger.debug(f"decode_into: unexpected root <{root.tag}> for {response.kind.name}")
            return False
        items = root.find("Items")
        if items is None:
            logger.debug(f"decode_into: missing <Items> for {response.kind.name}")
            return False

        for name, attr, kind in fields:
            node = items.find(name)
            if node is None:
                continue
            value = parse_number(node.text, kind)
            if value is None:
                logger.log(TRACE, f"decode_into: malformed <{name}>{node.text!r} left unchanged")
                continue
            setattr(response, attr, value)

        enum_cls = _ERROR_ENUMS.get(response.kind)
        if enum_cls is not None:
            response.error_code = coerce_code(enum_cls, int(response.error_code))  # type: ignore[union-attr]
        return True
    except Exception as e:
        logger.debug(f"decode_into: failed to parse {response.kind.name}: {e}")
        return False


def decode(kind: MessageKind, data: bytes | str) -> tuple[bool, Response | None]:
    """
    Decode a body as the given kind.

    Returns (True, populated response) on success. Request kinds always fail with
    (False, None); a failed response decode returns (False, partially filled object).
    """
    if kind.is_request:
        return False, None
    response = registry.new_response(kind)
    return decode_into(response, data), response


_TYPE_RE = re.compile(rb"<Type>\s*([+-]?\d+)\s*</Type>")
_TIME_RE = re.compile(rb"<Time>([^<]*)</Time>")


def peek_type_code(data: bytes) -> int | None:
    """Read the ASDU type code from a body without a full parse."""
    m = _TYPE_RE.search(data)
    return int(m.group(1)) if m else None


def peek_timestamp(data: bytes) -> str:
    """Read the <Time> text from a body, or '' if absent."""
    m = _TIME_RE.search(data)
    return m.group(1).decode("utf-8", errors="replace").strip() if m else ""


# =========================
# Framing
# =========================


def pack_frame(sequence: int, body: bytes) -> bytes:
    """Prefix body with the frame header carrying its length and sequence number."""
    if len(body) > MAX_BODY_LEN:
        raise ValueError(f"pack_frame: body too large ({len(body)} > {MAX_BODY_LEN} bytes)")
    return HEADER.pack(SYNC, len(body), sequence & 0xFFFF, FORMAT_XML, RESERVED) + body


def _looks_like_xml(head: bytes) -> bool | None:
    """True if head can start an XML body, False if it cannot, None if too short to tell."""
    head = head.lstrip(_XML_WHITESPACE)
    if head.startswith(_BOM):
        head = head[len(_BOM) :].lstrip(_XML_WHITESPACE)
    elif head and _BOM.startswith(head):
        return None
    if not head:
        return None
    return head[:1] == b"<"


class FrameDecoder:
    """
    Incremental frame reassembly for the receive stream.

    feed() accepts arbitrary chunks and returns every complete (sequence, body)
    pair. Partial frames stay buffered; bytes that do not start a valid header are
    skipped one at a time until the stream resynchronizes. A header is valid when
    its format byte is known, its reserved bytes are zero and its body starts like
    an XML document.
    """

    def __init__(self) -> None:
        self._buf = bytearray()
        self.dropped_bytes = 0

    def __len__(self) -> int:
        return len(self._buf)

    def reset(self) -> None:
        self._buf.clear()

    def _skip(self, n: int) -> None:
        del self._buf[:n]
        self.dropped_bytes += n

    def feed(self, data: bytes) -> list[tuple[int, bytes]]:
        buf = self._buf
        buf += data
        dropped_before = self.dropped_bytes
        frames: list[tuple[int, bytes]] = []
        while buf:
            idx = buf.find(SYNC)
            if idx < 0:
                # Keep a tail that could be the start of a split sync marker
                keep = len(SYNC) - 1
                if len(buf) > keep:
                    self._skip(len(buf) - keep)
                break
            if idx > 0:
                self._skip(idx)
                continue
            if len(buf) < HEADER_SIZE:
                break
            _sync, length, sequence, fmt, reserved = HEADER.unpack_from(buf)
            if fmt != FORMAT_XML:
                logger.debug(f"FrameDecoder: unknown format byte 0x{fmt:02x}; resyncing")
                self._skip(1)
                continue
            if reserved != RESERVED:
                logger.debug(f"FrameDecoder: non-zero reserved bytes {reserved.hex()}; resyncing")
                self._skip(1)
                continue
            total = HEADER_SIZE + length
            head = buf[HEADER_SIZE : min(total, len(buf), HEADER_SIZE + 64)]
            verdict = _looks_like_xml(bytes(head))
            if verdict is False:
                logger.debug(f"FrameDecoder: seq={sequence} body is not XML; resyncing")
                self._skip(1)
                continue
            if len(buf) < total:
                break
            frames.append((sequence, bytes(buf[HEADER_SIZE:total])))
            del buf[:total]
        if self.dropped_bytes != dropped_before:
            logger.log(TRACE, f"FrameDecoder: skipped {self.dropped_bytes - dropped_before} bytes")
        return frames
