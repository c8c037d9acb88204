"""Tracking records assembled from BX and BX2 replies.

Positions and orientations start out at :data:`BAD_FLOAT`, a sentinel no
real measurement produces. While a field holds the sentinel it renders as
``MISSING`` instead of a number.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

from .system import SystemAlert, coerce_enum

BAD_FLOAT = -3.697314e28

# Tool handle that collects markers not assigned to any tool.
STRAY_MARKER_HANDLE = 0xFFFF


class TransformStatus(IntEnum):
    """Low byte of the transform status word."""

    ENABLED = 0x00
    PARTIALLY_OUT_OF_VOLUME = 0x03
    OUT_OF_VOLUME = 0x09
    TOO_FEW_MARKERS = 0x0D
    INTERFERENCE = 0x0E
    BAD_TRANSFORM_FIT = 0x11
    DATA_BUFFER_LIMIT = 0x12
    ALGORITHM_LIMIT = 0x13
    FELL_BEHIND = 0x14
    OUT_OF_SYNCH = 0x15
    PROCESSING_ERROR = 0x16
    TOOL_MISSING = 0x1F
    TRACKING_NOT_ENABLED = 0x20
    TOOL_UNPLUGGED = 0x21


class MarkerStatus(IntEnum):
    OKAY = 0x00
    MISSING = 0x01
    OUT_OF_VOLUME = 0x05
    POSSIBLE_PHANTOM = 0x06
    SATURATED = 0x07
    SATURATED_OUT_OF_VOLUME = 0x08


class HandleStatus(IntEnum):
    """Port handle status reported by BX."""

    VALID = 0x01
    MISSING = 0x02
    DISABLED = 0x04


class FrameType(IntEnum):
    """Kind of frame that gathered the data in a BX2 reply."""

    DUMMY = 0x00
    ACTIVE_WIRELESS = 0x01
    PASSIVE = 0x02
    ACTIVE = 0x03
    LASER = 0x04
    ILLUMINATED = 0x05
    BACKGROUND = 0x06
    MAGNETIC = 0x07


def _name(value) -> str:
    return value.name if isinstance(value, IntEnum) else f"0x{value:02X}"


@dataclass
class Vector3:
    x: float = BAD_FLOAT
    y: float = BAD_FLOAT
    z: float = BAD_FLOAT

    @property
    def is_missing(self) -> bool:
        return self.x == BAD_FLOAT

    def __str__(self) -> str:
        if self.is_missing:
            return "MISSING,MISSING,MISSING"
        return f"{self.x:8.3f},{self.y:8.3f},{self.z:8.3f}"

    def to_dict(self) -> dict | None:
        if self.is_missing:
            return None
        return {"x": self.x, "y": self.y, "z": self.z}


@dataclass
class Quaternion:
    q0: float = BAD_FLOAT
    qx: float = BAD_FLOAT
    qy: float = BAD_FLOAT
    qz: float = BAD_FLOAT

    @property
    def is_missing(self) -> bool:
        return self.q0 == BAD_FLOAT

    def __str__(self) -> str:
        if self.is_missing:
            return "MISSING,MISSING,MISSING,MISSING"
        return f"{self.q0:10.7f},{self.qx:10.7f},{self.qy:10.7f},{self.qz:10.7f}"

    def to_dict(self) -> dict | None:
        if self.is_missing:
            return None
        return {"q0": self.q0, "qx": self.qx, "qy": self.qy, "qz": self.qz}


@dataclass
class Transform:
    """Pose of one tool for one frame.

    ``raw_status`` is the status word as transmitted; it splits into
    ``is_missing`` (bit 8), ``face_number`` (mask 0xE000, shifted
    right by 12) and ``status`` (low byte).
    """

    STATUS_MASK_MISSING = 0x0100
    STATUS_MASK_FACE = 0xE000
    STATUS_MASK_CODE = 0x00FF

    tool_handle: int = 0
    position: Vector3 = field(default_factory=Vector3)
    orientation: Quaternion = field(default_factory=Quaternion)
    error: float = 0.0
    raw_status: int = STATUS_MASK_MISSING
    is_missing: bool = True
    face_number: int = 0
    status: TransformStatus | int = TransformStatus.ENABLED

    @classmethod
    def from_raw_status(cls, tool_handle: int, raw_status: int) -> Transform:
        return cls(
            tool_handle=tool_handle,
            raw_status=raw_status,
            is_missing=(raw_status & cls.STATUS_MASK_MISSING) != 0,
            face_number=(raw_status & cls.STATUS_MASK_FACE) >> 12,
            status=coerce_enum(TransformStatus, raw_status & cls.STATUS_MASK_CODE),
        )

    def __str__(self) -> str:
        return (
            f"{self.tool_handle:02X},{_name(self.status)},{self.face_number:02X},"
            f"{self.position},{self.orientation},{self.error:8.3f}"
        )

    def to_dict(self) -> dict:
        return {
            "tool_handle": self.tool_handle,
            "missing": self.is_missing,
            "status": _name(self.status),
            "face_number": self.face_number,
            "position": self.position.to_dict(),
            "orientation": self.orientation.to_dict(),
            "error": self.error,
        }


@dataclass
class Marker:
    status: MarkerStatus | int = MarkerStatus.OKAY
    index: int = 0
    position: Vector3 = field(default_factory=Vector3)

    def __str__(self) -> str:
        return f"{self.index:02X},{_name(self.status)},{self.position}"

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "status": _name(self.status),
            "position": self.position.to_dict(),
        }


@dataclass
class Tool:
    """Everything known about one tool in one frame.

    BX fills ``system_status``, ``port_status`` and ``handle_status``; BX2
    fills the frame metadata, markers and system alerts. Button1D components
    are skipped, so button states are not reported. Fields the reply did not
    carry keep their defaults.
    """

    frame_number: int = 0
    transform: Transform = field(default_factory=Transform)

    # BX
    system_status: int = 0
    port_status: int = 0
    handle_status: HandleStatus | int = 0

    # BX2
    frame_type: FrameType | int = FrameType.DUMMY
    frame_sequence_index: int = 0
    frame_status: int = 0
    timespec_s: int = 0
    timespec_ns: int = 0
    markers: list[Marker] = field(default_factory=list)
    system_alerts: list[SystemAlert] = field(default_factory=list)
    data_is_new: bool = False

    @property
    def tool_handle(self) -> int:
        return self.transform.tool_handle

    @property
    def timestamp(self) -> float:
        return self.timespec_s + self.timespec_ns / 1e9

    def __str__(self) -> str:
        return f"{self.transform},{self.timestamp:.3f}"

    def to_dict(self) -> dict:
        return {
            "tool_handle": self.tool_handle,
            "frame_number": self.frame_number,
            "transform": self.transform.to_dict(),
            "system_status": self.system_status,
            "port_status": self.port_status,
            "handle_status": int(self.handle_status),
            "frame_type": _name(self.frame_type),
            "frame_sequence_index": self.frame_sequence_index,
            "frame_status": self.frame_status,
            "timestamp": self.timestamp,
            "markers": [m.to_dict() for m in self.markers],
            "system_alerts": [a.to_dict() for a in self.system_alerts],
        }
