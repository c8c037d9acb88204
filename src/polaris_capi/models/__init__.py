"""Data models for tracked tools, transforms, markers, and system alerts."""

from .tracking import (
    BAD_FLOAT,
    STRAY_MARKER_HANDLE,
    FrameType,
    HandleStatus,
    Marker,
    MarkerStatus,
    Quaternion,
    Tool,
    Transform,
    TransformStatus,
    Vector3,
)
from .system import (
    SystemAlert,
    SystemAlertCode,
    SystemAlertType,
    SystemEventType,
    SystemFaultType,
)
