"""General Binary Format (GBF) decoder for BX2 replies.

A GBF container is a list of typed components::

    container  version (2) | component count (2) | component*
    component  type (2) | size (4) | item format option (2) | item count (4) | items

``size`` counts the 12-byte component header. A Frame component nests one
container per frame item, so decoding is recursive. Component types with no
decoder are skipped by their declared size, keeping older readers working
against newer devices.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable

from ..errors import GbfDecodeError
from ..models.system import SystemAlert, SystemAlertCode, coerce_enum
from ..models.tracking import (
    FrameType,
    Marker,
    MarkerStatus,
    Tool,
    Transform,
)
from ..utils.byte_codec import read_exact, unpack_float32, unpack_uint

logger = logging.getLogger(__name__)

COMPONENT_HEADER_SIZE = 12


class ComponentType(IntEnum):
    FRAME = 0x0001
    DATA_6D = 0x0002
    DATA_3D = 0x0003
    BUTTON_1D = 0x0004
    DATA_2D = 0x0005
    IMAGE = 0x000A
    UV = 0x0011
    SYSTEM_ALERT = 0x0012


@dataclass
class GbfComponent:
    """Header common to every component.

    Instances of this base class stand for component types with no decoder;
    ``raw`` holds the skipped item bytes.
    """

    type: ComponentType | int = 0
    size: int = 0
    item_format_option: int = 0
    item_count: int = 0
    raw: bytes = b""

    def describe(self) -> str:
        name = self.type.name if isinstance(self.type, ComponentType) else "UNKNOWN"
        return (
            f"componentType={int(self.type):04X} ({name})\n"
            f"componentSize={self.size:08X}\n"
            f"itemOption={self.item_format_option:04X}\n"
            f"itemCount={self.item_count:08X}\n"
        )


@dataclass
class GbfContainer:
    version: int = 0
    component_count: int = 0
    components: list[GbfComponent] = field(default_factory=list)

    def find(self, component_type: ComponentType) -> list[GbfComponent]:
        return [c for c in self.components if c.type == component_type]

    def describe(self) -> str:
        lines = [
            "----GbfContainer\n",
            f"gbfVersion={self.version:04X}\n",
            f"componentCount={self.component_count:04X}\n",
        ]
        lines.extend(c.describe() for c in self.components)
        return "".join(lines)


@dataclass
class GbfData3D(GbfComponent):
    """3D marker positions grouped by tool handle."""

    markers: dict[int, list[Marker]] = field(default_factory=dict)

    def describe(self) -> str:
        out = ["----GbfData3D\n", super().describe()]
        for handle, markers in self.markers.items():
            out.append(f"toolHandleReference={handle:04X}\nnumberOf3Ds={len(markers):04X}\n")
            out.extend(f"--Data3D: {m}\n" for m in markers)
        return "".join(out)


@dataclass
class GbfData6D(GbfComponent):
    """6D transforms, one per tool."""

    transforms: list[Transform] = field(default_factory=list)

    def describe(self) -> str:
        out = ["----GbfData6D\n", super().describe()]
        out.extend(f"--Data6D: {t}\n" for t in self.transforms)
        return "".join(out)


@dataclass
class GbfSystemAlert(GbfComponent):
    alerts: list[SystemAlert] = field(default_factory=list)

    def describe(self) -> str:
        out = ["----GbfSystemAlert\n", super().describe()]
        out.extend(f"--Alert: {a.describe()}\n" for a in self.alerts)
        return "".join(out)


@dataclass
class GbfFrameItem:
    """Timing and type information wrapping a nested container."""

    frame_type: FrameType | int = FrameType.DUMMY
    sequence_index: int = 0
    status: int = 0
    number: int = 0
    timespec_s: int = 0
    timespec_ns: int = 0
    container: GbfContainer = field(default_factory=GbfContainer)

    def new_tool(self, tool_handle: int) -> Tool:
        """A tool carrying this frame's metadata and no tracking data yet."""
        tool = Tool(
            frame_type=self.frame_type,
            frame_sequence_index=self.sequence_index,
            frame_status=self.status,
            frame_number=self.number,
            timespec_s=self.timespec_s,
            timespec_ns=self.timespec_ns,
            data_is_new=True,
        )
        tool.transform.tool_handle = tool_handle
        return tool

    def describe(self) -> str:
        return (
            "----GbfFrameDataItem\n"
            f"type={int(self.frame_type):02X}\n"
            f"sequenceIndex={self.sequence_index:02X}\n"
            f"status={self.status:04X}\n"
            f"number={self.number:08X}\n"
            f"timestamp={self.timespec_s:08X},{self.timespec_ns:08X}\n"
            + self.container.describe()
        )


@dataclass
class GbfFrame(GbfComponent):
    items: list[GbfFrameItem] = field(default_factory=list)

    def tool_list(self) -> list[Tool]:
        """Flatten the frame items into one :class:`Tool` per tool handle.

        Transforms and marker lists for the same handle merge into one tool,
        created from the metadata of the first frame item that mentions it.
        System alerts apply to every tool. Stray markers appear under
        :data:`~polaris_capi.models.tracking.STRAY_MARKER_HANDLE`.
        """
        tools: dict[int, Tool] = {}
        alerts: list[SystemAlert] = []

        for item in self.items:
            for component in item.container.components:
                if isinstance(component, GbfData6D):
                    for transform in component.transforms:
                        handle = transform.tool_handle
                        if handle not in tools:
                            tools[handle] = item.new_tool(handle)
                        tools[handle].transform = transform
                elif isinstance(component, GbfData3D):
                    for handle, markers in component.markers.items():
                        if handle not in tools:
                            tools[handle] = item.new_tool(handle)
                        tools[handle].markers = markers
                elif isinstance(component, GbfSystemAlert):
                    alerts.extend(component.alerts)

        for tool in tools.values():
            tool.system_alerts = list(alerts)
        return list(tools.values())

    def describe(self) -> str:
        out = ["----GbfFrame\n", super().describe()]
        out.extend(item.describe() for item in self.items)
        return "".join(out)


def _decode_data_3d(reader, header: dict) -> GbfData3D:
    component = GbfData3D(**header)
    for _ in range(component.item_count):
        handle = unpack_uint(reader, 2)
        marker_count = unpack_uint(reader, 2)
        markers = []
        for _ in range(marker_count):
            marker = Marker(status=coerce_enum(MarkerStatus, unpack_uint(reader, 1)))
            unpack_uint(reader, 1)  # reserved
            marker.index = unpack_uint(reader, 2)
            if marker.status != MarkerStatus.MISSING:
                marker.position.x = unpack_float32(reader)
                marker.position.y = unpack_float32(reader)
                marker.position.z = unpack_float32(reader)
            markers.append(marker)
        component.markers[handle] = markers
    return component


def _decode_data_6d(reader, header: dict) -> GbfData6D:
    component = GbfData6D(**header)
    for _ in range(component.item_count):
        handle = unpack_uint(reader, 2)
        transform = Transform.from_raw_status(handle, unpack_uint(reader, 2))
        if not transform.is_missing:
            transform.orientation.q0 = unpack_float32(reader)
            transform.orientation.qx = unpack_float32(reader)
            transform.orientation.qy = unpack_float32(reader)
            transform.orientation.qz = unpack_float32(reader)
            transform.position.x = unpack_float32(reader)
            transform.position.y = unpack_float32(reader)
            transform.position.z = unpack_float32(reader)
            transform.error = unpack_float32(reader)
        component.transforms.append(transform)
    return component


def _decode_system_alert(reader, header: dict) -> GbfSystemAlert:
    component = GbfSystemAlert(**header)
    for _ in range(component.item_count):
        alert_type = coerce_enum(SystemAlertCode, unpack_uint(reader, 1))
        unpack_uint(reader, 1)  # reserved
        component.alerts.append(SystemAlert(type=alert_type, sub_type=unpack_uint(reader, 2)))
    return component


def _decode_frame(reader, header: dict) -> GbfFrame:
    component = GbfFrame(**header)
    for _ in range(component.item_count):
        component.items.append(
            GbfFrameItem(
                frame_type=coerce_enum(FrameType, unpack_uint(reader, 1)),
                sequence_index=unpack_uint(reader, 1),
                status=unpack_uint(reader, 2),
                number=unpack_uint(reader, 4),
                timespec_s=unpack_uint(reader, 4),
                timespec_ns=unpack_uint(reader, 4),
                container=decode_container(reader),
            )
        )
    return component


_DECODERS: dict[int, Callable[..., GbfComponent]] = {
    ComponentType.FRAME: _decode_frame,
    ComponentType.DATA_6D: _decode_data_6d,
    ComponentType.DATA_3D: _decode_data_3d,
    ComponentType.SYSTEM_ALERT: _decode_system_alert,
}


def decode_component(reader) -> GbfComponent:
    """Decode one component, header included."""
    type_code = unpack_uint(reader, 2)
    header = {
        "type": coerce_enum(ComponentType, type_code),
        "size": unpack_uint(reader, 4),
        "item_format_option": unpack_uint(reader, 2),
        "item_count": unpack_uint(reader, 4),
    }

    decoder = _DECODERS.get(type_code)
    if decoder is not None:
        return decoder(reader, header)

    if header["size"] < COMPONENT_HEADER_SIZE:
        raise GbfDecodeError(
            f"Component 0x{type_code:04X} declares {header['size']} bytes, "
            f"less than its {COMPONENT_HEADER_SIZE}-byte header"
        )
    logger.debug("Skipping GBF component 0x%04X (%d bytes)", type_code, header["size"])
    return GbfComponent(raw=read_exact(reader, header["size"] - COMPONENT_HEADER_SIZE), **header)


def decode_container(reader) -> GbfContainer:
    """Decode a container and, recursively, everything inside it."""
    container = GbfContainer(
        version=unpack_uint(reader, 2),
        component_count=unpack_uint(reader, 2),
    )
    for _ in range(container.component_count):
        container.components.append(decode_component(reader))
    return container
