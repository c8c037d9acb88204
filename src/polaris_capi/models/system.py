"""System alert model: faults, alerts, and events reported with each frame."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class SystemAlertCode(IntEnum):
    """Class of a system alert."""

    FAULT = 0x00
    ALERT = 0x01
    EVENT = 0x02


class SystemFaultType(IntEnum):
    OK = 0x0000
    FATAL_PARAMETER = 0x0001
    SENSOR_PARAMETER = 0x0002
    MAIN_VOLTAGE = 0x0003
    SENSOR_VOLTAGE = 0x0004
    ILLUMINATOR_VOLTAGE = 0x0005
    ILLUMINATOR_CURRENT = 0x0006
    SENSOR0_TEMP = 0x0007  # left
    SENSOR1_TEMP = 0x0008  # right
    MAIN_TEMP = 0x0009
    SENSOR_MALFUNCTION = 0x000A


class SystemAlertType(IntEnum):
    OK = 0x0000
    BATTERY_LOW = 0x0001
    BUMP_DETECTED = 0x0002
    INCOMPATIBLE_FIRMWARE = 0x0003
    NON_FATAL_PARAMETER = 0x0004
    FLASH_MEMORY_FULL = 0x0005
    STORAGE_TEMP_EXCEEDED = 0x0007
    TEMP_HIGH = 0x0008
    TEMP_LOW = 0x0009
    SCU_DISCONNECTED = 0x000A
    PTP_CLOCK_SYNCH = 0x000E


class SystemEventType(IntEnum):
    OK = 0x0000
    TOOL_PLUGGED_IN = 0x0001
    TOOL_UNPLUGGED = 0x0002
    SIU_PLUGGED_IN = 0x0003
    SIU_UNPLUGGED = 0x0004


SUBTYPE_ENUMS: dict[SystemAlertCode, type[IntEnum]] = {
    SystemAlertCode.FAULT: SystemFaultType,
    SystemAlertCode.ALERT: SystemAlertType,
    SystemAlertCode.EVENT: SystemEventType,
}


def coerce_enum(enum_cls, value: int):
    """Return ``enum_cls(value)``, or the plain int for codes not listed."""
    try:
        return enum_cls(value)
    except ValueError:
        return value


@dataclass
class SystemAlert:
    """A system condition that may impact tracking performance."""

    type: SystemAlertCode | int = SystemAlertCode.FAULT
    sub_type: int = 0

    def describe(self) -> str:
        """Human readable ``CLASS:SUBTYPE`` label."""
        kind = self.type.name if isinstance(self.type, IntEnum) else f"0x{self.type:02X}"
        sub_enum = SUBTYPE_ENUMS.get(self.type)
        sub = coerce_enum(sub_enum, self.sub_type) if sub_enum else self.sub_type
        sub_name = sub.name if isinstance(sub, IntEnum) else f"0x{sub:04X}"
        return f"{kind}:{sub_name}"

    def to_dict(self) -> dict:
        return {
            "type": int(self.type),
            "sub_type": self.sub_type,
            "description": self.describe(),
        }
