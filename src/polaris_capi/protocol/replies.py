"""Assemble tool records from BX and BX2 reply packets."""

from __future__ import annotations

import logging

from ..errors import FramingError, UnsupportedOptionError
from ..models.system import coerce_enum
from ..models.tracking import HandleStatus, Tool
from ..utils.byte_codec import unpack_float32, unpack_uint
from .commands import SUPPORTED_BX_OPTIONS, ReplyOption
from .gbf import ComponentType, GbfFrame, decode_container
from .packets import BinaryPacket, Packet, StartSequence

logger = logging.getLogger(__name__)


def check_bx_options(options: int) -> None:
    """Reject BX options whose reply layout is not parsed.

    Raises:
        UnsupportedOptionError: If any bit outside
            :data:`~polaris_capi.protocol.commands.SUPPORTED_BX_OPTIONS` is set.
    """
    unsupported = int(options) & ~int(SUPPORTED_BX_OPTIONS)
    if unsupported:
        raise UnsupportedOptionError(
            f"BX reply parsing is only implemented for options "
            f"0x{int(SUPPORTED_BX_OPTIONS):04X}, got 0x{int(options):04X}"
        )


def _is_short_reply(packet: Packet | None) -> bool:
    return (
        isinstance(packet, BinaryPacket)
        and packet.is_valid
        and packet.start_sequence == StartSequence.SHORT_REPLY
    )


def parse_bx(packet: Packet | None, options: int) -> list[Tool]:
    """Parse a BX reply.

    Unlike BX2 the reply is not self-describing, so the options sent with the
    command are needed to read it. Options this parser cannot handle are
    rejected before any payload byte is read.

    Payload layout::

        count (1) | { handle (1) | handle status (1) | [transform] }* | system status (2)

    where the transform is present only for valid handles when transform
    data was requested: q0 qx qy qz x y z error (float32), port status (4),
    frame number (4).
    """
    try:
        check_bx_options(options)
    except UnsupportedOptionError as e:
        logger.error("%s", e)
        return []

    if not _is_short_reply(packet):
        return []

    try:
        return _read_bx_tools(packet.payload_stream(), options)
    except FramingError as e:
        logger.error("Malformed BX reply: %s", e)
        return []


def _read_bx_tools(reader, options: int) -> list[Tool]:
    tools: list[Tool] = []

    for _ in range(unpack_uint(reader, 1)):
        tool = Tool()
        tool.transform.tool_handle = unpack_uint(reader, 1)
        tool.handle_status = coerce_enum(HandleStatus, unpack_uint(reader, 1))

        if tool.handle_status == HandleStatus.VALID and options & ReplyOption.TRANSFORM_DATA:
            transform = tool.transform
            transform.orientation.q0 = unpack_float32(reader)
            transform.orientation.qx = unpack_float32(reader)
            transform.orientation.qy = unpack_float32(reader)
            transform.orientation.qz = unpack_float32(reader)
            transform.position.x = unpack_float32(reader)
            transform.position.y = unpack_float32(reader)
            transform.position.z = unpack_float32(reader)
            transform.error = unpack_float32(reader)
            transform.is_missing = False
            tool.port_status = unpack_uint(reader, 4) & 0x0000FFFF
            tool.frame_number = unpack_uint(reader, 4)

        tools.append(tool)

    system_status = unpack_uint(reader, 2)
    for tool in tools:
        tool.system_status = system_status
    return tools


def parse_bx2(packet: Packet | None) -> list[Tool]:
    """Parse a BX2 reply: a GBF container holding a single Frame component.

    Returns an empty list for an invalid packet, a malformed container, or
    a container without a Frame.
    """
    if not _is_short_reply(packet):
        return []

    try:
        container = decode_container(packet.payload_stream())
    except FramingError as e:
        logger.error("Malformed BX2 reply: %s", e)
        return []
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("BX2 reply:\n%s", container.describe())
    for component in container.components:
        if component.type == ComponentType.FRAME and isinstance(component, GbfFrame):
            return component.tool_list()
    return []
