"""MCP server entry point for NDI position sensors speaking CAPI.

Exposes tools and resources via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any

from mcp.server.fastmcp import FastMCP

from .capi import Capi
from .errors import FramingError
from .models.tracking import Tool
from .protocol.commands import ReplyOption, StreamCommand
from .protocol.packets import BinaryPacket, Packet
from .protocol.replies import parse_bx2
from .transport.channels import (
    DEFAULT_BAUDRATE,
    DEFAULT_TCP_PORT,
    SerialChannel,
    TCPChannel,
)

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "polaris-capi",
    instructions="MCP server for NDI optical and electromagnetic trackers over CAPI",
)

# Global connection state
_connection: Capi | None = None
_api_revision: str | None = None
_stream_data: dict[str, list[Tool]] = {}
_stream_lock = threading.Lock()


def _get_connection() -> Capi:
    """Get the active CAPI connection, raising if not connected."""
    if _connection is None or not _connection.connected:
        raise RuntimeError(
            "Not connected to device. Use 'connect_tcp' or 'connect_serial' first."
        )
    return _connection


def _tools_to_dict(tools: list[Tool]) -> dict[str, Any]:
    return {"tools": [t.to_dict() for t in tools], "count": len(tools)}


def _open(channel) -> dict[str, Any]:
    """Start a correlator on an open channel and query the API revision."""
    global _connection, _api_revision
    _connection = Capi(channel).start()
    _api_revision = _connection.get_api_revision()
    return {
        "connected": True,
        "connection": channel.connection_info,
        "api_revision": _api_revision,
        "supports_bx2": Capi.supports_bx2(_api_revision),
    }


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect_tcp(host: str, port: int = DEFAULT_TCP_PORT) -> dict[str, Any]:
    """Connect to an Ethernet position sensor.

    Opens a TCP connection and queries the API revision (APIREV) to
    confirm the device answers.

    Args:
        host: Hostname or IP address of the device.
        port: CAPI port (default 8765).
    """
    if _connection is not None and _connection.connected:
        return {"connected": True, "message": "Already connected"}

    try:
        channel = TCPChannel(host, port).open()
    except ConnectionError as e:
        return {"error": str(e)}
    return _open(channel)


@mcp.tool()
def connect_serial(port: str, baudrate: int = DEFAULT_BAUDRATE) -> dict[str, Any]:
    """Connect to a position sensor on a serial port.

    Args:
        port: Serial port name (e.g. 'COM3' or '/dev/ttyUSB0').
        baudrate: Port speed (default 9600, the device's power-up rate).
    """
    if _connection is not None and _connection.connected:
        return {"connected": True, "message": "Already connected"}

    try:
        channel = SerialChannel(port, baudrate).open()
    except ConnectionError as e:
        return {
            "error": str(e),
            "available_ports": SerialChannel.available_ports(),
        }
    return _open(channel)


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Stop tracking and close the connection to the device."""
    global _connection, _api_revision
    if _connection is None:
        return {"disconnected": True}
    _connection.disconnect()
    _connection = None
    _api_revision = None
    with _stream_lock:
        _stream_data.clear()
    return {"disconnected": True}


@mcp.tool()
def get_status() -> dict[str, Any]:
    """Report connection, tracking, and streaming state."""
    if _connection is None:
        return {"connected": False}
    return {
        "connected": _connection.connected,
        "tracking": _connection.tracking,
        "api_revision": _api_revision,
        "pending_commands": _connection.pending_count,
        "streams": _connection.stream_ids,
    }


# ─── TRACKING TOOLS ──────────────────────────────────────────────────

@mcp.tool()
def initialize() -> dict[str, Any]:
    """Initialize the system (INIT). Required once after power up or reset."""
    conn = _get_connection()
    if not conn.initialize():
        return {"error": "INIT failed"}
    return {"initialized": True}


@mcp.tool()
def start_tracking() -> dict[str, Any]:
    """Enter tracking mode (TSTART)."""
    conn = _get_connection()
    if not conn.tracking_start():
        return {"error": "TSTART failed"}
    return {"tracking": True}


@mcp.tool()
def stop_tracking() -> dict[str, Any]:
    """Leave tracking mode (TSTOP)."""
    conn = _get_connection()
    if not conn.tracking_stop():
        return {"error": "TSTOP failed"}
    return {"tracking": False}


@mcp.tool()
def get_transforms(all_transforms: bool = True) -> dict[str, Any]:
    """Read tool poses with the BX command.

    Args:
        all_transforms: Include tools that are out of volume or disabled
                        (default True).
    """
    conn = _get_connection()
    options = ReplyOption.TRANSFORM_DATA
    if all_transforms:
        options |= ReplyOption.ALL_TRANSFORMS
    return _tools_to_dict(conn.send_bx(options))


@mcp.tool()
def get_tools(options: str = "--6d=tools") -> dict[str, Any]:
    """Read tool poses, markers, and system alerts with the BX2 command.

    Requires API revision G.003 or newer.

    Args:
        options: BX2 option string (default '--6d=tools').
    """
    conn = _get_connection()
    if not Capi.supports_bx2(_api_revision):
        return {"error": f"BX2 is not supported by API revision {_api_revision!r}"}
    return _tools_to_dict(conn.send_bx2(options))


# ─── STREAMING TOOLS ─────────────────────────────────────────────────

def _make_stream_listener(stream_id: str):
    def on_packet(packet: Packet) -> None:
        if not isinstance(packet, BinaryPacket) or not packet.is_valid:
            return
        try:
            tools = parse_bx2(packet)
        except FramingError as e:
            logger.warning("Stream %r: %s", stream_id, e)
            return
        with _stream_lock:
            _stream_data[stream_id] = tools

    return on_packet


@mcp.tool()
def start_stream(
    command: str = "BX2 --6d=tools",
    stream_id: str = "",
    frame_count_divisor: int = 1,
) -> dict[str, Any]:
    """Ask the device to stream replies to a command.

    Streamed BX2 frames are decoded as they arrive; read the latest with
    get_stream_data.

    Args:
        command: Command to stream (default 'BX2 --6d=tools').
        stream_id: Id for the stream (defaults to the command text).
        frame_count_divisor: Stream every Nth frame (default 1).
    """
    conn = _get_connection()
    try:
        stream = conn.start_streaming(command, stream_id, frame_count_divisor)
    except ValueError as e:
        return {"error": str(e)}

    stream.add_listener(_make_stream_listener(stream.stream_id))
    return {"streaming": True, "stream_id": stream.stream_id}


@mcp.tool()
def get_stream_data(stream_id: str) -> dict[str, Any]:
    """Return the most recent tools decoded from a stream.

    Args:
        stream_id: Id returned by start_stream.
    """
    conn = _get_connection()
    stream: StreamCommand | None = conn.get_stream(stream_id)
    if stream is None:
        return {"error": f"No stream with id {stream_id!r}"}

    with _stream_lock:
        tools = _stream_data.get(stream_id)
    if tools is None:
        return {"stream_id": stream_id, "packets": stream.packet_count, "tools": []}

    result = _tools_to_dict(tools)
    result["stream_id"] = stream_id
    result["packets"] = stream.packet_count
    return result


@mcp.tool()
def stop_stream(stream_id: str) -> dict[str, Any]:
    """Stop a stream started with start_stream.

    Args:
        stream_id: Id returned by start_stream.
    """
    conn = _get_connection()
    if not conn.stop_streaming(stream_id):
        return {"error": f"Device did not stop stream {stream_id!r}"}
    with _stream_lock:
        _stream_data.pop(stream_id, None)
    return {"stopped": True, "stream_id": stream_id}


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("polaris://device/status")
def resource_device_status() -> str:
    """Connection and tracking state."""
    return json.dumps(get_status())


@mcp.resource("polaris://streams")
def resource_streams() -> str:
    """Active stream ids and their packet counts."""
    if _connection is None or not _connection.connected:
        return json.dumps({"streams": []})

    streams = []
    for stream_id in _connection.stream_ids:
        stream = _connection.get_stream(stream_id)
        if stream is not None:
            streams.append({"stream_id": stream_id, "packets": stream.packet_count})
    return json.dumps({"streams": streams})


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
