"""Tests for the MCP server tools."""

from __future__ import annotations

import io
import json
import sys
from unittest.mock import MagicMock, patch

import pytest

from capi_testing import single_tool_bx2_payload
from polaris_capi.capi import Capi
from polaris_capi.models.tracking import Tool
from polaris_capi.protocol.commands import ReplyOption, StreamCommand
from polaris_capi.protocol.packets import (
    AsciiPacket,
    build_binary_reply,
    read_packet,
)


def _get_server_module():
    """Import server module with FastMCP mocked to avoid init issues."""
    mock_fastmcp_cls = MagicMock()
    mock_fastmcp_instance = MagicMock()
    # Make the @mcp.tool() decorator a no-op that returns the function unchanged
    mock_fastmcp_instance.tool.return_value = lambda fn: fn
    mock_fastmcp_instance.resource.return_value = lambda fn: fn
    mock_fastmcp_instance.prompt.return_value = lambda fn: fn
    mock_fastmcp_cls.return_value = mock_fastmcp_instance

    with patch.dict(sys.modules, {}):
        with patch("mcp.server.fastmcp.FastMCP", mock_fastmcp_cls):
            # Remove cached server module so it re-imports with our mock
            sys.modules.pop("polaris_capi.server", None)
            import polaris_capi.server as server_mod

    return server_mod


def _bx2_packet():
    return read_packet(io.BytesIO(build_binary_reply(single_tool_bx2_payload(handle=1))))


def test_tools_require_connection():
    server = _get_server_module()
    with pytest.raises(RuntimeError, match="Not connected"):
        server.initialize()


def test_status_when_disconnected():
    server = _get_server_module()
    assert server.get_status() == {"connected": False}
    assert json.loads(server.resource_device_status()) == {"connected": False}
    assert json.loads(server.resource_streams()) == {"streams": []}


def test_get_transforms_requests_all_transforms():
    server = _get_server_module()
    mock_conn = MagicMock()
    tool = Tool()
    tool.transform.tool_handle = 1
    mock_conn.send_bx.return_value = [tool]

    with patch.object(server, "_get_connection", return_value=mock_conn):
        result = server.get_transforms()

    mock_conn.send_bx.assert_called_once_with(
        ReplyOption.TRANSFORM_DATA | ReplyOption.ALL_TRANSFORMS
    )
    assert result["count"] == 1
    assert result["tools"][0]["tool_handle"] == 1
    assert result["tools"][0]["transform"]["position"] is None


def test_get_transforms_visible_only():
    server = _get_server_module()
    mock_conn = MagicMock()
    mock_conn.send_bx.return_value = []

    with patch.object(server, "_get_connection", return_value=mock_conn):
        result = server.get_transforms(all_transforms=False)

    mock_conn.send_bx.assert_called_once_with(ReplyOption.TRANSFORM_DATA)
    assert result == {"tools": [], "count": 0}


def test_get_tools_checks_api_revision():
    """BX2 is refused on devices older than API revision G.003."""
    server = _get_server_module()
    mock_conn = MagicMock()
    server._api_revision = "G.001.004"

    with patch.object(server, "_get_connection", return_value=mock_conn):
        result = server.get_tools()

    assert "error" in result
    mock_conn.send_bx2.assert_not_called()


def test_get_tools_sends_bx2():
    server = _get_server_module()
    mock_conn = MagicMock()
    mock_conn.send_bx2.return_value = [Tool(), Tool()]
    server._api_revision = "G.003.004"

    with patch.object(server, "_get_connection", return_value=mock_conn):
        result = server.get_tools("--6d=tools --3d=tools")

    mock_conn.send_bx2.assert_called_once_with("--6d=tools --3d=tools")
    assert result["count"] == 2


def test_tracking_tool_failures_reported():
    server = _get_server_module()
    mock_conn = MagicMock()
    mock_conn.initialize.return_value = False
    mock_conn.tracking_start.return_value = True
    mock_conn.tracking_stop.return_value = False

    with patch.object(server, "_get_connection", return_value=mock_conn):
        assert "error" in server.initialize()
        assert server.start_tracking() == {"tracking": True}
        assert "error" in server.stop_tracking()


def test_start_stream_caches_decoded_tools():
    """Streamed BX2 frames are decoded into the latest tool list."""
    server = _get_server_module()
    stream = StreamCommand("BX2 --6d=tools", "s1")
    mock_conn = MagicMock()
    mock_conn.start_streaming.return_value = stream
    mock_conn.get_stream.return_value = stream

    with patch.object(server, "_get_connection", return_value=mock_conn):
        started = server.start_stream(stream_id="s1")
        before = server.get_stream_data("s1")
        stream.push(_bx2_packet())
        stream.push(AsciiPacket(data="OKAY", is_valid=True))
        after = server.get_stream_data("s1")

    mock_conn.start_streaming.assert_called_once_with("BX2 --6d=tools", "s1", 1)
    assert started == {"streaming": True, "stream_id": "s1"}
    assert before["tools"] == []
    assert after["count"] == 1
    assert after["packets"] == 2
    assert after["tools"][0]["transform"]["position"] == {"x": 10.0, "y": 20.0, "z": 30.0}


def test_start_stream_duplicate_id():
    server = _get_server_module()
    mock_conn = MagicMock()
    mock_conn.start_streaming.side_effect = ValueError("Stream id 's1' is taken.")

    with patch.object(server, "_get_connection", return_value=mock_conn):
        result = server.start_stream(stream_id="s1")

    assert result == {"error": "Stream id 's1' is taken."}


def test_get_stream_data_unknown_stream():
    server = _get_server_module()
    mock_conn = MagicMock()
    mock_conn.get_stream.return_value = None

    with patch.object(server, "_get_connection", return_value=mock_conn):
        result = server.get_stream_data("missing")

    assert "error" in result


def test_stop_stream_clears_cache():
    server = _get_server_module()
    mock_conn = MagicMock()
    mock_conn.stop_streaming.return_value = True
    server._stream_data["s1"] = [Tool()]

    with patch.object(server, "_get_connection", return_value=mock_conn):
        result = server.stop_stream("s1")

    assert result == {"stopped": True, "stream_id": "s1"}
    assert "s1" not in server._stream_data


def test_connect_tcp_reports_connection_error():
    server = _get_server_module()
    with patch.object(server.TCPChannel, "open", side_effect=ConnectionError("refused")):
        result = server.connect_tcp("192.0.2.1")
    assert result == {"error": "refused"}


def test_connect_and_disconnect():
    server = _get_server_module()
    channel = MagicMock()
    channel.connection_info = "192.0.2.1:8765"
    mock_capi = MagicMock(spec=Capi)
    mock_capi.start.return_value = mock_capi
    mock_capi.get_api_revision.return_value = "G.003.004"
    mock_capi.connected = True

    with patch.object(server.TCPChannel, "open", return_value=channel), \
            patch.object(server, "Capi", MagicMock(return_value=mock_capi, supports_bx2=Capi.supports_bx2)):
        result = server.connect_tcp("192.0.2.1")

    assert result == {
        "connected": True,
        "connection": "192.0.2.1:8765",
        "api_revision": "G.003.004",
        "supports_bx2": True,
    }
    assert server.connect_tcp("192.0.2.1")["message"] == "Already connected"

    assert server.disconnect() == {"disconnected": True}
    mock_capi.disconnect.assert_called_once()
    assert server.get_status() == {"connected": False}
