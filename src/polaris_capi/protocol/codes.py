"""Device error and warning codes embedded in ASCII replies.

``ERRORxx`` replies map to ``ERROR_STRINGS[xx]``. ``WARNINGxx`` replies are
offset by :data:`WARNING_CODE_OFFSET` so both share one integer code space.
"""

from __future__ import annotations

WARNING_CODE_OFFSET = 1000

WARNING_STRINGS = (
    "OKAY",  # 0x00 not a warning
    "Possible hardware fault",
    "The tool violates unique geometry constraints",
    "The tool is incompatible with other loaded tools",
    "The tool is incompatible with other loaded tools and violates design constraints",
    "The tool does not specify a marker wavelength. The system will use the default wavelength.",
)

ERROR_STRINGS = (
    "OKAY",  # 0x00 not an error
    "Invalid command.",
    "Command too long.",
    "Command too short.",
    "Invalid CRC calculated for command.",
    "Command timed out.",
    "Bad COMM settings.",
    "Incorrect number of parameters.",
    "Invalid port handle selected.",
    "Invalid priority.",
    "Invalid LED.",
    "Invalid LED state.",
    "Command is invalid while in the current mode.",
    "No tool is assigned to the selected port handle.",
    "Selected port handle not initialized.",
    "Selected port handle not enabled.",
    "System not initialized.",  # 0x10
    "Unable to stop tracking.",
    "Unable to start tracking.",
    "Tool or SROM fault. Unable to initialize.",
    "Invalid Position Sensor characterization parameters.",
    "Unable to initialize the system.",
    "Unable to start Diagnostic mode.",
    "Unable to stop Diagnostic mode.",
    "Reserved",
    "Unable to read device's firmware version information.",
    "Internal system error.",
    "Reserved",
    "Invalid marker activation signature.",
    "Reserved",
    "Unable to read SROM device.",
    "Unable to write to SROM device.",
    "Reserved",  # 0x20
    "Error performing current test on specified tool.",
    "Marker wavelength not supported.",
    "Command parameter is out of range.",
    "Unable to select volume.",
    "Unable to determine the system's supported features list.",
    "Reserved",
    "Reserved",
    "Too many tools are enabled.",
    "Reserved",
    "No memory is available for dynamic allocation.",
    "The requested port handle has not been allocated.",
    "The requested port handle is unoccupied.",
    "No more port handles available.",
    "Incompatible firmware versions.",
    "Invalid port description.",
    "Requested port is already assigned a port handle.",  # 0x30
    "Reserved",
    "Invalid operation on the requested port handle.",
    "Feature unavailable.",
    "Parameter does not exist.",
    "Invalid value type.",
    "Parameter value is out of range.",
    "Parameter index out of range.",
    "Invalid parameter size.",
    "Permission denied.",
    "Reserved",
    "File not found.",
    "Error writing to file.",
    "Error removing file.",
    "Reserved",
    "Reserved",
    "Invalid or corrupted tool definition",  # 0x40
    "Tool exceeds maximum markers, faces, or groups",
    "Required device not connected",
    "Reserved",
)


def parse_reply_code(content: str) -> int:
    """Extract the error or warning code from an ASCII reply.

    Returns:
        0 for an ordinary reply, the error code for ``ERRORxx``, or
        ``WARNING_CODE_OFFSET + xx`` for ``WARNINGxx``.

    Raises:
        ValueError: If the code digits are missing or not hexadecimal.
    """
    if content.startswith("ERROR"):
        return int(content[5:7], 16)
    if content.startswith("WARNING"):
        return int(content[7:9], 16) + WARNING_CODE_OFFSET
    return 0


def error_string(code: int) -> str:
    """Look up the description for a code from :func:`parse_reply_code`."""
    if code >= WARNING_CODE_OFFSET:
        table, index = WARNING_STRINGS, code - WARNING_CODE_OFFSET
    else:
        table, index = ERROR_STRINGS, code
    if 0 <= index < len(table):
        return table[index]
    return f"Unknown code 0x{index:02X}"
