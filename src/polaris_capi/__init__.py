"""Host-side client for NDI position sensors speaking the CAPI protocol."""

from .capi import Capi
from .errors import (
    CapiError,
    CommandCancelledError,
    FramingError,
    GbfDecodeError,
    TruncatedFrameError,
    UnsupportedFrameError,
    UnsupportedOptionError,
)
from .protocol.commands import Command, ReplyOption, StreamCommand
from .transport.channels import SerialChannel, TCPChannel

__version__ = "0.1.0"
