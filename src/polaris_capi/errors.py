"""Exception hierarchy for the CAPI protocol engine."""

from __future__ import annotations


class CapiError(Exception):
    """Base class for all polaris-capi errors."""


class FramingError(CapiError):
    """A frame could not be decoded structurally.

    CRC mismatches are not raised; the affected packet is marked invalid
    instead. This is reserved for faults that stop a decoder outright.
    """


class TruncatedFrameError(FramingError, EOFError):
    """The byte source ran out before a field was complete."""


class UnsupportedFrameError(FramingError, NotImplementedError):
    """The frame variant is recognised but has no decoder."""


class GbfDecodeError(FramingError):
    """A GBF component header is inconsistent with its payload."""


class CommandCancelledError(CapiError):
    """A pending command was dropped before a reply arrived."""


class UnsupportedOptionError(CapiError, ValueError):
    """Reply options were requested that no assembler can parse."""
