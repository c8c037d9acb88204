"""Transports that provide the byte channel the protocol core reads from."""

from .channels import ByteChannel, SerialChannel, TCPChannel
