"""Fixtures for correlator tests."""

from __future__ import annotations

import pytest

from capi_testing import MemoryChannel, scripted_responder
from polaris_capi.capi import Capi


@pytest.fixture
def channel():
    ch = MemoryChannel(responder=scripted_responder())
    yield ch
    ch.close()


@pytest.fixture
def capi(channel):
    connection = Capi(channel, response_timeout=1.0).start()
    yield connection
    connection.disconnect()
