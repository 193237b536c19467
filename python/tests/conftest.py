"""
Pytest configuration and fixtures for jdwpdbg tests.
"""
import logging

import pytest


@pytest.fixture(autouse=True)
def protocol_logging(caplog):
    """
    Run every test with protocol logging at DEBUG so packet dumps are rendered.
    """
    caplog.set_level(logging.DEBUG, logger="jdwpdbg")
    caplog.set_level(logging.DEBUG, logger="jdwp_check")
    yield caplog
