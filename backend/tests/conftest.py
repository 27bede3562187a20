"""Pytest configuration and fixtures."""

import logging

import pytest


@pytest.fixture(autouse=True)
def _market_debug_logging(caplog):
    """Run every test with the cryptodash loggers at DEBUG so debug paths execute."""
    caplog.set_level(logging.DEBUG, logger="cryptodash")
