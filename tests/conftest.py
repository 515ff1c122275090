"""Pytest configuration and shared fixtures."""

import logging

import logfire
import pytest


@pytest.fixture(autouse=True, scope="session")
def configure_test_logging():
    """Keep Logfire local and quiet for the whole test session."""
    logfire.configure(send_to_logfire=False, console=False)
    logging.getLogger("llamaio").setLevel(logging.WARNING)
