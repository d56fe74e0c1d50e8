"""Pytest fixtures for recipebook tests."""

import pytest

from helpers.logging import LoggerStub
from recipebook.logging import Logger


@pytest.fixture
def logger() -> Logger:
    """Provide a logger that discards all output."""
    return LoggerStub()
