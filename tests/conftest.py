"""Shared pytest fixtures."""

import logging

import pytest


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logging so caplog keeps seeing package records."""
    yield
    logger = logging.getLogger("activity_digest")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
