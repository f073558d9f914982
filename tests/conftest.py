"""Shared test fixtures for platform_web tests."""

from __future__ import annotations

import logging
from collections.abc import Generator

import pytest

from platform_web import _test_hooks
from platform_web.logging import JsonFormatter, TextFormatter


@pytest.fixture(autouse=True)
def _restore_hooks() -> Generator[None, None, None]:
    """Restore environment and redis hooks after each test."""
    original_env = _test_hooks.get_env
    original_redis = _test_hooks.redis_factory
    yield
    _test_hooks.get_env = original_env
    _test_hooks.redis_factory = original_redis


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Generator[None, None, None]:
    """Drop handlers installed by setup_logging and restore the root level."""
    root = logging.getLogger()
    original_level = root.level
    yield
    for handler in list(root.handlers):
        if isinstance(handler.formatter, (JsonFormatter, TextFormatter)):
            root.removeHandler(handler)
    root.setLevel(original_level)
