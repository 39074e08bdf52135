"""Shared fixtures for the reattribution tests."""

import logging
import os
import sys

import pytest

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.primitives import SeededRNG
from reader.records import BoundRecord, Record


@pytest.fixture
def rng():
    """Reproducible generator so that failures can be replayed."""
    return SeededRNG(20240601)


@pytest.fixture
def records():
    return [Record("a", 10), Record("b", 5), Record("c", 5)]


@pytest.fixture
def bound_records():
    return [
        BoundRecord("a", 8, 12, 10),
        BoundRecord("b", 3, 7, 5),
        BoundRecord("c", 3, 7, 4),
    ]


@pytest.fixture
def write_csv(tmp_path):
    """Write text to a CSV file under tmp_path and return its path."""
    def _write(name: str, text: str, encoding: str = "utf-8") -> str:
        path = tmp_path / name
        path.write_text(text, encoding=encoding)
        return str(path)
    return _write


@pytest.fixture
def restore_logging():
    """Remove handlers that main.setup_logging attaches to the root logger."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
