"""Shared pytest fixtures for lablog tests."""

import tempfile
from pathlib import Path

import pytest

from lablog.config import LablogConfig
from lablog.engine import LablogEngine
from lablog.store import ProjectStore


@pytest.fixture
def temp_datadir():
    """Create a temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(temp_datadir):
    """Create a test configuration without commit hook."""
    return LablogConfig(data_dir=temp_datadir, lock_timeout=1.0)


@pytest.fixture
def engine(config):
    """Create a test engine."""
    return LablogEngine(config)


@pytest.fixture
def store(temp_datadir):
    """Create a project store on the temporary data directory."""
    return ProjectStore(temp_datadir, lock_timeout=1.0)
