"""Shared pytest fixtures for gdsdump tests."""
from __future__ import annotations

import logging
from pathlib import Path

import pytest
import structlog
from click.testing import CliRunner

from streamkit import top_library


@pytest.fixture(autouse=True)
def _restore_logging():
    """Restore root logger and structlog state after each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    pkg = logging.getLogger("gdsdump")
    pkg_level = pkg.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    pkg.setLevel(pkg_level)
    structlog.reset_defaults()


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def top_stream() -> bytes:
    return top_library()


@pytest.fixture
def top_gds(tmp_path: Path, top_stream: bytes) -> Path:
    """TOP library written to a .gds file."""
    path = tmp_path / "top.gds"
    path.write_bytes(top_stream)
    return path
