"""Tests for structlog configuration."""
from __future__ import annotations

import json
import logging

import pytest
import structlog

from gdsdump.layout.builder import parse_library
from gdsdump.log import configure_logging

from streamkit import boundary, library, record, structure, top_library


class TestConfigureLogging:
    def test_verbose_enables_debug(self) -> None:
        configure_logging(verbose=True, log_json=False)
        assert logging.getLogger("gdsdump").level == logging.DEBUG
        assert logging.getLogger().level == logging.WARNING

    def test_non_verbose_sets_warning(self) -> None:
        configure_logging(verbose=False, log_json=False)
        assert logging.getLogger("gdsdump").level == logging.WARNING

    def test_json_mode_output(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        log = structlog.get_logger("gdsdump.test")
        log.warning("json test", answer=42)
        captured = capfd.readouterr()
        parsed = json.loads(captured.err.strip())
        assert parsed["event"] == "json test"
        assert parsed["answer"] == 42
        assert parsed["level"] == "warning"
        assert parsed["logger"] == "gdsdump.test"
        assert "timestamp" in parsed

    def test_builder_events(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        parse_library(record(0x60) + top_library())
        events = [json.loads(line) for line in capfd.readouterr().err.splitlines()]
        names = [e["event"] for e in events]
        assert "record.unknown" in names
        assert "library.finished" in names
        unknown = events[names.index("record.unknown")]
        assert unknown["record_type"] == "0x60"
        assert unknown["logger"] == "gdsdump.layout.builder"

    def test_debug_hidden_without_verbose(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=False, log_json=True)
        parse_library(record(0x60) + top_library())
        assert capfd.readouterr().err == ""

    def test_third_party_debug_is_suppressed(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        logging.getLogger("asyncio").debug("loop noise")
        assert capfd.readouterr().err == ""


class TestUnconfigured:
    def test_parse_writes_nothing(self, capfd: pytest.CaptureFixture[str]) -> None:
        structlog.reset_defaults()
        parse_library(library("LIB", structure("S", boundary(1, 0), record(0x60))))
        captured = capfd.readouterr()
        assert captured.out == ""
        assert captured.err == ""
