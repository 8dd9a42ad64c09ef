"""
Logging Tests
-------------
request_id propagation, JSON formatting and configure_logging().
"""

import asyncio
import json
import logging
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from infra.logging import (
    JSONFormatter,
    RequestContext,
    RequestIdFilter,
    configure_logging,
    generate_request_id,
    get_logger,
    get_request_id,
    reset_logging,
)


class TestRequestContext:
    def test_binds_and_restores(self):
        assert get_request_id() is None

        with RequestContext("req-1") as request_id:
            assert request_id == "req-1"
            assert get_request_id() == "req-1"
            with RequestContext("req-2"):
                assert get_request_id() == "req-2"
            assert get_request_id() == "req-1"

        assert get_request_id() is None

    def test_generates_id_when_missing(self):
        with RequestContext() as request_id:
            assert request_id.startswith("req_")
            assert len(request_id) == len("req_") + 12

    def test_generated_ids_unique(self):
        assert generate_request_id() != generate_request_id()

    @pytest.mark.asyncio
    async def test_isolated_between_tasks(self):
        async def worker(request_id):
            with RequestContext(request_id):
                await asyncio.sleep(0)
                return get_request_id()

        assert await asyncio.gather(worker("a"), worker("b")) == ["a", "b"]


class TestFormatting:
    def _record(self, **extra):
        record = logging.LogRecord("bridge.test", logging.INFO, __file__, 1, "hello", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_filter_stamps_request_id(self):
        record = self._record()
        with RequestContext("req-9"):
            RequestIdFilter().filter(record)

        assert record.request_id == "req-9"

    def test_filter_default(self):
        record = self._record()
        RequestIdFilter().filter(record)

        assert record.request_id == "-"

    def test_json_formatter(self):
        record = self._record(request_id="req-3", tool_name="echo", duration_ms=1.5)

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["request_id"] == "req-3"
        assert entry["tool_name"] == "echo"
        assert entry["duration_ms"] == 1.5
        assert "execution_id" not in entry


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def reset(self):
        yield
        reset_logging()

    def test_file_output(self, tmp_path):
        path = configure_logging(level="DEBUG", log_dir=str(tmp_path), console=False)

        with RequestContext("req-file"):
            get_logger("tools.test").info("written", extra={"tool_name": "echo"})
        for handler in logging.getLogger("bridge").handlers:
            handler.flush()

        entry = json.loads(path.read_text().strip().splitlines()[-1])
        assert entry["logger"] == "bridge.tools.test"
        assert entry["request_id"] == "req-file"
        assert entry["tool_name"] == "echo"

    def test_idempotent(self, tmp_path):
        first = configure_logging(log_dir=str(tmp_path), console=False)
        second = configure_logging(log_dir=str(tmp_path / "other"), console=False)

        assert first == second
        assert len(logging.getLogger("bridge").handlers) == 1

    def test_console_only(self):
        assert configure_logging(file=False) is None
        assert len(logging.getLogger("bridge").handlers) == 1


class TestGetLogger:
    def test_prefix(self):
        assert get_logger("tools.registry").name == "bridge.tools.registry"
        assert get_logger("bridge.audit").name == "bridge.audit"
        assert get_logger("bridge").name == "bridge"
