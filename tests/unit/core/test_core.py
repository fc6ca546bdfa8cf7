"""
Unit Tests for configuration, exceptions, tracing and snapshots
"""
import re

import pytest
from pydantic import ValidationError

from pagecraft.core.config import GenerationConfig, Settings, WireProtocol, parse_cors_origins
from pagecraft.core.exceptions import (
    GenerationTimeoutError,
    OversizedRecordError,
    ProtocolViolationError,
    RecordValidationError,
    error_response,
)
from pagecraft.utils.html_snapshot import sanitize_filename, save_html_to_file, snapshot_path
from pagecraft.utils.performance_tracer import PerformanceTracer


class TestSettings:
    """Test settings parsing and the generation config"""

    def test_cors_origins(self):
        assert parse_cors_origins("http://a, http://b,") == ["http://a", "http://b"]
        assert parse_cors_origins('["http://a"]') == ["http://a"]
        assert parse_cors_origins(["x"]) == ["x"]
        assert parse_cors_origins(None) == []

    def test_generation_config_from_settings(self):
        settings = Settings(
            WIRE_PROTOCOL="marker",
            MODULE_FLOW_TIMEOUT=30,
            MAX_PARSER_BUFFER=4096,
            RELAX_ROOT_HEIGHT=True,
            CLAUDE_WORKER_MODEL="worker-x",
        )
        config = GenerationConfig.from_settings(settings)

        assert config.protocol == WireProtocol.MARKER
        assert config.module_timeout == 30
        assert config.max_buffer_size == 4096
        assert config.relax_root_height is True
        assert config.worker_model == "worker-x"

    def test_parser_buffer_lower_bound(self):
        with pytest.raises(ValidationError):
            Settings(MAX_PARSER_BUFFER=10)

    def test_default_protocol(self):
        assert GenerationConfig().protocol == WireProtocol.JSONL


class TestExceptions:
    """Test error codes and API serialization"""

    def test_protocol_violation(self):
        error = ProtocolViolationError("Module received before header", stream="planner", remainder="M:{")

        assert error.to_dict() == {
            "code": "PROTOCOL_VIOLATION",
            "message": "Module received before header",
            "details": {"stream": "planner", "remainder": "M:{"},
        }

    def test_oversized_is_protocol_violation(self):
        error = OversizedRecordError(2048, 1024)

        assert isinstance(error, ProtocolViolationError)
        assert error.code == "OVERSIZED_RECORD"
        assert error.details["buffer_size"] == 2048

    def test_record_raw_truncated(self):
        error = RecordValidationError("bad", record_kind="module", raw="x" * 500)

        assert len(error.details["raw"]) == 200

    def test_error_response(self):
        body = error_response(GenerationTimeoutError(1.5, module_id="module2"))

        assert body["success"] is False
        assert body["error"]["code"] == "GENERATION_TIMEOUT"
        assert body["error"]["details"] == {"module_id": "module2", "timeout_seconds": 1.5}


class TestPerformanceTracer:
    """Test timing of named and concurrent tasks"""

    def test_concurrent_instances(self):
        tracer = PerformanceTracer()
        first = tracer.start("module")
        second = tracer.start("module")

        assert (first, second) == ("module#1", "module#2")

        tracer.end(second)
        tracer.end(first)
        report = tracer.report()

        assert report["module"]["count"] == 2
        assert len(report["module"]["invocations"]) == 2
        assert "module#1" not in report

    def test_explicit_instance_id(self):
        tracer = PerformanceTracer()
        assert tracer.start("planner", "planner") == "planner"
        tracer.end("planner")

        assert tracer.report()["planner"]["count"] == 1

    def test_unknown_and_double_end_are_harmless(self):
        tracer = PerformanceTracer()
        task = tracer.start("total")
        tracer.end(task)
        tracer.end(task)
        tracer.end("never-started")

        assert tracer.report()["total"]["count"] == 1

    def test_started_but_not_ended(self):
        tracer = PerformanceTracer()
        tracer.start("parseModule")

        assert tracer.report()["parseModule"]["count"] == 0

    def test_disabled(self):
        tracer = PerformanceTracer(enabled=False)

        assert tracer.start("module") == "module"
        tracer.end("module")
        assert tracer.report() == {}

        tracer.enable()
        tracer.end(tracer.start("module"))
        assert tracer.report()["module"]["count"] == 1

    def test_reset(self):
        tracer = PerformanceTracer()
        tracer.end(tracer.start("module"))
        tracer.reset()

        assert tracer.report() == {}
        assert tracer.start("module") == "module#1"

    def test_base_task_name(self):
        assert PerformanceTracer.base_task_name("module#12") == "module"
        assert PerformanceTracer.base_task_name("module") == "module"
        assert PerformanceTracer.base_task_name("a#b") == "a#b"


class TestHtmlSnapshot:
    """Test snapshot naming and writing"""

    def test_sanitize_filename(self):
        assert sanitize_filename("a simple calculator, dark theme!") == "a_simple_calculator_dark_theme"
        assert sanitize_filename("   ") == "page"
        assert len(sanitize_filename("x" * 200)) == 50

    def test_snapshot_path(self, tmp_path):
        path = snapshot_path("todo list", str(tmp_path), timestamp_ms=1700000000000)

        assert path == tmp_path / "todo_list_1700000000000.html"

    @pytest.mark.asyncio
    async def test_save_html_to_file(self, tmp_path):
        target = tmp_path / "nested"
        path = await save_html_to_file("<html></html>", "my page", str(target))

        assert path.read_text(encoding="utf-8") == "<html></html>"
        assert re.fullmatch(r"my_page_\d+\.html", path.name)
