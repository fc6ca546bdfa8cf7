"""
Planner Stream Parser

Turns the planner model's stream into one header, zero or more modules and
a terminal plan end, in arrival order:

    AWAITING_HEADER -> PROCESSING_MODULES -> FINISHED

A module arriving before the header breaks the plan contract and raises
ProtocolViolationError. A record that is well framed but invalid is reported
to the sink and dropped.
"""

from enum import Enum
from typing import Optional

from pagecraft.core.config import WireProtocol
from pagecraft.core.exceptions import ProtocolViolationError, RecordValidationError
from pagecraft.core.logging_config import logger
from pagecraft.modules.generate_document.interfaces import ParsedHeader, ParsedModule, PlannerSink
from pagecraft.modules.generate_document.parsers.base import StreamParser, DEFAULT_MAX_BUFFER_SIZE
from pagecraft.modules.generate_document.parsers.framing import (
    Framing,
    JsonLinesFraming,
    MarkerPlannerFraming,
    RawRecord,
    RecordKind,
)


class PlannerState(str, Enum):
    AWAITING_HEADER = "awaiting_header"
    PROCESSING_MODULES = "processing_modules"
    FINISHED = "finished"


class StreamPlannerParser(StreamParser):
    log_prefix = "[Planner Parser]"

    def __init__(
        self,
        sink: PlannerSink,
        protocol: Optional[WireProtocol] = None,
        max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE,
    ):
        self.sink = sink
        self.state = PlannerState.AWAITING_HEADER
        self.module_count = 0
        super().__init__(protocol=protocol, max_buffer_size=max_buffer_size)

    def _create_framing(self, protocol: WireProtocol) -> Framing:
        if protocol == WireProtocol.JSONL:
            return JsonLinesFraming()
        return MarkerPlannerFraming()

    @property
    def is_finished(self) -> bool:
        return self.state == PlannerState.FINISHED

    def _handle_record(self, record: RawRecord) -> None:
        try:
            if record.kind == RecordKind.HEADER:
                self._on_header_record(record)
            elif record.kind == RecordKind.MODULE:
                self._on_module_record(record)
            elif record.kind == RecordKind.PLAN_END:
                self._end_plan()
            elif record.kind == RecordKind.INVALID:
                raise RecordValidationError(record.payload.get("error", "Invalid record"), raw=record.raw)
            else:
                raise RecordValidationError(
                    f"Unexpected {record.kind} record in plan stream",
                    record_kind=record.kind,
                    raw=record.raw,
                )
        except RecordValidationError as e:
            logger.warning(f"{self.log_prefix} Dropped record: {e.message}", extra={"record": record.raw[:200]})
            self.sink.on_record_error(e)

    def _on_header_record(self, record: RawRecord) -> None:
        if self.state != PlannerState.AWAITING_HEADER:
            raise RecordValidationError("Duplicate header in plan", record_kind="header", raw=record.raw)

        header = self._validate(ParsedHeader, record.payload, "header", record.raw)
        self.state = PlannerState.PROCESSING_MODULES
        logger.info(f"{self.log_prefix} Header parsed: {header.app_name}")
        self.sink.on_header(header)

    def _on_module_record(self, record: RawRecord) -> None:
        if self.state == PlannerState.AWAITING_HEADER:
            logger.error(f"{self.log_prefix} Module received before header")
            raise ProtocolViolationError("Module received before header", stream="planner", remainder=record.raw)

        module = self._validate(ParsedModule, record.payload, "module", record.raw)
        self.module_count += 1
        logger.info(f"{self.log_prefix} Module {self.module_count} parsed: {module.name}")
        self.sink.on_module(module)

    def _end_plan(self) -> None:
        if self.state == PlannerState.AWAITING_HEADER:
            logger.error(f"{self.log_prefix} Plan ended before a header was parsed")
            raise ProtocolViolationError("Plan ended before a header was parsed", stream="planner")

        self.state = PlannerState.FINISHED
        logger.info(f"{self.log_prefix} Plan complete: {self.module_count} module(s)")
        self.sink.on_plan_end()

    def _close(self, remainder: str) -> None:
        if self.is_finished:
            return
        if remainder.strip():
            logger.error(f"{self.log_prefix} Incomplete record at end of plan stream: {remainder[:80]!r}")
            raise ProtocolViolationError("Incomplete record at end of plan stream", stream="planner", remainder=remainder)
        if self.protocol == WireProtocol.MARKER:
            logger.warning(f"{self.log_prefix} Plan stream closed without end marker")
        self._end_plan()
