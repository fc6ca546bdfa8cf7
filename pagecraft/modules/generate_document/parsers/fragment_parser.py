"""
Fragment Stream Parser

Turns one module's worker stream into HTML node and CSS rule events, in
depth-first arrival order, followed by a single stream end:

    IDLE -> IN_STREAM -> FINISHED

Parent ids NULL_PARENT / null / "" resolve to the module container the task
was bound to. A stream that closes without its end marker is finalized with
a warning; that is not an error.
"""

from enum import Enum
from typing import Optional

from pagecraft.core.config import WireProtocol
from pagecraft.core.exceptions import ProtocolViolationError, RecordValidationError
from pagecraft.core.logging_config import logger
from pagecraft.modules.generate_document.interfaces import CssRuleRecord, FragmentSink, HtmlNodeRecord
from pagecraft.modules.generate_document.parsers.base import StreamParser, DEFAULT_MAX_BUFFER_SIZE
from pagecraft.modules.generate_document.parsers.framing import (
    Framing,
    JsonLinesFraming,
    MarkerFragmentFraming,
    RawRecord,
    RecordKind,
)
from pagecraft.modules.generate_document.separators import NULL_PARENT_TOKENS


class FragmentState(str, Enum):
    IDLE = "idle"
    IN_STREAM = "in_stream"
    FINISHED = "finished"


class StreamFragmentParser(StreamParser):

    def __init__(
        self,
        task_id: str,
        sink: FragmentSink,
        root_parent_id: Optional[str] = None,
        protocol: Optional[WireProtocol] = None,
        max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE,
    ):
        self.task_id = task_id
        self.sink = sink
        self.root_parent_id = root_parent_id
        self.state = FragmentState.IDLE
        self.html_count = 0
        self.css_count = 0
        self._last_kind: Optional[str] = None
        self.log_prefix = f"[Fragment Parser:{task_id}]"
        super().__init__(protocol=protocol, max_buffer_size=max_buffer_size)

    def _create_framing(self, protocol: WireProtocol) -> Framing:
        if protocol == WireProtocol.JSONL:
            return JsonLinesFraming()
        return MarkerFragmentFraming()

    @property
    def is_finished(self) -> bool:
        return self.state == FragmentState.FINISHED

    def resolve_parent_id(self, parent_id: Optional[str]) -> Optional[str]:
        if parent_id is None:
            return self.root_parent_id
        parent_id = str(parent_id).strip()
        if not parent_id or parent_id in NULL_PARENT_TOKENS:
            return self.root_parent_id
        return parent_id

    def _handle_record(self, record: RawRecord) -> None:
        if record.kind == RecordKind.STREAM_START:
            if self.state == FragmentState.IDLE:
                self.state = FragmentState.IN_STREAM
            else:
                logger.warning(f"{self.log_prefix} Duplicate stream start ignored")
            return

        if record.kind == RecordKind.STREAM_END:
            self._end_stream()
            return

        if self.state == FragmentState.IDLE:
            if self.protocol == WireProtocol.MARKER:
                logger.warning(f"{self.log_prefix} Record before stream start, starting implicitly")
            self.state = FragmentState.IN_STREAM

        try:
            if record.kind == RecordKind.HTML:
                self._on_html_record(record)
            elif record.kind == RecordKind.CSS:
                node = self._validate(CssRuleRecord, record.payload, "cssRule", record.raw)
                self._last_kind = RecordKind.CSS
                self._emit_css(node.css_text)
            elif record.kind == RecordKind.TEXT and self._last_kind == RecordKind.CSS:
                # Continuation of a multi-line CSS block
                self._emit_css(record.payload.get("text", ""))
            elif record.kind == RecordKind.INVALID:
                raise RecordValidationError(record.payload.get("error", "Invalid record"), raw=record.raw)
            else:
                raise RecordValidationError(
                    f"Unexpected {record.kind} record in fragment stream",
                    record_kind=record.kind,
                    raw=record.raw,
                )
        except RecordValidationError as e:
            logger.warning(f"{self.log_prefix} Dropped record: {e.message}", extra={"record": record.raw[:200]})
            self.sink.on_record_error(e)

    def _on_html_record(self, record: RawRecord) -> None:
        node = self._validate(HtmlNodeRecord, record.payload, "htmlNode", record.raw)
        if not node.html.strip():
            logger.debug(f"{self.log_prefix} Dropped empty HTML node")
            return
        parent_id = self.resolve_parent_id(node.parent_id)
        self.html_count += 1
        self._last_kind = RecordKind.HTML
        self.sink.on_html_node(parent_id, node.html)

    def _emit_css(self, css_text: str) -> None:
        css_text = css_text.strip()
        if not css_text:
            logger.debug(f"{self.log_prefix} Dropped empty CSS rule")
            return
        self.css_count += 1
        self._last_kind = RecordKind.CSS
        self.sink.on_css_rule(css_text)

    def _end_stream(self) -> None:
        if self.is_finished:
            return
        self.state = FragmentState.FINISHED
        logger.debug(f"{self.log_prefix} Stream end: {self.html_count} node(s), {self.css_count} rule(s)")
        self.sink.on_stream_end()

    def _close(self, remainder: str) -> None:
        if self.is_finished:
            return
        if remainder.strip():
            logger.error(f"{self.log_prefix} Incomplete record at end of stream: {remainder[:80]!r}")
            raise ProtocolViolationError("Incomplete record at end of fragment stream",
                                         stream=self.task_id, remainder=remainder)
        if self.protocol == WireProtocol.MARKER:
            logger.warning(f"{self.log_prefix} Stream closed without end marker, finalizing")
        self._end_stream()
