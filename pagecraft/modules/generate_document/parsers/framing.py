"""
Framing strategies

A framing knows how to cut one complete record off the head of a text
buffer. It never keeps state between calls: the same buffer always yields
the same record, which keeps parsing independent of how the model stream
happened to be chunked.

next_record() returns (record, consumed_length), or None when the head of
the buffer is not complete yet. With final=True the transport has closed
and a trailing record without terminator is accepted where the framing
allows it.
"""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from pagecraft.core.config import WireProtocol
from pagecraft.modules.generate_document.separators import (
    PLANNER_HEADER_MARKER,
    PLANNER_MODULE_MARKER,
    PLANNER_END_MARKER,
    S_HTML_START,
    S_NODE_START,
    S_CSS_START,
    S_HTML_END,
    RECORD_TYPE_FIELD,
    PLAN_HEADER_TYPE,
    PLAN_MODULE_TYPE,
    HTML_NODE_TYPE,
    CSS_RULE_TYPE,
)


class RecordKind:
    HEADER = "header"
    MODULE = "module"
    PLAN_END = "plan_end"
    STREAM_START = "stream_start"
    STREAM_END = "stream_end"
    HTML = "html"
    CSS = "css"
    TEXT = "text"          # unmarked line, e.g. a CSS continuation
    INVALID = "invalid"    # undecodable; payload carries "error"


@dataclass
class RawRecord:
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)
    raw: str = ""

    @classmethod
    def invalid(cls, error: str, raw: str) -> "RawRecord":
        return cls(kind=RecordKind.INVALID, payload={"error": error}, raw=raw)


RecordResult = Optional[Tuple[RawRecord, int]]


def _skip_whitespace(buffer: str, start: int = 0) -> int:
    i = start
    while i < len(buffer) and buffer[i].isspace():
        i += 1
    return i


def find_json_end(buffer: str, start: int) -> int:
    """
    Index of the brace closing the object opened at buffer[start], or -1.

    Braces inside JSON strings (including escaped quotes) do not count.
    """
    if start >= len(buffer) or buffer[start] != "{":
        return -1
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(buffer)):
        ch = buffer[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


_TAG_RE = re.compile(r"<(/?)([A-Za-z][\w:-]*)(?:\s[^<>]*?)?(/?)>")
_VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})


def markup_depth(text: str) -> int:
    """Elements left open by text; void and self-closing tags do not count"""
    depth = 0
    for match in _TAG_RE.finditer(text):
        closing, tag, self_closing = match.groups()
        if closing:
            depth -= 1
        elif not self_closing and tag.lower() not in _VOID_ELEMENTS:
            depth += 1
    return depth


def is_balanced_record(text: str) -> bool:
    """True when text closes every element and CSS block it opens"""
    return markup_depth(text) <= 0 and text.count("{") <= text.count("}")


def _decode_object(text: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return None, f"Invalid JSON: {e.msg}"
    if not isinstance(data, dict):
        return None, "Record is not a JSON object"
    return data, None


class Framing(ABC):
    """Cuts complete records off the head of a buffer"""

    protocol: WireProtocol

    @abstractmethod
    def next_record(self, buffer: str, final: bool = False) -> RecordResult:
        ...


class MarkerPlannerFraming(Framing):
    """
    H:{json} M:{json} ... E:

    A bracketed record is complete once its closing brace arrived. Text that
    does not start with a marker is cut up to the next marker and returned
    as an invalid record.
    """

    protocol = WireProtocol.MARKER
    _MARKERS = (PLANNER_HEADER_MARKER, PLANNER_MODULE_MARKER, PLANNER_END_MARKER)
    # A marker only counts at a record boundary, not inside words like "NOTE:"
    _MARKER_RE = re.compile(r"(?<![^\s}])(?:H:|M:|E:)")

    def next_record(self, buffer: str, final: bool = False) -> RecordResult:
        i = _skip_whitespace(buffer)
        if i >= len(buffer):
            return None
        rest = buffer[i:]

        if rest.startswith(PLANNER_END_MARKER):
            return RawRecord(kind=RecordKind.PLAN_END, raw=PLANNER_END_MARKER), i + len(PLANNER_END_MARKER)

        for marker, kind in ((PLANNER_HEADER_MARKER, RecordKind.HEADER),
                             (PLANNER_MODULE_MARKER, RecordKind.MODULE)):
            if rest.startswith(marker):
                return self._bracketed(buffer, i, marker, kind)

        if not final and any(m.startswith(rest) for m in self._MARKERS):
            return None  # partial marker, e.g. "H"

        match = self._MARKER_RE.search(buffer, i + 1)
        if match is None:
            return None
        junk = buffer[i:match.start()]
        return RawRecord.invalid("Text outside of a planner record", junk), match.start()

    def _bracketed(self, buffer: str, i: int, marker: str, kind: str) -> RecordResult:
        j = _skip_whitespace(buffer, i + len(marker))
        if j >= len(buffer):
            return None
        if buffer[j] != "{":
            match = self._MARKER_RE.search(buffer, j)
            if match is None:
                return None
            raw = buffer[i:match.start()]
            return RawRecord.invalid(f"Expected '{{' after {marker}", raw), match.start()

        end = find_json_end(buffer, j)
        if end == -1:
            return None
        raw = buffer[i:end + 1]
        data, error = _decode_object(buffer[j:end + 1])
        if error:
            return RawRecord.invalid(error, raw), end + 1
        return RawRecord(kind=kind, payload=data, raw=raw), end + 1


class MarkerFragmentFraming(Framing):
    """
    SH# CS:{css} N:{parentId}:{html} ... EH#

    Records end at a newline. A marker directly after '>' or '}' also starts
    a new record so single-line output parses, but only once the markup or
    CSS block before it is closed: '<label>CS: 101</label>' is one node.
    """

    protocol = WireProtocol.MARKER
    _INLINE_BOUNDARY_RE = re.compile(r'(?<=[>}])(?=N:[^\s:<>"{}]+:|CS:|EH#)')

    def next_record(self, buffer: str, final: bool = False) -> RecordResult:
        i = _skip_whitespace(buffer)
        if i >= len(buffer):
            return None
        rest = buffer[i:]

        if rest.startswith(S_HTML_START):
            return RawRecord(kind=RecordKind.STREAM_START, raw=S_HTML_START), i + len(S_HTML_START)
        if rest.startswith(S_HTML_END):
            return RawRecord(kind=RecordKind.STREAM_END, raw=S_HTML_END), i + len(S_HTML_END)

        end = self._record_end(buffer, i)
        if end == -1:
            if not final:
                return None
            end = len(buffer)

        line = buffer[i:end].strip()
        return self._classify(line), end

    def _record_end(self, buffer: str, start: int) -> int:
        newline = buffer.find("\n", start)
        limit = newline if newline != -1 else len(buffer)
        for match in self._INLINE_BOUNDARY_RE.finditer(buffer, start + 1, limit):
            # Markers inside element text or an open CSS block are content
            if is_balanced_record(buffer[start:match.start()]):
                return match.start()
        return newline

    @staticmethod
    def _classify(line: str) -> RawRecord:
        if line == S_HTML_START:
            return RawRecord(kind=RecordKind.STREAM_START, raw=line)
        if line == S_HTML_END:
            return RawRecord(kind=RecordKind.STREAM_END, raw=line)
        if line.startswith(S_NODE_START):
            content = line[len(S_NODE_START):]
            parent_id, sep, html = content.partition(":")
            if not sep:
                return RawRecord.invalid("Node record without parent separator", line)
            return RawRecord(
                kind=RecordKind.HTML,
                payload={"parentId": parent_id.strip(), "html": html},
                raw=line,
            )
        if line.startswith(S_CSS_START):
            return RawRecord(kind=RecordKind.CSS, payload={"cssText": line[len(S_CSS_START):].strip()}, raw=line)
        return RawRecord(kind=RecordKind.TEXT, payload={"text": line}, raw=line)


class JsonLinesFraming(Framing):
    """
    One JSON object per line, discriminated by "type".

    There are no start/end sentinels; the stream ends when the transport
    closes, at which point an unterminated last line is accepted.
    """

    protocol = WireProtocol.JSONL
    _TYPE_TO_KIND = {
        PLAN_HEADER_TYPE: RecordKind.HEADER,
        PLAN_MODULE_TYPE: RecordKind.MODULE,
        HTML_NODE_TYPE: RecordKind.HTML,
        CSS_RULE_TYPE: RecordKind.CSS,
    }

    def next_record(self, buffer: str, final: bool = False) -> RecordResult:
        i = _skip_whitespace(buffer)
        if i >= len(buffer):
            return None

        newline = buffer.find("\n", i)
        if newline == -1:
            if not final:
                return None
            end = consumed = len(buffer)
        else:
            end, consumed = newline, newline + 1

        line = buffer[i:end].strip()
        data, error = _decode_object(line)
        if error:
            return RawRecord.invalid(error, line), consumed

        record_type = data.get(RECORD_TYPE_FIELD)
        kind = self._TYPE_TO_KIND.get(record_type)
        if kind is None:
            return RawRecord.invalid(f"Unknown record type: {record_type!r}", line), consumed
        return RawRecord(kind=kind, payload=data, raw=line), consumed


def detect_protocol(text: str) -> Optional[WireProtocol]:
    """Guess the framing from the first non-whitespace character, None if there is none yet"""
    stripped = text.lstrip()
    if not stripped:
        return None
    return WireProtocol.JSONL if stripped[0] == "{" else WireProtocol.MARKER
