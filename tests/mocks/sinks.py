"""
Recording sinks for parser tests
Every parser event is stored as a tuple in arrival order
"""
from typing import Any, List, Optional, Tuple

from pagecraft.core.exceptions import RecordValidationError
from pagecraft.modules.generate_document.interfaces import (
    FragmentSink,
    ParsedHeader,
    ParsedModule,
    PlannerSink,
)


class RecordingPlannerSink(PlannerSink):

    def __init__(self):
        self.events: List[Tuple[str, Any]] = []
        self.errors: List[RecordValidationError] = []

    def on_header(self, header: ParsedHeader) -> None:
        self.events.append(("header", header))

    def on_module(self, module: ParsedModule) -> None:
        self.events.append(("module", module))

    def on_plan_end(self) -> None:
        self.events.append(("end", None))

    def on_record_error(self, error: RecordValidationError) -> None:
        self.errors.append(error)

    @property
    def kinds(self) -> List[str]:
        return [kind for kind, _ in self.events]

    @property
    def modules(self) -> List[ParsedModule]:
        return [value for kind, value in self.events if kind == "module"]


class RecordingFragmentSink(FragmentSink):

    def __init__(self):
        self.events: List[Tuple[str, Any]] = []
        self.errors: List[RecordValidationError] = []

    def on_html_node(self, parent_id: Optional[str], html: str) -> None:
        self.events.append(("html", (parent_id, html)))

    def on_css_rule(self, css_text: str) -> None:
        self.events.append(("css", css_text))

    def on_stream_end(self) -> None:
        self.events.append(("end", None))

    def on_record_error(self, error: RecordValidationError) -> None:
        self.errors.append(error)

    @property
    def kinds(self) -> List[str]:
        return [kind for kind, _ in self.events]
