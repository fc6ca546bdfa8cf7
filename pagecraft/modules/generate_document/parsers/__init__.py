from pagecraft.modules.generate_document.parsers.framing import (
    Framing,
    JsonLinesFraming,
    MarkerFragmentFraming,
    MarkerPlannerFraming,
    detect_protocol,
)
from pagecraft.modules.generate_document.parsers.planner_parser import PlannerState, StreamPlannerParser
from pagecraft.modules.generate_document.parsers.fragment_parser import FragmentState, StreamFragmentParser

__all__ = [
    "Framing",
    "JsonLinesFraming",
    "MarkerFragmentFraming",
    "MarkerPlannerFraming",
    "detect_protocol",
    "PlannerState",
    "StreamPlannerParser",
    "FragmentState",
    "StreamFragmentParser",
]
