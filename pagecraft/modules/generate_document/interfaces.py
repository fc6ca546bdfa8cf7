"""
Types shared by the document generation pipeline.

Wire records (what the model writes) are pydantic models so that missing or
empty fields surface as validation errors. Everything the pipeline creates
for itself (tasks, fragments, flow results) is a plain dataclass.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from pagecraft.core.exceptions import RecordValidationError


APP_ROOT_ID = "app-root"


class FragmentType(str, Enum):
    HEADER = "header"
    MODULE = "module"
    HTML = "html"
    CSS = "css"


# ============================================
# Wire records
# ============================================

class ParsedHeader(BaseModel):
    """Page-level plan: application name, visual theme and root container style"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    app_name: str = Field(..., min_length=1, validation_alias=AliasChoices("app_name", "Name", "name"))
    overall_theme: str = Field(..., min_length=1, validation_alias=AliasChoices("overall_theme", "Theme", "theme"))
    layout: str = Field(..., min_length=1, validation_alias=AliasChoices("layout", "Layout"))


class ParsedModule(BaseModel):
    """One planned layout module; parent_id is assigned by the task decomposer"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    name: str = Field(..., min_length=1, validation_alias=AliasChoices("name", "Name"))
    layout: str = Field(..., min_length=1, validation_alias=AliasChoices("layout", "Layout"))
    description: str = Field(..., min_length=1, validation_alias=AliasChoices("description", "Description"))
    parent_id: Optional[str] = Field(None, validation_alias=AliasChoices("parent_id", "parentId"))

    def to_worker_input(self) -> Dict[str, Any]:
        """Shape the worker prompt documents as its input"""
        return {
            "name": self.name,
            "layout": self.layout,
            "description": self.description,
            "parentId": self.parent_id,
        }


class HtmlNodeRecord(BaseModel):
    """{"type":"htmlNode","parentId":...,"html":...}"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    parent_id: Optional[str] = Field(None, validation_alias=AliasChoices("parent_id", "parentId"))
    html: str


class CssRuleRecord(BaseModel):
    """{"type":"cssRule","cssText":...}"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    css_text: str = Field(..., validation_alias=AliasChoices("css_text", "cssText"))


# ============================================
# Tasks
# ============================================

@dataclass
class TaskContext:
    page_goal: str
    design_system_info: str


@dataclass
class FragmentTask:
    """Generation work for one module, bound to its container id"""
    module: ParsedModule
    context: TaskContext
    fragment_type: FragmentType = FragmentType.HTML

    @property
    def id(self) -> str:
        return self.module.parent_id or ""


# ============================================
# Emitted fragments
# ============================================

@dataclass
class HeaderFragment:
    content: str
    type: FragmentType = field(default=FragmentType.HEADER, init=False)


@dataclass
class ModuleFragment:
    id: str
    content: str
    type: FragmentType = field(default=FragmentType.MODULE, init=False)


@dataclass
class HtmlFragment:
    parent_id: Optional[str]
    content: str
    type: FragmentType = field(default=FragmentType.HTML, init=False)


@dataclass
class CssFragment:
    content: str
    type: FragmentType = field(default=FragmentType.CSS, init=False)


Fragment = Union[HeaderFragment, ModuleFragment, HtmlFragment, CssFragment]


def fragment_to_dict(fragment: Fragment) -> Dict[str, Any]:
    """JSON-friendly form used by the SSE stream"""
    data: Dict[str, Any] = {"type": fragment.type.value, "content": fragment.content}
    if isinstance(fragment, ModuleFragment):
        data["id"] = fragment.id
    elif isinstance(fragment, HtmlFragment):
        data["parentId"] = fragment.parent_id
    return data


# ============================================
# Parser sinks
# ============================================

class PlannerSink(ABC):
    """Receives planner events in emission order"""

    @abstractmethod
    def on_header(self, header: ParsedHeader) -> None:
        ...

    @abstractmethod
    def on_module(self, module: ParsedModule) -> None:
        ...

    @abstractmethod
    def on_plan_end(self) -> None:
        ...

    def on_record_error(self, error: RecordValidationError) -> None:
        """Called once per dropped record; parsing continues afterwards"""


class FragmentSink(ABC):
    """Receives fragment events of one module stream in emission order"""

    @abstractmethod
    def on_html_node(self, parent_id: Optional[str], html: str) -> None:
        ...

    @abstractmethod
    def on_css_rule(self, css_text: str) -> None:
        ...

    @abstractmethod
    def on_stream_end(self) -> None:
        ...

    def on_record_error(self, error: RecordValidationError) -> None:
        """Called once per dropped record; parsing continues afterwards"""


# ============================================
# Flow results
# ============================================

class FlowStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class ModuleFlowResult:
    module_id: str
    name: str
    status: FlowStatus = FlowStatus.RUNNING
    fragment_count: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module_id": self.module_id,
            "name": self.name,
            "status": self.status.value,
            "fragment_count": self.fragment_count,
            "error": self.error,
        }


@dataclass
class FlowSummary:
    header: Optional[ParsedHeader] = None
    modules: List[ModuleFlowResult] = field(default_factory=list)
    fragment_count: int = 0
    record_errors: int = 0

    @property
    def failed_modules(self) -> List[ModuleFlowResult]:
        return [m for m in self.modules if m.status != FlowStatus.COMPLETED]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "header": self.header.model_dump() if self.header else None,
            "modules": [m.to_dict() for m in self.modules],
            "fragment_count": self.fragment_count,
            "record_errors": self.record_errors,
        }
