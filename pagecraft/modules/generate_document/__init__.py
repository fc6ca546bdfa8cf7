"""
Generate Document Module - streaming page generation

Turns a free-text request into a live document: a planner model streams the
page header and its layout modules, each module is generated concurrently
by a worker model, and every fragment is applied to the document tree as
soon as it is parsed.

Components:
- StreamPlannerParser: header / module / plan end from the planner stream
- create_module_task: binds a module to its container id
- StreamFragmentParser: HTML nodes / CSS rules from a worker stream
- RequestFlowManager: fan-out, join, cancellation and timeouts
- DocumentOperator: applies fragments to a DocumentTree
- GenerateDocumentCapability: the whole pipeline against one document

Usage:
    from pagecraft.modules.generate_document import GenerateDocumentCapability

    capability = GenerateDocumentCapability()
    await capability.request("a simple calculator, dark theme")
    html = capability.document.serialize()
"""

from pagecraft.modules.generate_document.capability import GenerateDocumentCapability
from pagecraft.modules.generate_document.document import DocumentTree, LxmlDocument
from pagecraft.modules.generate_document.document_operator import DocumentOperator
from pagecraft.modules.generate_document.flow_manager import RequestFlowManager
from pagecraft.modules.generate_document.interfaces import (
    APP_ROOT_ID,
    CssFragment,
    FlowStatus,
    FlowSummary,
    Fragment,
    FragmentTask,
    HeaderFragment,
    HtmlFragment,
    ModuleFragment,
    ParsedHeader,
    ParsedModule,
)
from pagecraft.modules.generate_document.parsers import StreamFragmentParser, StreamPlannerParser
from pagecraft.modules.generate_document.task_decomposer import create_module_task

__all__ = [
    "GenerateDocumentCapability",
    "DocumentTree",
    "LxmlDocument",
    "DocumentOperator",
    "RequestFlowManager",
    "APP_ROOT_ID",
    "CssFragment",
    "FlowStatus",
    "FlowSummary",
    "Fragment",
    "FragmentTask",
    "HeaderFragment",
    "HtmlFragment",
    "ModuleFragment",
    "ParsedHeader",
    "ParsedModule",
    "StreamFragmentParser",
    "StreamPlannerParser",
    "create_module_task",
]
