"""
Document Operator

Applies fragments to a DocumentTree one at a time, in the order they are
handed over:

- header: #app-root{layout} is appended to the page style sheet
- module: <div id="moduleN"> under the root container plus #moduleN{layout}
- html:   markup appended under its parent; a missing parent is synthesized
          once as <div id=parent> at the end of the body
- css:    rule appended to the single aggregated <style> element

apply() never raises. A fragment that cannot be applied is logged and
skipped so later fragments still land.
"""

from typing import Any, List, Optional, Union

import lxml.html
from lxml import etree

from pagecraft.core.exceptions import DocumentMutationError
from pagecraft.core.logging_config import logger
from pagecraft.modules.generate_document.document import DocumentTree
from pagecraft.modules.generate_document.interfaces import (
    APP_ROOT_ID,
    CssFragment,
    Fragment,
    HeaderFragment,
    HtmlFragment,
    ModuleFragment,
)

BODY_TARGET = "body"


class DocumentOperator:

    def __init__(self, document: DocumentTree, root_id: str = APP_ROOT_ID):
        self.document = document
        self.root_id = root_id
        self.applied = 0
        self.skipped = 0
        self.placeholders: List[str] = []
        self._style_element: Optional[Any] = None

    def apply(self, fragment: Fragment) -> bool:
        """Apply one fragment; False when it was skipped"""
        try:
            if isinstance(fragment, HeaderFragment):
                self._apply_header(fragment)
            elif isinstance(fragment, ModuleFragment):
                self._apply_module(fragment)
            elif isinstance(fragment, HtmlFragment):
                self._append_markup(fragment.parent_id, fragment.content)
            elif isinstance(fragment, CssFragment):
                self._append_css(fragment.content)
            else:
                raise DocumentMutationError(f"Unknown fragment: {fragment!r}")
        except DocumentMutationError as e:
            self.skipped += 1
            logger.error(f"[Document Operator] Skipped fragment: {e.message}", extra={"details": e.details})
            return False
        except Exception as e:
            self.skipped += 1
            logger.log_error_with_context(e, context="document operator")
            return False

        self.applied += 1
        return True

    def _apply_header(self, fragment: HeaderFragment) -> None:
        if not fragment.content:
            raise DocumentMutationError("Header without layout", fragment_type="header")
        self._append_css(f"#{self.root_id}{{{fragment.content}}}")

    def _apply_module(self, fragment: ModuleFragment) -> None:
        if not fragment.id:
            raise DocumentMutationError("Module without id", fragment_type="module")

        container = self.document.create_element("div")
        self.document.set_attribute(container, "id", fragment.id)
        self.document.append_child(self._resolve_parent(self.root_id), container)
        self._append_css(f"#{fragment.id}{{{fragment.content}}}")
        logger.debug(f"[Document Operator] Module container {fragment.id} created")

    def _resolve_parent(self, parent_id: Optional[str]) -> Any:
        if parent_id is None or parent_id == BODY_TARGET:
            body = self.document.body
            if body is None:
                raise DocumentMutationError("Document has no body", fragment_type="html")
            return body

        parent = self.document.get_element_by_id(parent_id)
        if parent is not None:
            return parent

        body = self.document.body
        if body is None:
            raise DocumentMutationError(f"Cannot create placeholder '{parent_id}' without a body", fragment_type="html")
        placeholder = self.document.create_element("div")
        self.document.set_attribute(placeholder, "id", parent_id)
        self.document.append_child(body, placeholder)
        self.placeholders.append(parent_id)
        logger.info(f"[Document Operator] Created placeholder parent #{parent_id}")
        return placeholder

    def _append_markup(self, parent_id: Optional[str], content: str) -> None:
        if not content or not content.strip():
            raise DocumentMutationError("Empty markup", fragment_type="html")
        try:
            nodes = lxml.html.fragments_fromstring(content)
        except (etree.ParserError, etree.XMLSyntaxError, ValueError) as e:
            raise DocumentMutationError(f"Unparseable markup: {e}", fragment_type="html") from e

        parent = self._resolve_parent(parent_id)
        self._replay(nodes, parent)

    def _replay(self, nodes: List[Union[str, etree._Element]], parent: Any) -> None:
        """Re-create parsed nodes through the DocumentTree interface"""
        for node in nodes:
            if isinstance(node, str):
                if node:
                    self.document.append_child(parent, self.document.create_text_node(node))
                continue

            if isinstance(node.tag, str):
                element = self.document.create_element(node.tag)
                for name, value in node.attrib.items():
                    self.document.set_attribute(element, name, value)
                if node.text:
                    self.document.append_child(element, self.document.create_text_node(node.text))
                self._replay(list(node), element)
                self.document.append_child(parent, element)

            # Comments and processing instructions are dropped, their tail text is not
            if node.tail:
                self.document.append_child(parent, self.document.create_text_node(node.tail))

    def _append_css(self, rule: str) -> None:
        if not rule or not rule.strip():
            raise DocumentMutationError("Empty CSS rule", fragment_type="css")
        style = self._ensure_style_element()
        self.document.append_child(style, self.document.create_text_node(rule))

    def _ensure_style_element(self) -> Any:
        if self._style_element is not None:
            return self._style_element

        container = self.document.head
        if container is None:
            container = self.document.body
            if container is None:
                raise DocumentMutationError("Document has neither head nor body", fragment_type="css")
            logger.warning("[Document Operator] No <head>, style sheet goes into <body>")

        style = self.document.create_element("style")
        self.document.append_child(container, style)
        self._style_element = style
        return style
