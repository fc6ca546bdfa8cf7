"""
Document tree capability.

The operator only needs a small set of mutations from the tree it edits;
DocumentTree names them. LxmlDocument is the in-process implementation
used by the service, the CLI and the tests.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import lxml.html

from pagecraft.modules.generate_document.interfaces import APP_ROOT_ID


DEFAULT_TEMPLATE = (
    '<html><head></head>'
    '<body style="display:flex; justify-content:center; align-items:center;">'
    f'<div id="{APP_ROOT_ID}"></div>'
    '</body></html>'
)


class DocumentTree(ABC):
    """Mutations and lookups the document operator relies on"""

    @abstractmethod
    def create_element(self, tag: str) -> Any:
        ...

    @abstractmethod
    def create_text_node(self, text: str) -> Any:
        ...

    @abstractmethod
    def set_attribute(self, node: Any, name: str, value: str) -> None:
        ...

    @abstractmethod
    def append_child(self, parent: Any, child: Any) -> None:
        ...

    @abstractmethod
    def get_element_by_id(self, element_id: str) -> Optional[Any]:
        ...

    @property
    @abstractmethod
    def head(self) -> Optional[Any]:
        ...

    @property
    @abstractmethod
    def body(self) -> Optional[Any]:
        ...

    @abstractmethod
    def serialize(self) -> str:
        ...


class TextNode:
    """Detached text; lxml stores text on .text/.tail instead of nodes"""

    __slots__ = ("text",)

    def __init__(self, text: str):
        self.text = text


class LxmlDocument(DocumentTree):
    """DocumentTree backed by an lxml.html element tree"""

    def __init__(self, template: str = DEFAULT_TEMPLATE):
        self.root = lxml.html.document_fromstring(template)

    def create_element(self, tag: str) -> lxml.html.HtmlElement:
        return lxml.html.Element(tag)

    def create_text_node(self, text: str) -> TextNode:
        return TextNode(text)

    def set_attribute(self, node: lxml.html.HtmlElement, name: str, value: str) -> None:
        node.set(name, value)

    def append_child(self, parent: lxml.html.HtmlElement, child: Any) -> None:
        if isinstance(child, TextNode):
            if len(parent):
                last = parent[-1]
                last.tail = (last.tail or "") + child.text
            else:
                parent.text = (parent.text or "") + child.text
            return
        parent.append(child)

    def get_element_by_id(self, element_id: str) -> Optional[lxml.html.HtmlElement]:
        return self.root.get_element_by_id(element_id, None)

    @property
    def head(self) -> Optional[lxml.html.HtmlElement]:
        return self.root.find("head")

    @property
    def body(self) -> Optional[lxml.html.HtmlElement]:
        return self.root.find("body")

    def serialize(self) -> str:
        return lxml.html.tostring(self.root, encoding="unicode", doctype="<!DOCTYPE html>")
