"""
Namespace-tolerant XML helpers for ISO 20022 payloads.

LHV sends camt/pain documents with or without a default namespace. `parse_xml` resolves the document namespace once;
lookups are written with an `ns:` prefix on every step and the prefix is dropped when the document has no namespace.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import List, Optional, Union

from lxml import etree

from exceptions import ParseError

EXCERPT_LENGTH = 1000
# ISO 20022 Max35Text identifiers
MAX_ID_LENGTH = 35

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True)


def excerpt(payload: Union[str, bytes, None], limit: int = EXCERPT_LENGTH) -> str:
    if payload is None:
        return ""
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    return payload[:limit]


@dataclass(frozen=True)
class XmlDocument:
    root: etree._Element
    namespace: Optional[str]
    has_default_namespace: bool

    @property
    def _namespaces(self) -> dict[str, str]:
        return {"ns": self.namespace} if self.namespace else {}

    def _expr(self, path: str) -> str:
        if not self.namespace:
            return path.replace("ns:", "")
        return path

    def nodes(self, path: str, context: Optional[etree._Element] = None) -> List[etree._Element]:
        base = self.root if context is None else context
        result = base.xpath(self._expr(path), namespaces=self._namespaces)
        return [node for node in result if isinstance(node, etree._Element)]

    def node(self, path: str, context: Optional[etree._Element] = None) -> Optional[etree._Element]:
        found = self.nodes(path, context)
        return found[0] if found else None

    def text(self, path: str, context: Optional[etree._Element] = None, default: str = "") -> str:
        found = self.node(path, context)
        if found is None or found.text is None:
            return default
        return found.text.strip()

    def texts(self, path: str, context: Optional[etree._Element] = None) -> List[str]:
        return [(n.text or "").strip() for n in self.nodes(path, context) if (n.text or "").strip()]

    def attr(self, path: str, name: str, context: Optional[etree._Element] = None, default: str = "") -> str:
        found = self.node(path, context)
        if found is None:
            return default
        return (found.get(name) or default).strip()

    def exists(self, path: str, context: Optional[etree._Element] = None) -> bool:
        return self.node(path, context) is not None


def parse_xml(payload: Union[str, bytes, None]) -> XmlDocument:
    """
    Parse a bank payload.

    Raises:
        ParseError: Empty payload or malformed XML. The error carries a payload excerpt.
    """
    if payload is None or not payload.strip():
        raise ParseError("empty payload", excerpt="")

    raw = payload.encode("utf-8") if isinstance(payload, str) else payload
    try:
        root = etree.fromstring(raw.strip(), parser=_PARSER)
    except etree.XMLSyntaxError as exc:
        raise ParseError(f"Malformed XML: {exc}", excerpt=excerpt(payload)) from exc

    namespace = etree.QName(root).namespace
    return XmlDocument(root=root, namespace=namespace, has_default_namespace=None in (root.nsmap or {}))


# region Building
def new_document(namespace: str, root_tag: str = "Document") -> etree._Element:
    return etree.Element(f"{{{namespace}}}{root_tag}", nsmap={None: namespace})


def sub(parent: etree._Element, tag: str, text: Optional[str] = None, **attrib: str) -> etree._Element:
    """Append a child in the parent's namespace."""
    namespace = etree.QName(parent).namespace
    qualified = f"{{{namespace}}}{tag}" if namespace else tag
    child = etree.SubElement(parent, qualified, attrib=attrib or None)
    if text is not None:
        child.text = str(text)
    return child


def new_message_id(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex.upper()}"[:MAX_ID_LENGTH]


def to_xml_string(root: etree._Element) -> str:
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8").decode("utf-8")
# endregion
