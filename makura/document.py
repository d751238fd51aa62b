from typing import Any, Dict, Optional, Union

from lxml import etree

from makura.exceptions import ParseError
from makura.models import NamespaceConfig


def xml_parser(encoding: Optional[str] = None) -> etree.XMLParser:
    """
    Builds a fresh hardened parser. lxml parser instances must not be used by
    two threads at once, so every parse gets its own.

    A given ``encoding`` overrides whatever the document declares.
    """
    return etree.XMLParser(encoding=encoding, resolve_entities=False, no_network=True)


def local_name(element: etree._Element) -> str:
    return etree.QName(element).localname


def namespace_of(element: etree._Element) -> Optional[str]:
    return etree.QName(element).namespace


def direct_text(element: etree._Element) -> str:
    """Text content of ``element`` itself, excluding descendant elements."""
    parts = [element.text or ""]
    parts.extend(child.tail or "" for child in element)
    return "".join(parts)


def find_child(parent: etree._Element, name: str) -> Optional[etree._Element]:
    """
    Returns the first element child of ``parent`` whose local name matches
    ``name``. A ``prefix:name`` segment additionally requires the prefix.
    """
    prefix, _, wanted = name.rpartition(":")
    for child in parent.iterchildren(tag=etree.Element):
        if local_name(child) != wanted:
            continue
        if prefix and child.prefix != prefix:
            continue
        return child
    return None


def append_child(parent: etree._Element, name: str) -> etree._Element:
    """
    Appends a new last child called ``name``. The child inherits the
    parent's namespace unless the name carries its own in-scope prefix.
    """
    prefix, _, local = name.rpartition(":")
    if prefix:
        uri = parent.nsmap.get(prefix)
        if uri is None:
            raise ValueError(f"Undeclared namespace prefix '{prefix}' in '{name}'")
    else:
        uri = namespace_of(parent)

    tag = f"{{{uri}}}{local}" if uri else local
    return etree.SubElement(parent, tag)


class Document:
    """
    In-memory XML document used both as parsed input and as the target of a
    translation. Thin wrapper around an lxml element tree with exactly one
    root element, created once and never replaced.
    """

    def __init__(self, root: etree._Element):
        self.root = root

    @classmethod
    def create(cls, root_name: str, namespace: Optional[NamespaceConfig] = None) -> "Document":
        """
        Creates an empty document with a single root element.

        When ``namespace.uri`` is set the root is namespace-qualified with
        ``namespace.prefix`` (empty prefix means default namespace) and a
        differing ``root_element_prefix`` is declared alongside it.
        """
        if namespace is None or not namespace.uri:
            return cls(etree.Element(root_name))

        nsmap: Dict[Optional[str], str] = {namespace.prefix or None: namespace.uri}
        extra_prefix = namespace.root_element_prefix
        if extra_prefix and extra_prefix != (namespace.prefix or ""):
            nsmap[extra_prefix] = namespace.uri

        root = etree.Element(f"{{{namespace.uri}}}{root_name}", nsmap=nsmap)
        return cls(root)

    @classmethod
    def from_xml(cls, content: Union[str, bytes]) -> "Document":
        """
        Parses XML text into a Document.

        Raises:
            ParseError: If the content is empty or not well-formed.
        """
        if content is None:
            raise ParseError("Failed to parse XML: no content")

        if isinstance(content, str):
            # Text is already decoded; its encoding declaration no longer applies.
            data, parser = content.encode("utf-8"), xml_parser("utf-8")
        else:
            data, parser = content, xml_parser()
        try:
            root = etree.fromstring(data.strip(), parser=parser)
        except (etree.XMLSyntaxError, ValueError) as e:
            raise ParseError(f"Failed to parse XML: {e}") from e

        if root is None:
            raise ParseError("Failed to parse XML: no root element")
        return cls(root)

    @property
    def root_name(self) -> str:
        return local_name(self.root)

    def to_xml(self) -> str:
        """Compact UTF-8 serialization with the XML declaration."""
        return etree.tostring(self.root, xml_declaration=True, encoding="UTF-8").decode("utf-8")

    def __repr__(self) -> str:
        return f"Document(root={self.root.tag!r})"


# Parsed inbound content: an XML Document, or the decoded JSON object.
ParsedInput = Union[Document, Dict[str, Any]]
