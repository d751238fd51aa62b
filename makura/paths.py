import json
from typing import Any, List, Optional

from lxml import etree

from makura.document import Document, ParsedInput, append_child, direct_text, find_child, local_name

SOURCE_PREFIX = "source."
TARGET_PREFIX = "target:"
CONSTANT_PREFIX = "constant:"


def stringify(value: Any) -> str:
    """
    String form of a resolved value as it is written into a document.
    JSON booleans keep their JSON spelling, nested objects and arrays are
    written as compact JSON.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def _segments(path: str, separator: str) -> List[str]:
    return [part.strip() for part in path.split(separator) if part.strip()]


def _skip_root(root: etree._Element, parts: List[str]) -> List[str]:
    # The root is implicit: a leading segment naming it is dropped, unless the
    # root really has a child of that name.
    if len(parts) > 1 and parts[0] == local_name(root) and find_child(root, parts[0]) is None:
        return parts[1:]
    return parts


def _walk(root: etree._Element, parts: List[str]) -> Optional[etree._Element]:
    current = root
    for part in parts:
        current = find_child(current, part)
        if current is None:
            return None
    return current


class PathResolver:
    """
    Reads values out of parsed input and writes values into target documents
    using path expressions.

    Notation:
        ``source.A.B`` / ``A.B``      dot path into a JSON object, or into a
                                      Document relative to its root
        ``target:A/B`` / ``A/B``      slash path under a Document root
        ``constant:LITERAL``          the literal itself
    """

    @staticmethod
    def resolve_from_source(source: Optional[ParsedInput], path: Optional[str]) -> Any:
        """
        Resolves a dot path (optionally ``source.``-prefixed) against a JSON
        object or a Document. ``constant:`` paths return their literal
        without looking at ``source``.

        Returns:
            The raw value (JSON scalar/object/array, or element text), or
            None when any step of the path is missing.
        """
        if path is None:
            return None
        if path.startswith(CONSTANT_PREFIX):
            return path[len(CONSTANT_PREFIX):]
        prefixed = path.startswith(SOURCE_PREFIX)
        if prefixed:
            path = path[len(SOURCE_PREFIX):]
        if source is None:
            return None

        if isinstance(source, Document):
            return PathResolver._resolve_in_document(source, _segments(path, "."))

        parts = path.split(".")
        # A message wrapped in a top-level "source" object reads the same as an unwrapped one.
        wrapped = source.get("source") if isinstance(source, dict) else None
        if prefixed and isinstance(wrapped, dict) and parts[0] not in source:
            source = wrapped
        return PathResolver._walk_json(source, parts)

    @staticmethod
    def _walk_json(source: Any, parts: List[str]) -> Any:
        current: Any = source
        for part in parts:
            if isinstance(current, dict):
                current = current.get(part)
            elif isinstance(current, list):
                if not (part.isascii() and part.isdigit()):
                    return None
                index = int(part)
                if index >= len(current):
                    return None
                current = current[index]
            else:
                return None

            if current is None:
                return None

        return current

    @staticmethod
    def resolve_from_document(document: Optional[Document], path: Optional[str]) -> Optional[str]:
        """
        Resolves a ``target:``-style path against a Document and returns the
        trimmed text of the addressed element. Slash notation is expected;
        a path without slashes but with dots is read as dot notation.
        """
        if path is None or document is None:
            return None
        if path.startswith(TARGET_PREFIX):
            path = path[len(TARGET_PREFIX):]

        if "/" not in path and "." in path:
            parts = _segments(path, ".")
        else:
            parts = _segments(path, "/")
        return PathResolver._resolve_in_document(document, parts)

    @staticmethod
    def _resolve_in_document(document: Document, parts: List[str]) -> Optional[str]:
        if not parts:
            return None
        element = _walk(document.root, _skip_root(document.root, parts))
        if element is None:
            return None
        return direct_text(element).strip()

    @staticmethod
    def set_by_path(document: Document, path: Optional[str], value: Any) -> None:
        """
        Writes ``value`` at ``path``, creating every missing element along
        the way as the last child of its parent. New elements inherit the
        namespace of their parent. Writing twice to the same address
        overwrites the text. No-op when ``path`` or ``value`` is None.

        ``source.Root.A.B`` is accepted as well and lands at ``A/B``.
        """
        if path is None or value is None:
            return
        if path.startswith(TARGET_PREFIX):
            path = path[len(TARGET_PREFIX):]

        if path.startswith(SOURCE_PREFIX):
            parts = _segments(path[len(SOURCE_PREFIX):], ".")
        else:
            parts = _segments(path, "/")

        parts = _skip_root(document.root, parts)
        if not parts:
            return

        current = document.root
        for part in parts:
            child = find_child(current, part)
            if child is None:
                child = append_child(current, part)
            current = child

        for child in current:
            child.tail = None
        current.text = stringify(value)

    @staticmethod
    def create_document(root_name: str) -> Document:
        return Document.create(root_name)
