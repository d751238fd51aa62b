import json
import logging
from typing import Any, Dict, Union

from lxml import etree

from makura.document import Document, ParsedInput, find_child, local_name
from makura.exceptions import ParseError
from makura.models import MessageFormat

logger = logging.getLogger(__name__)

SOAP_ENVELOPE_NAMESPACES = frozenset(
    {
        "http://schemas.xmlsoap.org/soap/envelope/",  # SOAP 1.1
        "http://www.w3.org/2003/05/soap-envelope",  # SOAP 1.2
    }
)


class InputParser:
    """
    Converts raw inbound text into a structure the path resolver can walk:
    a decoded JSON object for ``JSON``, a :class:`Document` for the XML
    family (``XML``, ``PROPRIETARY_XML`` and the unwrapped body of ``SOAP``).

    The parser holds no state, so a single instance may be shared freely
    between threads.
    """

    def parse(self, content: str, fmt: Union[str, MessageFormat]) -> ParsedInput:
        """
        Parses ``content`` according to its declared format.

        Raises:
            ParseError: If the format tag is unknown or the content is not
                well-formed for it.
        """
        message_format = MessageFormat.parse(fmt)

        if message_format is MessageFormat.JSON:
            return self.parse_json(content)
        if message_format is MessageFormat.SOAP:
            return self.parse_soap(content)
        return self.parse_xml(content)

    def parse_json(self, content: str) -> Dict[str, Any]:
        if content is None:
            raise ParseError("Failed to parse JSON: no content")
        try:
            data = json.loads(content)
        except (ValueError, TypeError) as e:
            raise ParseError(f"Failed to parse JSON: {e}") from e

        if not isinstance(data, dict):
            raise ParseError(
                f"Failed to parse JSON: expected an object, got {type(data).__name__}"
            )
        return data

    def parse_xml(self, content: Union[str, bytes]) -> Document:
        return Document.from_xml(content)

    def parse_soap(self, content: Union[str, bytes]) -> Document:
        """
        Unwraps a SOAP envelope and returns its payload (the first element
        child of the Body) as a standalone Document. When the Body carries no
        element the whole envelope is returned instead.
        """
        try:
            envelope = Document.from_xml(content)
        except ParseError as e:
            raise ParseError(f"Failed to parse SOAP: {e}") from e

        root = envelope.root
        if local_name(root) != "Envelope" or etree.QName(root).namespace not in SOAP_ENVELOPE_NAMESPACES:
            raise ParseError(f"Failed to parse SOAP: root element is '{root.tag}', not a SOAP Envelope")

        body = find_child(root, "Body")
        if body is None:
            raise ParseError("Failed to parse SOAP: envelope has no Body")

        payload = next(body.iterchildren(tag=etree.Element), None)
        if payload is None:
            logger.debug("SOAP body has no element payload, using the whole envelope")
            return envelope

        # Serializing the subtree alone carries over every namespace it uses.
        return Document.from_xml(etree.tostring(payload, with_tail=False))


DEFAULT_PARSER = InputParser()
