import json
import logging
import re
from typing import Any, Dict, Iterable, Optional, Union

from makura.document import Document, ParsedInput
from makura.exceptions import MappingError, ParseError
from makura.models import FieldMapping, MappingConfig, MessageFormat
from makura.parser import DEFAULT_PARSER, InputParser
from makura.paths import CONSTANT_PREFIX, SOURCE_PREFIX, PathResolver, stringify
from makura.transforms import TransformationEngine

logger = logging.getLogger(__name__)

DEFAULT_ROOT_ELEMENT = "Document"
DEFAULT_REPLY_ROOT_ELEMENT = "Response"


def prefix_root_element(xml: str, root_name: str, prefix: str, uri: str) -> str:
    """
    Rewrites the serialized root so it carries ``prefix``: the default
    namespace declaration for ``uri`` becomes ``xmlns:prefix`` and both the
    opening and closing root tags are renamed to ``prefix:root_name``.
    """
    opening = re.search(rf"<(?:[\w.\-]+:)?{re.escape(root_name)}(?=[\s/>])([^>]*)>", xml)
    if opening is None:
        return xml

    attributes = opening.group(1)
    default_decl = f' xmlns="{uri}"'
    prefixed_decl = f' xmlns:{prefix}="{uri}"'
    if default_decl in attributes:
        replacement = "" if prefixed_decl in attributes else prefixed_decl
        attributes = attributes.replace(default_decl, replacement, 1)
    elif prefixed_decl not in attributes:
        attributes = prefixed_decl + attributes

    xml = f"{xml[:opening.start()]}<{prefix}:{root_name}{attributes}>{xml[opening.end():]}"
    return re.sub(
        rf"</(?:[\w.\-]+:)?{re.escape(root_name)}>(\s*)\Z",
        rf"</{prefix}:{root_name}>\1",
        xml,
        count=1,
    )


class MappingEngine:
    """
    Applies a route's declarative field mappings to translate messages into
    the target XML document and back again.

    A single engine carries no per-call state and may serve concurrent
    translations for any number of routes.
    """

    def __init__(
        self,
        parser: Optional[InputParser] = None,
        transformer: Optional[TransformationEngine] = None,
    ):
        self.parser = parser or DEFAULT_PARSER
        self.transformer = transformer or TransformationEngine()

    def transform_to_target(self, inbound_content: str, config: MappingConfig) -> str:
        """
        Translates an inbound message into the route's target XML.

        Mappings in ``config.request`` are applied in order; a mapping that
        fails is skipped and the rest still run.

        Raises:
            MappingError: If the inbound content cannot be parsed or the target
                document cannot be built or serialized.
        """
        try:
            parsed = self.parser.parse(inbound_content, config.inbound_format)
        except ParseError as e:
            raise MappingError(
                f"Failed to parse inbound content for route '{config.route_id}': {e}",
                route_id=config.route_id,
            ) from e

        try:
            document = Document.create(
                config.root_element_name or DEFAULT_ROOT_ELEMENT, config.namespace
            )
            for mapping in config.request:
                self._apply_request_mapping(parsed, document, mapping, config.route_id)
            return self._serialize_target(document, config)
        except Exception as e:
            raise MappingError(
                f"Failed to transform to target format for route '{config.route_id}': {e}",
                route_id=config.route_id,
            ) from e

    def transform_from_target(
        self,
        target_content: str,
        config: MappingConfig,
        reply_format: Union[str, MessageFormat, None],
    ) -> str:
        """
        Translates a target XML message back into the reply format using
        ``config.response``. A ``JSON`` reply yields a JSON object string,
        anything else an XML document whose root is named after the first
        response mapping's ``source.`` path.

        Raises:
            MappingError: If the target content is not well-formed XML.
        """
        try:
            document = self.parser.parse_xml(target_content)
        except ParseError as e:
            raise MappingError(
                f"Failed to parse target content for route '{config.route_id}': {e}",
                route_id=config.route_id,
            ) from e

        if isinstance(reply_format, MessageFormat):
            reply_format = reply_format.value

        try:
            if (reply_format or "").strip().upper() == MessageFormat.JSON.value:
                return self._reply_as_json(document, config)
            return self._reply_as_xml(document, config)
        except Exception as e:
            raise MappingError(
                f"Failed to transform from target format for route '{config.route_id}': {e}",
                route_id=config.route_id,
            ) from e

    def _apply_request_mapping(
        self, source: ParsedInput, target: Document, mapping: FieldMapping, route_id: str
    ) -> None:
        try:
            value: Any = PathResolver.resolve_from_source(source, mapping.from_path)
            if value is None:
                value = mapping.default_value

            if mapping.has_transform:
                # Transforms run even without a value: now() based ones need none.
                text = stringify(value) if value is not None else None
                value = self.transformer.apply(text, mapping.transform, source)

            if value is not None:
                PathResolver.set_by_path(target, mapping.to_path, value)
        except Exception as e:
            self._skip(route_id, mapping, e)

    def _response_value(self, document: Document, mapping: FieldMapping) -> Optional[str]:
        from_path = mapping.from_path
        if from_path is not None and from_path.startswith(CONSTANT_PREFIX):
            value = from_path[len(CONSTANT_PREFIX):]
        else:
            value = PathResolver.resolve_from_document(document, from_path)

        if value is None:
            value = mapping.default_value
        if value is not None and mapping.has_transform:
            value = self.transformer.apply(value, mapping.transform, document)
        return value

    def _reply_as_json(self, document: Document, config: MappingConfig) -> str:
        if not config.response:
            return "{}"

        reply: Dict[str, Any] = {}
        for mapping in config.response:
            try:
                value = self._response_value(document, mapping)
                if value is not None:
                    self._set_json_value(reply, mapping.to_path, value)
            except Exception as e:
                self._skip(config.route_id, mapping, e)

        try:
            return json.dumps(reply, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError):
            logger.exception("Route '%s': could not serialize JSON reply", config.route_id)
            return "{}"

    def _reply_as_xml(self, document: Document, config: MappingConfig) -> str:
        reply = PathResolver.create_document(self._reply_root_name(config.response))
        for mapping in config.response:
            try:
                value = self._response_value(document, mapping)
                if value is not None:
                    PathResolver.set_by_path(reply, mapping.to_path, value)
            except Exception as e:
                self._skip(config.route_id, mapping, e)
        return reply.to_xml()

    @staticmethod
    def _reply_root_name(mappings: Iterable[FieldMapping]) -> str:
        first = next(iter(mappings), None)
        if first is not None and first.to_path and first.to_path.startswith(SOURCE_PREFIX):
            head = first.to_path[len(SOURCE_PREFIX):].split(".")[0].strip()
            if head:
                return head
        return DEFAULT_REPLY_ROOT_ELEMENT

    @staticmethod
    def _set_json_value(data: Dict[str, Any], path: Optional[str], value: str) -> None:
        if not path:
            raise ValueError("Response mapping has no target path")

        parts = path.split(".")
        current = data
        for part in parts[:-1]:
            child = current.setdefault(part, {})
            if not isinstance(child, dict):
                raise TypeError(f"'{part}' in '{path}' already holds a value")
            current = child
        current[parts[-1]] = value

    @staticmethod
    def _serialize_target(document: Document, config: MappingConfig) -> str:
        xml = document.to_xml()
        namespace = config.namespace
        if namespace is not None and namespace.uri and namespace.root_element_prefix:
            xml = prefix_root_element(
                xml, document.root_name, namespace.root_element_prefix, namespace.uri
            )
        return xml

    @staticmethod
    def _skip(route_id: str, mapping: FieldMapping, error: Exception) -> None:
        # One bad field must not abort the rest of the message.
        logger.warning(
            "Route '%s': skipped mapping %s -> %s: %s",
            route_id,
            mapping.from_path,
            mapping.to_path,
            error,
        )
