from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from makura.exceptions import ParseError
from makura.models import (
    AuthConfig,
    FieldMapping,
    MappingConfig,
    MessageFormat,
    NamespaceConfig,
    RouteMode,
)


def _scalar_to_str(value: Any) -> Any:
    # YAML happily reads `defaultValue: 0` or `prefix: 1` as numbers.
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


class FieldMappingModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    transform: Optional[str] = None
    default_value: Optional[str] = Field(default=None, alias="defaultValue")

    @field_validator("from_", "to", "transform", "default_value", mode="before")
    @classmethod
    def coerce_scalars(cls, value: Any) -> Any:
        return _scalar_to_str(value)

    def to_field_mapping(self) -> FieldMapping:
        return FieldMapping(
            from_path=self.from_,
            to_path=self.to,
            transform=self.transform,
            default_value=self.default_value,
        )


class NamespaceModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uri: str
    prefix: Optional[str] = ""
    root_element_prefix: Optional[str] = Field(default=None, alias="rootElementPrefix")

    @field_validator("prefix", "root_element_prefix", mode="before")
    @classmethod
    def coerce_scalars(cls, value: Any) -> Any:
        return _scalar_to_str(value)


class AuthModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    key: Optional[str] = None


class MappingsModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    request: List[FieldMappingModel] = Field(default_factory=list)
    response: List[FieldMappingModel] = Field(default_factory=list)


class RouteConfigModel(BaseModel):
    """
    Validated shape of a persisted route configuration document::

        routeId: payments-in
        inboundFormat: JSON
        outboundFormat: ISO_XML
        mode: PASSIVE
        namespace: {uri: ..., prefix: "", rootElementPrefix: ns}
        rootElementName: Document
        mappings:
          request:  [{from: ..., to: ..., transform: ..., defaultValue: ...}]
          response: [...]
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    route_id: Optional[str] = Field(default=None, alias="routeId")
    inbound_format: MessageFormat = Field(default=MessageFormat.JSON, alias="inboundFormat")
    outbound_format: Optional[str] = Field(default=None, alias="outboundFormat")
    mode: RouteMode = RouteMode.PASSIVE
    endpoint: Optional[str] = None
    auth: Optional[AuthModel] = None
    namespace: Optional[NamespaceModel] = None
    root_element_name: Optional[str] = Field(default=None, alias="rootElementName")
    mappings: MappingsModel = Field(default_factory=MappingsModel)

    @field_validator("inbound_format", mode="before")
    @classmethod
    def parse_format(cls, value: Any) -> Any:
        if value is None:
            return MessageFormat.JSON
        try:
            return MessageFormat.parse(value)
        except ParseError as e:
            raise ValueError(str(e)) from e

    @field_validator("mode", mode="before")
    @classmethod
    def parse_mode(cls, value: Any) -> Any:
        if value is None:
            return RouteMode.PASSIVE
        if isinstance(value, str):
            return value.strip().upper()
        return value

    def to_mapping_config(self, route_id: Optional[str] = None) -> MappingConfig:
        """
        Builds the immutable engine configuration. ``route_id`` overrides
        whatever id the document declares.
        """
        namespace = None
        if self.namespace is not None:
            namespace = NamespaceConfig(
                uri=self.namespace.uri,
                prefix=self.namespace.prefix or "",
                root_element_prefix=self.namespace.root_element_prefix,
            )

        auth = None
        if self.auth is not None:
            auth = AuthConfig(type=self.auth.type, key=self.auth.key)

        return MappingConfig(
            route_id=route_id or self.route_id or "",
            inbound_format=self.inbound_format,
            outbound_format=self.outbound_format,
            mode=self.mode,
            endpoint=self.endpoint,
            auth=auth,
            namespace=namespace,
            root_element_name=self.root_element_name or "Document",
            request=tuple(m.to_field_mapping() for m in self.mappings.request),
            response=tuple(m.to_field_mapping() for m in self.mappings.response),
        )

    def to_document(self) -> Dict[str, Any]:
        """The persisted (camelCase) representation of this configuration."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


def from_mapping_config(config: MappingConfig) -> RouteConfigModel:
    """
    Converts an engine MappingConfig back into its validated document model.
    """

    def _mapping(m: FieldMapping) -> FieldMappingModel:
        return FieldMappingModel(
            from_=m.from_path, to=m.to_path, transform=m.transform, default_value=m.default_value
        )

    namespace = None
    if config.namespace is not None:
        namespace = NamespaceModel(
            uri=config.namespace.uri,
            prefix=config.namespace.prefix,
            root_element_prefix=config.namespace.root_element_prefix,
        )

    auth = None
    if config.auth is not None:
        auth = AuthModel(type=config.auth.type, key=config.auth.key)

    return RouteConfigModel(
        route_id=config.route_id,
        inbound_format=config.inbound_format,
        outbound_format=config.outbound_format,
        mode=config.mode,
        endpoint=config.endpoint,
        auth=auth,
        namespace=namespace,
        root_element_name=config.root_element_name,
        mappings=MappingsModel(
            request=[_mapping(m) for m in config.request],
            response=[_mapping(m) for m in config.response],
        ),
    )
