from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

from makura.exceptions import ParseError


class MessageFormat(str, Enum):
    """
    Wire formats accepted on the inbound side of a route.
    """

    JSON = "JSON"
    SOAP = "SOAP"
    XML = "XML"
    PROPRIETARY_XML = "PROPRIETARY_XML"

    @classmethod
    def parse(cls, value: Union[str, "MessageFormat", None]) -> "MessageFormat":
        """
        Resolves a format tag case-insensitively.

        Raises:
            ParseError: If the tag is empty or not one of the known formats.
        """
        if isinstance(value, MessageFormat):
            return value
        if not value:
            raise ParseError("Missing message format")
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ParseError(f"Unsupported format: {value}") from None


class RouteMode(str, Enum):
    """ACTIVE routes forward the translated message downstream, PASSIVE ones return it."""

    ACTIVE = "ACTIVE"
    PASSIVE = "PASSIVE"


class EncryptionType(str, Enum):
    """AES uses a shared secret key, PGP the recipient's public key."""

    AES = "AES"
    PGP = "PGP"


@dataclass(frozen=True)
class NamespaceConfig:
    """
    Optional namespace applied to the root of a generated target document.

    Attributes:
        uri (str): The namespace URI.
        prefix (str): Prefix bound to ``uri``; empty means default namespace.
        root_element_prefix (Optional[str]):
            Prefix the serialized root tag must carry. When it differs from
            ``prefix`` it is declared as an extra namespace on the root.
    """

    uri: str
    prefix: str = ""
    root_element_prefix: Optional[str] = None


@dataclass(frozen=True)
class AuthConfig:
    type: Optional[str] = None
    key: Optional[str] = None


@dataclass(frozen=True)
class FieldMapping:
    """
    One declarative rule: read ``from_path`` (or a ``constant:`` literal),
    optionally transform the value and write it to ``to_path``.
    """

    from_path: Optional[str]
    to_path: Optional[str]
    transform: Optional[str] = None
    default_value: Optional[str] = None

    @property
    def has_transform(self) -> bool:
        return bool(self.transform and self.transform.strip())


@dataclass(frozen=True)
class MappingConfig:
    """
    Immutable per-route configuration. Built once upstream and shared
    read-only between concurrent translations; replace it wholesale on
    refresh instead of editing it.

    Attributes:
        route_id (str): Route identifier.
        inbound_format (MessageFormat): Format of messages arriving on the route.
        outbound_format (Optional[str]): Declared target format (e.g. ``ISO_XML``).
        mode (RouteMode): Whether the translation is forwarded downstream.
        endpoint (Optional[str]): Downstream URL for ACTIVE routes.
        auth (Optional[AuthConfig]): Downstream credentials reference.
        namespace (Optional[NamespaceConfig]): Namespace for the target root.
        root_element_name (str): Root element of the target document.
        request (Tuple[FieldMapping, ...]): Ordered source -> target rules.
        response (Tuple[FieldMapping, ...]): Ordered target -> source rules.
    """

    route_id: str
    inbound_format: MessageFormat = MessageFormat.JSON
    outbound_format: Optional[str] = None
    mode: RouteMode = RouteMode.PASSIVE
    endpoint: Optional[str] = None
    auth: Optional[AuthConfig] = None
    namespace: Optional[NamespaceConfig] = None
    root_element_name: str = "Document"
    request: Tuple[FieldMapping, ...] = field(default_factory=tuple)
    response: Tuple[FieldMapping, ...] = field(default_factory=tuple)


@dataclass
class SourceMessage:
    """A message in the originating system's format (JSON, SOAP, XML...)."""

    content: str
    format: Optional[str] = None


@dataclass
class TargetMessage:
    """A message in the canonical target format (XML)."""

    content: str


@dataclass
class TranslationOptions:
    """
    Per-request options for ``Translator.translate_with_options``.
    """

    route_id: str
    encrypt: bool = False
    encryption_type: EncryptionType = EncryptionType.AES
    encryption_key_ref: Optional[str] = None
    forward: bool = False
    endpoint: Optional[str] = None
    forwarding_api_key: Optional[str] = None


@dataclass
class TranslationResult:
    """
    Outcome of ``translate_with_options``: the (possibly encrypted) target
    message plus the downstream response body when it was forwarded.
    """

    target_message: str
    forwarding_response: Optional[str] = None
    forwarded: bool = False

    @classmethod
    def without_forwarding(cls, target_message: str) -> "TranslationResult":
        return cls(target_message=target_message)

    @classmethod
    def with_forwarding(cls, target_message: str, response: str) -> "TranslationResult":
        return cls(target_message=target_message, forwarding_response=response, forwarded=True)
