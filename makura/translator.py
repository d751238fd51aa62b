import logging
from dataclasses import replace
from typing import Optional

from makura.config import Settings, get_settings
from makura.encryption import EncryptionService
from makura.engine import MappingEngine
from makura.exceptions import MakuraError, TranslationError
from makura.forwarding import DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT, HttpForwardingClient
from makura.loader import MappingLoader
from makura.models import (
    EncryptionType,
    MappingConfig,
    MessageFormat,
    SourceMessage,
    TargetMessage,
    TranslationOptions,
    TranslationResult,
)

logger = logging.getLogger(__name__)


class Translator:
    """
    Translates messages between a route's source format and the target XML
    format, loading the route's mappings on every call.

    Encryption and forwarding are optional collaborators; asking for either
    without it being configured fails the translation.
    """

    def __init__(
        self,
        loader: MappingLoader,
        engine: Optional[MappingEngine] = None,
        encryption: Optional[EncryptionService] = None,
        forwarding: Optional[HttpForwardingClient] = None,
    ):
        self.loader = loader
        self.engine = engine or MappingEngine()
        self.encryption = encryption
        self.forwarding = forwarding

    @staticmethod
    def builder() -> "TranslatorBuilder":
        return TranslatorBuilder()

    def load_config(self, route_id: str) -> MappingConfig:
        try:
            return self.loader.load(route_id)
        except MakuraError as e:
            raise TranslationError(
                f"Failed to load mappings for route '{route_id}': {e}", route_id=route_id
            ) from e

    def translate_request(self, source: SourceMessage, route_id: str) -> TargetMessage:
        """
        Translates a source message into the route's target XML.

        Raises:
            TranslationError: If the route cannot be loaded or the message
                cannot be translated.
        """
        config = self.load_config(route_id)
        if source.format:
            config = self._with_inbound_format(config, source.format, route_id)

        try:
            xml = self.engine.transform_to_target(source.content, config)
        except MakuraError as e:
            raise TranslationError(
                f"Failed to translate request for route '{route_id}': {e}", route_id=route_id
            ) from e
        return TargetMessage(content=xml)

    def translate_response(self, target: TargetMessage, route_id: str) -> SourceMessage:
        """
        Translates a target XML reply back into the route's inbound format
        (JSON when the route declares none).

        Raises:
            TranslationError: If the route cannot be loaded or the reply
                cannot be translated.
        """
        config = self.load_config(route_id)
        reply_format = config.inbound_format or MessageFormat.JSON
        try:
            content = self.engine.transform_from_target(target.content, config, reply_format)
        except MakuraError as e:
            raise TranslationError(
                f"Failed to translate response for route '{route_id}': {e}", route_id=route_id
            ) from e
        return SourceMessage(content=content, format=reply_format.value)

    def translate_with_options(
        self, source: SourceMessage, options: TranslationOptions
    ) -> TranslationResult:
        """
        Translates ``source`` then, as requested by ``options``, encrypts the
        result and forwards it downstream.

        The forwarding endpoint and API key default to the route's
        ``endpoint`` and ``auth.key``.

        Raises:
            TranslationError: If any step fails or a requested collaborator
                is not configured.
        """
        route_id = options.route_id
        target = self.translate_request(source, route_id)
        message = target.content

        if options.encrypt:
            message = self._encrypt(message, options)

        if not options.forward:
            return TranslationResult.without_forwarding(message)

        if self.forwarding is None:
            raise TranslationError(
                f"Forwarding requested for route '{route_id}' but no forwarding client is configured",
                route_id=route_id,
            )

        endpoint = options.endpoint
        api_key = options.forwarding_api_key
        if not endpoint or not api_key:
            config = self.load_config(route_id)
            endpoint = endpoint or config.endpoint
            if not api_key and config.auth is not None:
                api_key = config.auth.key
        if not endpoint:
            raise TranslationError(
                f"Forwarding requested for route '{route_id}' but no endpoint is known",
                route_id=route_id,
            )

        try:
            response = self.forwarding.forward(endpoint, message, api_key)
        except MakuraError as e:
            raise TranslationError(
                f"Failed to forward message for route '{route_id}': {e}", route_id=route_id
            ) from e
        return TranslationResult.with_forwarding(message, response)

    def _encrypt(self, message: str, options: TranslationOptions) -> str:
        route_id = options.route_id
        if self.encryption is None:
            raise TranslationError(
                f"Encryption requested for route '{route_id}' but no encryption service is configured",
                route_id=route_id,
            )
        if options.encryption_type is EncryptionType.AES:
            encrypt = self.encryption.encrypt_aes
        elif options.encryption_type is EncryptionType.PGP:
            encrypt = self.encryption.encrypt_pgp
        else:
            raise TranslationError(
                f"Unsupported encryption type: {options.encryption_type}", route_id=route_id
            )

        try:
            return encrypt(message, options.encryption_key_ref)
        except MakuraError as e:
            raise TranslationError(
                f"Failed to encrypt message for route '{route_id}': {e}", route_id=route_id
            ) from e

    @staticmethod
    def _with_inbound_format(config: MappingConfig, fmt: str, route_id: str) -> MappingConfig:
        # A format carried by the message wins over the route's declared one.
        try:
            message_format = MessageFormat.parse(fmt)
        except MakuraError as e:
            raise TranslationError(str(e), route_id=route_id) from e
        if message_format is config.inbound_format:
            return config
        logger.debug(
            "Route '%s': message declares %s, overriding %s",
            route_id,
            message_format.value,
            config.inbound_format.value,
        )
        return replace(config, inbound_format=message_format)


class TranslatorBuilder:
    """
    Fluent construction of a :class:`Translator`::

        translator = (
            TranslatorBuilder()
            .with_mappings_path("./mappings")
            .with_encryption("./keys")
            .with_forwarding()
            .build()
        )
    """

    def __init__(self):
        self.mappings_path = "./mappings"
        self.encryption_enabled = False
        self.keys_path: Optional[str] = None
        self.forwarding_enabled = False
        self.connect_timeout = DEFAULT_CONNECT_TIMEOUT
        self.read_timeout = DEFAULT_READ_TIMEOUT
        self.engine: Optional[MappingEngine] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "TranslatorBuilder":
        """Seeds a builder from environment settings; encryption is enabled when a keys path is set."""
        settings = settings or get_settings()
        builder = cls().with_mappings_path(settings.mappings_path)
        builder = builder.with_timeouts(settings.connect_timeout, settings.read_timeout)
        if settings.keys_path:
            builder = builder.with_encryption(settings.keys_path)
        return builder

    def with_mappings_path(self, path: str) -> "TranslatorBuilder":
        self.mappings_path = path
        return self

    def with_encryption(self, keys_path: Optional[str] = None) -> "TranslatorBuilder":
        self.encryption_enabled = True
        if keys_path is not None:
            self.keys_path = keys_path
        return self

    def with_forwarding(self) -> "TranslatorBuilder":
        self.forwarding_enabled = True
        return self

    def with_timeouts(self, connect: float, read: float) -> "TranslatorBuilder":
        self.connect_timeout = connect
        self.read_timeout = read
        return self

    def with_engine(self, engine: MappingEngine) -> "TranslatorBuilder":
        self.engine = engine
        return self

    def build(self) -> Translator:
        """
        Raises:
            ValueError: If encryption is enabled without a keys path.
        """
        encryption = None
        if self.encryption_enabled:
            if not self.keys_path:
                raise ValueError("Encryption is enabled but no keys path was given")
            encryption = EncryptionService(self.keys_path)

        forwarding = None
        if self.forwarding_enabled:
            forwarding = HttpForwardingClient(self.connect_timeout, self.read_timeout)

        return Translator(
            loader=MappingLoader(self.mappings_path),
            engine=self.engine,
            encryption=encryption,
            forwarding=forwarding,
        )
