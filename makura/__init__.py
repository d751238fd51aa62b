"""
Makura: declarative translation of financial messages between JSON, SOAP
and proprietary XML formats and a canonical target XML document, driven by
per-route field mappings.
"""

from .document import Document
from .engine import MappingEngine
from .exceptions import (
    ConfigurationError,
    EncryptionError,
    ForwardingError,
    MakuraError,
    MappingError,
    ParseError,
    TranslationError,
)
from .exporter import Exporter
from .loader import MappingLoader
from .models import (
    FieldMapping,
    MappingConfig,
    MessageFormat,
    NamespaceConfig,
    SourceMessage,
    TargetMessage,
    TranslationOptions,
    TranslationResult,
)
from .parser import InputParser
from .paths import PathResolver
from .transforms import TransformationEngine
from .translator import Translator, TranslatorBuilder

__all__ = [
    "Document",
    "InputParser",
    "PathResolver",
    "TransformationEngine",
    "MappingEngine",
    "MappingLoader",
    "Exporter",
    "Translator",
    "TranslatorBuilder",
    "FieldMapping",
    "MappingConfig",
    "MessageFormat",
    "NamespaceConfig",
    "SourceMessage",
    "TargetMessage",
    "TranslationOptions",
    "TranslationResult",
    "MakuraError",
    "ParseError",
    "MappingError",
    "ConfigurationError",
    "EncryptionError",
    "ForwardingError",
    "TranslationError",
]
