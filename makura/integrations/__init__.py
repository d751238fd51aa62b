"""
Integrations with third-party libraries like Pydantic.
"""

from .pydantic import FieldMappingModel, NamespaceModel, RouteConfigModel, from_mapping_config

__all__ = ["RouteConfigModel", "FieldMappingModel", "NamespaceModel", "from_mapping_config"]
