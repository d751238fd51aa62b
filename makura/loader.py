import json
import logging
import os
from typing import Any, Dict, List

import yaml
from pydantic import ValidationError

from makura.exceptions import ConfigurationError
from makura.integrations.pydantic import RouteConfigModel
from makura.models import MappingConfig

logger = logging.getLogger(__name__)

MAPPING_EXTENSIONS = (".yaml", ".yml", ".json")


class MappingLoader:
    """
    Loads route configurations from ``<base_path>/<routeId>.yaml`` (``.yml``
    and ``.json`` are accepted too) and validates them into immutable
    :class:`MappingConfig` objects.

    Nothing is cached: every call reads the file again, so a route can be
    changed on disk and picked up on its next translation.
    """

    def __init__(self, base_path: str = "./mappings"):
        self.base_path = base_path

    def candidates(self, route_id: str) -> List[str]:
        return [os.path.join(self.base_path, f"{route_id}{ext}") for ext in MAPPING_EXTENSIONS]

    def find(self, route_id: str) -> str:
        """
        Returns the path of the first existing mapping file for ``route_id``.

        Raises:
            ConfigurationError: If no mapping file exists.
        """
        if not route_id or os.sep in route_id or (os.altsep and os.altsep in route_id):
            raise ConfigurationError(f"Invalid routeId: {route_id!r}", route_id=route_id)

        paths = self.candidates(route_id)
        for path in paths:
            if os.path.isfile(path):
                return path
        raise ConfigurationError(
            f"Mapping file not found for routeId {route_id}. Searched at: {', '.join(paths)}",
            route_id=route_id,
        )

    def read_document(self, route_id: str) -> Dict[str, Any]:
        """Reads the raw persisted document for ``route_id``."""
        path = self.find(route_id)
        try:
            with open(path, "r", encoding="utf-8") as f:
                if path.endswith(".json"):
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Failed to read mapping file {path}: {e}", route_id=route_id
            ) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Mapping file {path} must contain an object, got {type(data).__name__}",
                route_id=route_id,
            )
        return data

    def load(self, route_id: str) -> MappingConfig:
        """
        Loads and validates the configuration of ``route_id``. The returned
        config always carries the requested ``route_id``.

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid.
        """
        data = self.read_document(route_id)
        try:
            model = RouteConfigModel.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid mapping configuration for routeId {route_id}: {e}", route_id=route_id
            ) from e

        if model.route_id and model.route_id != route_id:
            logger.debug(
                "Mapping file declares routeId '%s', loading it as '%s'", model.route_id, route_id
            )

        config = model.to_mapping_config(route_id=route_id)
        logger.info(
            "Loaded mapping for route '%s' (%d request, %d response mappings)",
            route_id,
            len(config.request),
            len(config.response),
        )
        return config
