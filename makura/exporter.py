import json
from typing import Any, Dict

import yaml

from makura.integrations.pydantic import RouteConfigModel, from_mapping_config
from makura.models import MappingConfig


class Exporter:
    """
    Renders route configurations back into their persisted form, and
    describes that form as a JSON Schema.
    """

    @staticmethod
    def _mapping_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
        # Blank transform/defaultValue carry no meaning and are left out.
        return {
            key: value
            for key, value in entry.items()
            if not (key in ("transform", "defaultValue") and (value is None or value == ""))
        }

    @staticmethod
    def to_document(config: MappingConfig) -> Dict[str, Any]:
        """
        Converts a MappingConfig into the persisted (camelCase) document.
        ``mappings.request`` and ``mappings.response`` are always present.
        """
        document = from_mapping_config(config).to_document()
        mappings = document.get("mappings", {})
        document["mappings"] = {
            "request": [Exporter._mapping_entry(m) for m in mappings.get("request", [])],
            "response": [Exporter._mapping_entry(m) for m in mappings.get("response", [])],
        }
        return document

    @staticmethod
    def to_yaml(config: MappingConfig) -> str:
        return yaml.safe_dump(
            Exporter.to_document(config),
            default_flow_style=False,
            indent=2,
            sort_keys=False,
            allow_unicode=True,
        )

    @staticmethod
    def to_json(config: MappingConfig, indent: int = 2) -> str:
        return json.dumps(Exporter.to_document(config), indent=indent, ensure_ascii=False)

    @staticmethod
    def json_schema() -> Dict[str, Any]:
        """
        JSON Schema of a persisted route configuration document.
        """
        return RouteConfigModel.model_json_schema(by_alias=True)

    @staticmethod
    def export_yaml(config: MappingConfig, path: str):
        """
        Saves the route configuration to a YAML file.
        """
        with open(path, "w", encoding="utf-8") as f:
            f.write(Exporter.to_yaml(config))

    @staticmethod
    def export_json(config: MappingConfig, path: str):
        """
        Saves the route configuration to a JSON file.
        """
        with open(path, "w", encoding="utf-8") as f:
            f.write(Exporter.to_json(config))
