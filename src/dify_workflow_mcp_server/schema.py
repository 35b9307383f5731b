"""Conversion of Dify parameter metadata into MCP tool input schemas.

Dify reports workflow inputs in one of two shapes:

- ``user_input_form``: a list of single-entry components such as
  ``{"number": {"variable": "age", "label": "Age", "required": true}}``
  where the key is the UI component kind.
- ``parameters`` (legacy): either a list of
  ``{"name": ..., "type": ..., "description": ..., "required": ...}`` entries
  or a mapping from parameter name to such a descriptor.

Both are parsed into a tagged variant (``ParameterSchema``) and then
normalized into a flat ``NormalizedSchema`` of JSON Schema properties.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Literal, Mapping, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

JsonType = Literal["string", "number", "boolean", "array"]

COMPONENT_TYPES: Dict[str, JsonType] = {
    "select": "string",
    "radio": "string",
    "checkbox": "array",
    "number": "number",
    "slider": "number",
    "switch": "boolean",
}


class FormSchema(BaseModel):
    kind: Literal["form"] = "form"
    components: List[Any] = Field(default_factory=list)


class LegacyListSchema(BaseModel):
    kind: Literal["legacy_list"] = "legacy_list"
    parameters: List[Any] = Field(default_factory=list)


class LegacyMappingSchema(BaseModel):
    kind: Literal["legacy_mapping"] = "legacy_mapping"
    parameters: Dict[str, Any] = Field(default_factory=dict)


class MissingSchema(BaseModel):
    kind: Literal["missing"] = "missing"


ParameterSchema = Union[FormSchema, LegacyListSchema, LegacyMappingSchema, MissingSchema]


class PropertySchema(BaseModel):
    type: str = "string"
    description: str = ""


class NormalizedSchema(BaseModel):
    """Flat property/required view of a workflow's inputs."""

    properties: Dict[str, PropertySchema] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)

    def add(self, name: str, prop: PropertySchema, required: bool) -> None:
        # Later declarations of the same name replace earlier ones
        self.properties[name] = prop
        if required and name not in self.required:
            self.required.append(name)
        elif not required and name in self.required:
            self.required.remove(name)

    def to_input_schema(self) -> Dict[str, Any]:
        """Wrap as a JSON Schema object suitable for an MCP tool."""
        return {
            "type": "object",
            "properties": {
                name: prop.model_dump() for name, prop in self.properties.items()
            },
            "required": list(self.required),
        }


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def parse_parameter_schema(raw: Mapping[str, Any]) -> ParameterSchema:
    """Classify a /parameters response into one of the schema variants."""
    form = raw.get("user_input_form")
    if isinstance(form, list):
        return FormSchema(components=form)

    parameters = raw.get("parameters")
    if isinstance(parameters, list):
        return LegacyListSchema(parameters=parameters)
    if isinstance(parameters, dict):
        return LegacyMappingSchema(parameters=parameters)

    return MissingSchema()


def normalize(schema: ParameterSchema) -> NormalizedSchema:
    """Normalize any parameter schema variant."""
    match schema:
        case FormSchema():
            return _normalize_form(schema)
        case LegacyListSchema():
            return _normalize_legacy_list(schema)
        case LegacyMappingSchema():
            return _normalize_legacy_list(legacy_mapping_to_list(schema))
        case MissingSchema():
            logger.warning(
                "No parameter definition found. Neither user_input_form nor "
                "parameters exists."
            )
            return NormalizedSchema()
        case _:
            raise TypeError(f"Unsupported parameter schema: {type(schema).__name__}")


def _normalize_form(schema: FormSchema) -> NormalizedSchema:
    result = NormalizedSchema()
    for index, component in enumerate(schema.components):
        if not isinstance(component, dict):
            logger.warning(
                f"user_input_form[{index}] is not a component mapping: {_dump(component)}"
            )
            continue

        for component_type, field in component.items():
            if not isinstance(field, dict) or not field.get("variable"):
                logger.warning(
                    f"user_input_form[{index}] has no variable name: {_dump(component)}"
                )
                continue

            name = str(field["variable"])
            result.add(
                name,
                PropertySchema(
                    type=COMPONENT_TYPES.get(component_type, "string"),
                    description=str(field.get("label") or name),
                ),
                bool(field.get("required")),
            )
    return result


def legacy_mapping_to_list(schema: LegacyMappingSchema) -> LegacyListSchema:
    """Convert the ``{name: descriptor}`` legacy form into the list form."""
    logger.warning("parameters is not an array, converting mapping to a list")
    entries: List[Dict[str, Any]] = []
    for key, value in schema.parameters.items():
        if not isinstance(value, dict):
            entries.append(
                {"name": key, "type": "string", "description": "", "required": False}
            )
            continue
        entries.append(
            {
                "name": key,
                "type": value.get("type") or "string",
                "description": value.get("description") or "",
                "required": bool(value.get("required")),
            }
        )
    return LegacyListSchema(parameters=entries)


def _normalize_legacy_list(schema: LegacyListSchema) -> NormalizedSchema:
    result = NormalizedSchema()
    for index, param in enumerate(schema.parameters):
        if not isinstance(param, dict) or not param.get("name"):
            logger.warning(f"parameters[{index}] has no name: {_dump(param)}")
            continue

        name = str(param["name"])
        result.add(
            name,
            PropertySchema(
                type=str(param.get("type") or "string"),
                description=str(param.get("description") or ""),
            ),
            bool(param.get("required")),
        )
    return result
