"""Form schema types.

A form template carries a JSON-schema-like definition.  It is parsed into
one dataclass per field kind so the validator and renderer can dispatch on
the variant instead of comparing ``type`` strings.  Every variant knows how
to turn itself back into the camelCase wire form.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from formflow.errors import SchemaError


@dataclass
class BaseField:
    """Attributes shared by every field kind."""

    title: str = ""
    description: str = ""
    placeholder: str = ""
    enum: list[Any] | None = None

    def label(self, name: str) -> str:
        return self.title or name

    def _base_dict(self, type_name: str) -> dict:
        d: dict = {"type": type_name}
        if self.title:
            d["title"] = self.title
        if self.description:
            d["description"] = self.description
        if self.placeholder:
            d["placeholder"] = self.placeholder
        if self.enum is not None:
            d["enum"] = list(self.enum)
        return d


@dataclass
class StringField(BaseField):
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    pattern_message: str | None = None
    format: str | None = None  # email | uri | date

    def to_dict(self) -> dict:
        d = self._base_dict("string")
        _put(d, "minLength", self.min_length)
        _put(d, "maxLength", self.max_length)
        _put(d, "pattern", self.pattern)
        _put(d, "patternMessage", self.pattern_message)
        _put(d, "format", self.format)
        return d


@dataclass
class NumberField(BaseField):
    integer: bool = False
    minimum: float | None = None
    maximum: float | None = None
    step: float | None = None

    @property
    def type_name(self) -> str:
        return "integer" if self.integer else "number"

    def to_dict(self) -> dict:
        d = self._base_dict(self.type_name)
        _put(d, "minimum", self.minimum)
        _put(d, "maximum", self.maximum)
        _put(d, "step", self.step)
        return d


@dataclass
class BooleanField(BaseField):
    def to_dict(self) -> dict:
        return self._base_dict("boolean")


@dataclass
class ArrayField(BaseField):
    items: FieldSchema | None = None
    min_items: int | None = None
    max_items: int | None = None

    def to_dict(self) -> dict:
        d = self._base_dict("array")
        if self.items is not None:
            d["items"] = self.items.to_dict()
        _put(d, "minItems", self.min_items)
        _put(d, "maxItems", self.max_items)
        return d


@dataclass
class ObjectField(BaseField):
    properties: dict[str, FieldSchema] = field(default_factory=dict)
    required: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        d = self._base_dict("object")
        d["properties"] = {k: v.to_dict() for k, v in self.properties.items()}
        if self.required:
            d["required"] = list(self.required)
        return d


FieldSchema = Union[StringField, NumberField, BooleanField, ArrayField, ObjectField]


@dataclass
class FormSchema:
    """Top-level form definition."""

    properties: dict[str, FieldSchema] = field(default_factory=dict)
    required: list[str] = field(default_factory=list)
    title: str = ""
    description: str = ""

    def is_required(self, name: str) -> bool:
        return name in self.required

    def to_dict(self) -> dict:
        d: dict = {
            "type": "object",
            "properties": {k: v.to_dict() for k, v in self.properties.items()},
            "required": list(self.required),
        }
        if self.title:
            d["title"] = self.title
        if self.description:
            d["description"] = self.description
        return d

    @classmethod
    def from_dict(cls, d: dict) -> FormSchema:
        if not isinstance(d, dict):
            raise SchemaError("Schema must be an object")
        properties = _parse_properties(d.get("properties", {}), "")
        required = _parse_required(d.get("required"), properties, "")
        return cls(
            properties=properties,
            required=required,
            title=d.get("title", "") or "",
            description=d.get("description", "") or "",
        )


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _put(d: dict, key: str, value: Any) -> None:
    if value is not None:
        d[key] = value


def _common(d: dict) -> dict:
    enum = d.get("enum")
    if enum is not None and not isinstance(enum, list):
        raise SchemaError("enum must be a list")
    return {
        "title": d.get("title", "") or "",
        "description": d.get("description", "") or "",
        "placeholder": d.get("placeholder", "") or "",
        "enum": enum,
    }


def _parse_properties(raw: Any, prefix: str) -> dict[str, FieldSchema]:
    if not isinstance(raw, dict):
        raise SchemaError(f"{prefix or 'schema'}: properties must be an object")
    return {
        name: parse_field(definition, f"{prefix}{name}")
        for name, definition in raw.items()
    }


def _parse_required(raw: Any, properties: dict, prefix: str) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise SchemaError(f"{prefix or 'schema'}: required must be a list")
    unknown = [name for name in raw if name not in properties]
    if unknown:
        raise SchemaError(
            f"{prefix or 'schema'}: required fields missing from properties: "
            + ", ".join(str(n) for n in unknown)
        )
    return list(raw)


def parse_field(d: Any, name: str = "") -> FieldSchema:
    """Build the field variant described by a wire-format dict."""
    if not isinstance(d, dict):
        raise SchemaError(f"{name}: field definition must be an object")

    type_name = d.get("type")
    common = _common(d)

    if type_name == "string":
        return StringField(
            min_length=d.get("minLength"),
            max_length=d.get("maxLength"),
            pattern=d.get("pattern"),
            pattern_message=d.get("patternMessage"),
            format=d.get("format"),
            **common,
        )
    if type_name in ("number", "integer"):
        return NumberField(
            integer=type_name == "integer",
            minimum=d.get("minimum"),
            maximum=d.get("maximum"),
            step=d.get("step"),
            **common,
        )
    if type_name == "boolean":
        return BooleanField(**common)
    if type_name == "array":
        items = d.get("items")
        return ArrayField(
            items=parse_field(items, f"{name}[]") if items is not None else None,
            min_items=d.get("minItems"),
            max_items=d.get("maxItems"),
            **common,
        )
    if type_name == "object":
        properties = _parse_properties(d.get("properties", {}), f"{name}.")
        return ObjectField(
            properties=properties,
            required=_parse_required(d.get("required"), properties, name),
            **common,
        )
    raise SchemaError(f"{name}: unsupported field type {type_name!r}")
