"""Schema validation for form documents.

``validate`` checks a document against a ``FormSchema`` and returns every
violation found.  It never mutates the document and performs no I/O, so
the renderer can call it on each change and the submission service can call
it again before accepting data.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from urllib.parse import urlparse

from formflow.schema import (
    ArrayField,
    BooleanField,
    FieldSchema,
    FormSchema,
    NumberField,
    ObjectField,
    StringField,
)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class ValidationError:
    """A single field-scoped violation."""

    path: str
    message: str

    def to_dict(self) -> dict:
        return {"path": self.path, "message": self.message}


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[ValidationError] = field(default_factory=list)

    def errors_for(self, path: str) -> list[str]:
        return [e.message for e in self.errors if e.path == path]


def is_empty(value: Any) -> bool:
    """True for values the required check treats as missing."""
    return value is None or value == ""


def validate(data: dict | None, schema: FormSchema) -> ValidationResult:
    """Validate *data* against *schema*, accumulating all errors."""
    data = data or {}
    errors: list[ValidationError] = []

    for name in schema.required:
        if is_empty(data.get(name)):
            errors.append(ValidationError(name, f"{name} is required"))

    for name, field_schema in schema.properties.items():
        value = data.get(name)
        if is_empty(value):
            continue
        _check_value(value, field_schema, name, errors)

    return ValidationResult(is_valid=not errors, errors=errors)


# ---------------------------------------------------------------------------
# Per-kind checks
# ---------------------------------------------------------------------------

def _check_value(value: Any, fs: FieldSchema, path: str, errors: list) -> None:
    if isinstance(fs, StringField):
        _check_string(value, fs, path, errors)
    elif isinstance(fs, NumberField):
        _check_number(value, fs, path, errors)
    elif isinstance(fs, BooleanField):
        if not isinstance(value, bool):
            errors.append(ValidationError(path, f"{path} must be true or false"))
    elif isinstance(fs, ArrayField):
        _check_array(value, fs, path, errors)
    elif isinstance(fs, ObjectField):
        _check_object(value, fs, path, errors)
    else:
        raise TypeError(f"Unhandled field schema: {type(fs).__name__}")

    if fs.enum is not None and value not in fs.enum:
        allowed = ", ".join(str(v) for v in fs.enum)
        errors.append(ValidationError(path, f"{path} must be one of: {allowed}"))


def _check_string(value: Any, fs: StringField, path: str, errors: list) -> None:
    if not isinstance(value, str):
        errors.append(ValidationError(path, f"{path} must be a string"))
        return

    if fs.min_length is not None and len(value) < fs.min_length:
        errors.append(ValidationError(
            path, f"{path} must be at least {fs.min_length} characters"
        ))
    if fs.max_length is not None and len(value) > fs.max_length:
        errors.append(ValidationError(
            path, f"{path} must be no more than {fs.max_length} characters"
        ))
    if fs.pattern and not re.search(fs.pattern, value):
        errors.append(ValidationError(
            path, fs.pattern_message or f"{path} format is invalid"
        ))

    if fs.format == "email" and not _EMAIL_RE.match(value):
        errors.append(ValidationError(path, "Please enter a valid email address"))
    elif fs.format == "uri" and not _is_url(value):
        errors.append(ValidationError(path, "Please enter a valid URL"))
    elif fs.format == "date" and not _is_iso_date(value):
        errors.append(ValidationError(path, f"{path} must be a date (YYYY-MM-DD)"))


def _check_number(value: Any, fs: NumberField, path: str, errors: list) -> None:
    number = _to_number(value)
    if number is None or (fs.integer and not number.is_integer()):
        errors.append(ValidationError(path, f"{path} must be a valid {fs.type_name}"))
        return

    if fs.minimum is not None and number < fs.minimum:
        errors.append(ValidationError(path, f"{path} must be at least {fs.minimum}"))
    if fs.maximum is not None and number > fs.maximum:
        errors.append(ValidationError(path, f"{path} must be no more than {fs.maximum}"))


def _check_array(value: Any, fs: ArrayField, path: str, errors: list) -> None:
    if not isinstance(value, list):
        errors.append(ValidationError(path, f"{path} must be an array"))
        return

    if fs.min_items is not None and len(value) < fs.min_items:
        errors.append(ValidationError(
            path, f"{path} must have at least {fs.min_items} items"
        ))
    if fs.max_items is not None and len(value) > fs.max_items:
        errors.append(ValidationError(
            path, f"{path} must have no more than {fs.max_items} items"
        ))

    if fs.items is not None:
        for i, item in enumerate(value):
            if not is_empty(item):
                _check_value(item, fs.items, f"{path}[{i}]", errors)


def _check_object(value: Any, fs: ObjectField, path: str, errors: list) -> None:
    if not isinstance(value, dict):
        errors.append(ValidationError(path, f"{path} must be a valid object"))
        return

    for name in fs.required:
        if is_empty(value.get(name)):
            errors.append(ValidationError(f"{path}.{name}", f"{path}.{name} is required"))

    for name, child in fs.properties.items():
        child_value = value.get(name)
        if not is_empty(child_value):
            _check_value(child_value, child, f"{path}.{name}", errors)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _to_number(value: Any) -> float | None:
    """Parse *value* as a finite-or-infinite float; None when not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme and parsed.netloc)


def _is_iso_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True
