"""Schema-driven form state and widget dispatch.

``FormRenderer`` owns one form document for the duration of a session.  It
decides which widget each schema field gets, applies field edits to the
document, reports completion progress and gates submission on validation.
Drawing the widgets is left to the page (see ``intake_page.py``), which
walks ``widgets()`` and feeds edits back through ``handle_field_change``.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from formflow import field_path
from formflow.autosave import AutoSaveHandle, SaveStatus
from formflow.field_path import FieldPath, NestedPath, RootPath
from formflow.schema import (
    ArrayField,
    BooleanField,
    FieldSchema,
    FormSchema,
    NumberField,
    ObjectField,
    StringField,
)
from formflow.validation import ValidationError, ValidationResult, is_empty, validate

logger = logging.getLogger(__name__)

_STRING_FORMAT_WIDGETS = {"email": "email", "date": "date", "uri": "url"}


@dataclass
class FieldWidget:
    """Everything a page needs to draw one field."""

    path: FieldPath
    widget: str          # select | text | textarea | email | date | url | number | checkbox | array | object
    label: str
    required: bool = False
    description: str = ""
    placeholder: str = ""
    options: list[Any] = field(default_factory=list)
    minimum: float | None = None
    maximum: float | None = None
    step: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    min_items: int | None = None
    max_items: int | None = None
    item_schema: FieldSchema | None = None
    rows: int = 3
    children: list[FieldWidget] = field(default_factory=list)

    @property
    def key(self) -> str:
        return str(self.path)


class FormRenderer:
    def __init__(
        self,
        schema: FormSchema,
        ui_schema: dict | None = None,
        form_data: dict | None = None,
        *,
        on_change: Callable[[dict], None] | None = None,
        on_submit: Callable[[dict], None] | None = None,
        on_error: Callable[[list[ValidationError]], None] | None = None,
        autosave: AutoSaveHandle | None = None,
    ) -> None:
        self.schema = schema
        self.ui_schema = ui_schema or {}
        self.document: dict = copy.deepcopy(form_data) if form_data else {}
        self.on_change = on_change
        self.on_submit = on_submit
        self.on_error = on_error
        self.autosave = autosave

    # -- Ordering & dispatch -------------------------------------------------

    def field_order(self) -> list[str]:
        order = self.ui_schema.get("ui:order")
        if order:
            return [name for name in order if name in self.schema.properties]
        return list(self.schema.properties.keys())

    def widgets(self) -> list[FieldWidget]:
        return [
            self._widget_for(RootPath(name), self.schema.properties[name],
                             self.schema.is_required(name))
            for name in self.field_order()
        ]

    def _widget_for(self, path: FieldPath, fs: FieldSchema, required: bool) -> FieldWidget:
        name = path.child if isinstance(path, NestedPath) else path.name
        ui = self.ui_schema.get(name, {}) if isinstance(path, RootPath) else {}
        base = {
            "path": path,
            "label": fs.label(name),
            "required": required,
            "description": fs.description,
            "placeholder": fs.placeholder,
        }

        if fs.enum is not None and not isinstance(fs, (ArrayField, ObjectField)):
            return FieldWidget(widget="select", options=list(fs.enum), **base)

        if isinstance(fs, StringField):
            widget = _STRING_FORMAT_WIDGETS.get(fs.format or "", "text")
            if widget == "text" and ui.get("ui:widget") == "textarea":
                widget = "textarea"
            return FieldWidget(
                widget=widget,
                min_length=fs.min_length,
                max_length=fs.max_length,
                rows=ui.get("ui:rows", 3),
                **base,
            )
        if isinstance(fs, NumberField):
            step = fs.step if fs.step is not None else (1 if fs.integer else 0.01)
            return FieldWidget(
                widget="number",
                minimum=fs.minimum,
                maximum=fs.maximum,
                step=step,
                **base,
            )
        if isinstance(fs, BooleanField):
            return FieldWidget(widget="checkbox", **base)
        if isinstance(fs, ArrayField):
            return FieldWidget(
                widget="array",
                item_schema=fs.items,
                min_items=fs.min_items,
                max_items=fs.max_items,
                **base,
            )
        if isinstance(fs, ObjectField):
            if isinstance(path, NestedPath):
                logger.warning("Ignoring object nested deeper than one level: %s", path)
                return FieldWidget(widget="object", **base)
            children = [
                self._widget_for(NestedPath(path.name, child), child_fs,
                                 child in fs.required)
                for child, child_fs in fs.properties.items()
            ]
            return FieldWidget(widget="object", children=children, **base)
        raise TypeError(f"Unhandled field schema: {type(fs).__name__}")

    # -- Document access -----------------------------------------------------

    def get_field_value(self, path: str | FieldPath) -> Any:
        value = field_path.parse(path).get(self.document)
        return "" if value is None else value

    def handle_field_change(self, path: str | FieldPath, value: Any) -> None:
        parsed = field_path.parse(path)
        if parsed.get(self.document) == value and _has(self.document, parsed):
            return
        parsed.set(self.document, value)
        if self.on_change is not None:
            self.on_change(self.document)
        if self.autosave is not None:
            self.autosave.update(self.document)

    # -- Validation, progress, submit ----------------------------------------

    def validate(self) -> ValidationResult:
        return validate(self.document, self.schema)

    def errors_for(self, path: str | FieldPath) -> list[str]:
        return self.validate().errors_for(str(field_path.parse(path)))

    def progress(self) -> int:
        """Percentage of required top-level fields that have a value."""
        required = self.schema.required
        if not required:
            return 100
        filled = sum(1 for name in required if not is_empty(self.document.get(name)))
        return round(filled * 100 / len(required))

    def submit(self) -> bool:
        """Validate and hand the document to ``on_submit`` if it is valid.

        Returns True when the submit callback was invoked.
        """
        result = self.validate()
        if not result.is_valid:
            if self.on_error is not None:
                self.on_error(result.errors)
            return False
        if self.on_submit is not None:
            self.on_submit(self.document)
        return True

    @property
    def save_status(self) -> SaveStatus | None:
        return self.autosave.status if self.autosave is not None else None


def _has(document: dict, path: FieldPath) -> bool:
    if isinstance(path, RootPath):
        return path.name in document
    container = document.get(path.parent)
    return isinstance(container, dict) and path.child in container
