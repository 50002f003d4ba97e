"""Field addresses inside a form document.

Documents support exactly one level of nesting: a field is either a
top-level key or a key of a top-level mapping.  ``FieldPath.parse`` splits
on the first dot only, so ``"a.b.c"`` addresses key ``"b.c"`` inside
``"a"``; deeper nesting is not modelled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class RootPath:
    name: str

    def __str__(self) -> str:
        return self.name

    def get(self, document: dict) -> Any:
        return document.get(self.name)

    def set(self, document: dict, value: Any) -> None:
        document[self.name] = value


@dataclass(frozen=True)
class NestedPath:
    parent: str
    child: str

    def __str__(self) -> str:
        return f"{self.parent}.{self.child}"

    def get(self, document: dict) -> Any:
        container = document.get(self.parent)
        if not isinstance(container, dict):
            return None
        return container.get(self.child)

    def set(self, document: dict, value: Any) -> None:
        container = document.get(self.parent)
        if not isinstance(container, dict):
            container = {}
            document[self.parent] = container
        container[self.child] = value


FieldPath = Union[RootPath, NestedPath]


def parse(path: str | RootPath | NestedPath) -> FieldPath:
    """Turn a dotted string into a path; existing paths pass through."""
    if isinstance(path, (RootPath, NestedPath)):
        return path
    if not path:
        raise ValueError("Field path cannot be empty")
    parent, sep, child = path.partition(".")
    if not sep:
        return RootPath(parent)
    if not parent or not child:
        raise ValueError(f"Invalid field path: {path!r}")
    return NestedPath(parent, child)
