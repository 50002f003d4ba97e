"""Persistent records for templates, form instances and responses.

Dataclasses serialised to JSON through ``to_dict`` / ``from_dict``.  Times
are stored as ISO 8601 strings in UTC.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum


class InstanceStatus(str, Enum):
    SENT = "SENT"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"


@dataclass
class FormTemplate:
    """A reusable intake form authored by a consultant."""

    id: str
    name: str
    schema: dict
    ui_schema: dict = field(default_factory=dict)
    description: str = ""
    category: str = ""
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> FormTemplate:
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class FormInstance:
    """One copy of a template sent to one client via a secure link."""

    id: str
    template_id: str
    client_email: str
    secure_token: str
    expires_at: str
    client_name: str = ""
    personal_message: str = ""
    status: InstanceStatus = InstanceStatus.SENT
    created_at: str = ""
    opened_at: str | None = None
    submitted_at: str | None = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["status"] = self.status.value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> FormInstance:
        filtered = {k: v for k, v in d.items() if k in cls.__dataclass_fields__}
        filtered["status"] = InstanceStatus(filtered.get("status", "SENT"))
        return cls(**filtered)


@dataclass
class FormResponse:
    """Draft and submitted data for an instance (one-to-one)."""

    instance_id: str
    draft_data: dict = field(default_factory=dict)
    last_saved_at: str | None = None
    submitted_data: dict | None = None
    submitted_at: str | None = None
    submission_id: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> FormResponse:
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class AuditEntry:
    """A single audit trail entry."""

    timestamp: str
    action: str                # INSTANCE_CREATED | FORM_OPENED | DRAFT_SAVED | DRAFT_CLEARED | FORM_SUBMITTED | TEMPLATE_SAVED
    actor_type: str = "SYSTEM"  # CLIENT | STAFF | SYSTEM
    entity_id: str = ""
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> AuditEntry:
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})
