"""JSON-file persistence for templates, form instances and responses.

Layout under ``DATA_DIR``::

    templates/<template_id>.json
    instances/<instance_id>.json
    responses/<instance_id>.json

Unreadable or malformed files are skipped rather than failing whole listings.

Part of the FormFlow intake suite.
"""

from __future__ import annotations

import hmac
import json
import logging
import uuid
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

from formflow import tokens
from formflow.config import get_settings
from formflow.errors import TemplateNotFoundError
from formflow.models import FormInstance, FormResponse, FormTemplate, InstanceStatus
from formflow.schema import FormSchema

logger = logging.getLogger(__name__)

DATA_DIR = get_settings().data_dir


def _dir(kind: str) -> Path:
    path = DATA_DIR / kind
    path.mkdir(parents=True, exist_ok=True)
    return path


def _read(path: Path) -> dict | None:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Skipping unreadable record %s: %s", path, exc)
        return None


def _load(cls, path: Path):
    """Read *path* into a *cls* record, or None when missing or malformed."""
    d = _read(path)
    if not d:
        return None
    try:
        return cls.from_dict(d)
    except (TypeError, ValueError, KeyError, AttributeError) as exc:
        logger.warning("Skipping malformed record %s: %s", path, exc)
        return None


def _write(path: Path, data: dict) -> None:
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False))


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    """Generate a short unique record ID."""
    return uuid.uuid4().hex[:12]


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def save_template(template: FormTemplate) -> FormTemplate:
    """Validate the template's schema and write it.

    Raises:
        SchemaError: if the schema definition is malformed.
    """
    FormSchema.from_dict(template.schema)
    now = now_iso()
    if not template.created_at:
        template.created_at = now
    template.updated_at = now
    _write(_dir("templates") / f"{template.id}.json", template.to_dict())
    return template


def create_template(
    name: str,
    schema: dict,
    ui_schema: dict | None = None,
    description: str = "",
    category: str = "",
) -> FormTemplate:
    template = FormTemplate(
        id=new_id(),
        name=name,
        schema=schema,
        ui_schema=ui_schema or {},
        description=description,
        category=category,
    )
    return save_template(template)


def load_template(template_id: str) -> FormTemplate | None:
    return _load(FormTemplate, _dir("templates") / f"{template_id}.json")


def list_templates(active_only: bool = False) -> list[FormTemplate]:
    """All templates, most recently updated first."""
    templates = []
    for p in _dir("templates").glob("*.json"):
        t = _load(FormTemplate, p)
        if t is None:
            continue
        if active_only and not t.is_active:
            continue
        templates.append(t)
    templates.sort(key=lambda t: t.updated_at, reverse=True)
    return templates


# ---------------------------------------------------------------------------
# Instances
# ---------------------------------------------------------------------------

def save_instance(instance: FormInstance) -> FormInstance:
    _write(_dir("instances") / f"{instance.id}.json", instance.to_dict())
    return instance


def create_instance(
    template_id: str,
    client_email: str,
    client_name: str = "",
    expiry_days: float | None = None,
    personal_message: str = "",
) -> FormInstance:
    """Create a new tokenized form instance for a client.

    Raises:
        TemplateNotFoundError: if the template is missing or inactive.
    """
    template = load_template(template_id)
    if template is None or not template.is_active:
        raise TemplateNotFoundError()

    settings = get_settings()
    if expiry_days is None:
        expiry_days = settings.default_expiry_days
    expires_at = tokens.calculate_expiry(expiry_days, settings.max_expiry_days)

    instance = FormInstance(
        id=new_id(),
        template_id=template_id,
        client_email=client_email,
        client_name=client_name,
        personal_message=personal_message,
        secure_token=tokens.generate_form_token(),
        expires_at=expires_at.isoformat(),
        created_at=now_iso(),
    )
    return save_instance(instance)


def load_instance(instance_id: str) -> FormInstance | None:
    return _load(FormInstance, _dir("instances") / f"{instance_id}.json")


def list_instances() -> list[FormInstance]:
    """All instances, newest first."""
    instances = []
    for p in _dir("instances").glob("*.json"):
        instance = _load(FormInstance, p)
        if instance is not None:
            instances.append(instance)
    instances.sort(key=lambda i: i.created_at, reverse=True)
    return instances


def find_instance_by_token(token: str) -> FormInstance | None:
    if not token:
        return None
    for instance in list_instances():
        if hmac.compare_digest(str(instance.secure_token).encode(), token.encode()):
            return instance
    return None


def effective_status(instance: FormInstance) -> InstanceStatus:
    """Status with unsubmitted, past-expiry instances reported as EXPIRED."""
    if instance.status is not InstanceStatus.COMPLETED and tokens.is_expired(instance.expires_at):
        return InstanceStatus.EXPIRED
    return instance.status


def instance_counts() -> dict[str, int]:
    """Number of instances per effective status, plus a total."""
    counts = Counter(effective_status(i).value for i in list_instances())
    result = {status.value: counts.get(status.value, 0) for status in InstanceStatus}
    result["TOTAL"] = sum(counts.values())
    return result


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

def load_response(instance_id: str) -> FormResponse | None:
    return _load(FormResponse, _dir("responses") / f"{instance_id}.json")


def save_response(response: FormResponse) -> FormResponse:
    _write(_dir("responses") / f"{response.instance_id}.json", response.to_dict())
    return response
