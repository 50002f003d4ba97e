"""Draft persistence keyed by a form instance's secure token.

Anyone holding the token may read and write the draft; the token itself is
the authorization boundary.  Results carry an HTTP-ready ``status_code`` so
the API layer does not re-interpret error causes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from formflow import audit_log, instance_store, tokens
from formflow.errors import (
    FormAlreadySubmittedError,
    FormExpiredError,
    FormFlowError,
    FormNotFoundError,
)
from formflow.models import FormInstance, FormResponse, InstanceStatus

logger = logging.getLogger(__name__)


@dataclass
class SaveDraftResult:
    success: bool
    last_saved_at: str | None = None
    error: str | None = None
    status_code: int = 200


@dataclass
class GetDraftResult:
    draft_data: dict = field(default_factory=dict)
    last_saved_at: str | None = None
    status: str | None = None
    error: str | None = None
    status_code: int = 200


def resolve_instance(token: str, allow_completed: bool = True) -> FormInstance:
    """Look up an instance by token and apply the expiry/status gates.

    Raises:
        FormNotFoundError: no instance holds this token.
        FormExpiredError: the link is past its expiry.
        FormAlreadySubmittedError: the form was submitted and
            ``allow_completed`` is False.
    """
    instance = instance_store.find_instance_by_token(token)
    if instance is None:
        raise FormNotFoundError()
    if instance.status is InstanceStatus.EXPIRED or tokens.is_expired(instance.expires_at):
        raise FormExpiredError()
    if not allow_completed and instance.status is InstanceStatus.COMPLETED:
        raise FormAlreadySubmittedError()
    return instance


def _write_draft(instance: FormInstance, draft_data: dict) -> str:
    now = instance_store.now_iso()
    response = instance_store.load_response(instance.id) or FormResponse(instance_id=instance.id)
    response.draft_data = draft_data
    response.last_saved_at = now
    instance_store.save_response(response)
    return now


def save_draft(token: str, draft_data: dict[str, Any]) -> SaveDraftResult:
    """Upsert the draft for *token* and move the instance to IN_PROGRESS."""
    try:
        instance = resolve_instance(token, allow_completed=False)
        last_saved_at = _write_draft(instance, draft_data)
        if instance.status is InstanceStatus.SENT:
            instance.status = InstanceStatus.IN_PROGRESS
            instance_store.save_instance(instance)
    except FormFlowError as exc:
        return SaveDraftResult(success=False, error=exc.message, status_code=exc.status_code)
    except OSError:
        logger.exception("Error saving draft")
        return SaveDraftResult(success=False, error="Failed to save draft", status_code=500)

    audit_log.record(
        "DRAFT_SAVED", instance.id, actor_type="CLIENT", field_count=len(draft_data)
    )
    return SaveDraftResult(success=True, last_saved_at=last_saved_at)


def get_draft(token: str) -> GetDraftResult:
    """Return the stored draft; completed forms still report their last draft."""
    try:
        instance = resolve_instance(token, allow_completed=True)
        response = instance_store.load_response(instance.id)
    except FormFlowError as exc:
        return GetDraftResult(error=exc.message, status_code=exc.status_code)
    except OSError:
        logger.exception("Error retrieving draft")
        return GetDraftResult(error="Failed to retrieve draft", status_code=500)

    return GetDraftResult(
        draft_data=(response.draft_data if response else None) or {},
        last_saved_at=response.last_saved_at if response else None,
        status=instance.status.value,
    )


def clear_draft(token: str) -> SaveDraftResult:
    """Reset the draft to an empty document."""
    try:
        instance = resolve_instance(token, allow_completed=False)
        last_saved_at = _write_draft(instance, {})
    except FormFlowError as exc:
        return SaveDraftResult(success=False, error=exc.message, status_code=exc.status_code)
    except OSError:
        logger.exception("Error clearing draft")
        return SaveDraftResult(success=False, error="Failed to clear draft", status_code=500)

    audit_log.record("DRAFT_CLEARED", instance.id, actor_type="CLIENT")
    return SaveDraftResult(success=True, last_saved_at=last_saved_at)
