"""Final submission of client forms and read access for consultants."""

from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass
from typing import Any

from formflow import audit_log, instance_store
from formflow.draft_service import resolve_instance
from formflow.errors import FormFlowError, SubmissionValidationError
from formflow.models import FormInstance, FormResponse, InstanceStatus
from formflow.schema import FormSchema
from formflow.validation import validate

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class SubmissionResult:
    success: bool
    submission_id: str | None = None
    submitted_at: str | None = None
    error: str | None = None
    status_code: int = 200


@dataclass
class SubmissionListItem:
    """Flat view of one submission used by listings and CSV export."""

    id: str
    form_instance_id: str
    client_name: str
    client_email: str
    form_title: str
    template_category: str
    submitted_at: str
    data: dict

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "formInstanceId": self.form_instance_id,
            "clientName": self.client_name,
            "clientEmail": self.client_email,
            "formTitle": self.form_title,
            "templateCategory": self.template_category,
            "submittedAt": self.submitted_at,
            "data": self.data,
        }


def new_submission_id() -> str:
    """``SUB-<epoch millis>-<9 random chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"SUB-{int(time.time() * 1000)}-{suffix}"


def submit_form(token: str, submission_data: dict[str, Any]) -> SubmissionResult:
    """Validate and store the final submission, clearing the draft."""
    try:
        instance = resolve_instance(token, allow_completed=False)
        template = instance_store.load_template(instance.template_id)
        if template is None:
            raise FormFlowError("Form template is missing")

        result = validate(submission_data, FormSchema.from_dict(template.schema))
        if not result.is_valid:
            raise SubmissionValidationError(result.errors)

        now = instance_store.now_iso()
        response = instance_store.load_response(instance.id) or FormResponse(instance_id=instance.id)
        response.submitted_data = submission_data
        response.submitted_at = now
        response.submission_id = response.submission_id or new_submission_id()
        response.draft_data = {}
        instance_store.save_response(response)

        instance.status = InstanceStatus.COMPLETED
        instance.submitted_at = now
        instance_store.save_instance(instance)
    except FormFlowError as exc:
        return SubmissionResult(success=False, error=exc.message, status_code=exc.status_code)
    except OSError:
        logger.exception("Error submitting form")
        return SubmissionResult(success=False, error="Failed to submit form", status_code=500)

    logger.info("Form instance %s submitted as %s", instance.id, response.submission_id)
    audit_log.record(
        "FORM_SUBMITTED", instance.id, actor_type="CLIENT",
        submission_id=response.submission_id,
    )
    return SubmissionResult(
        success=True, submission_id=response.submission_id, submitted_at=now
    )


def get_submission(token: str) -> dict:
    """Submitted data for a completed form, or ``{"error": ...}``."""
    instance = instance_store.find_instance_by_token(token)
    if instance is None:
        return {"error": "Form not found"}
    response = instance_store.load_response(instance.id)
    if instance.status is not InstanceStatus.COMPLETED or not response or response.submitted_data is None:
        return {"error": "Form has not been submitted"}
    template = instance_store.load_template(instance.template_id)
    return {
        "submission_id": response.submission_id,
        "submitted_at": response.submitted_at,
        "submitted_data": response.submitted_data,
        "template_name": template.name if template else "",
    }


def _list_item(instance: FormInstance, response: FormResponse) -> SubmissionListItem:
    template = instance_store.load_template(instance.template_id)
    return SubmissionListItem(
        id=response.submission_id or "",
        form_instance_id=instance.id,
        client_name=instance.client_name,
        client_email=instance.client_email,
        form_title=template.name if template else "",
        template_category=template.category if template else "",
        submitted_at=response.submitted_at or "",
        data=response.submitted_data or {},
    )


def list_submissions(template_id: str | None = None) -> list[SubmissionListItem]:
    """Completed submissions, newest first."""
    items: list[SubmissionListItem] = []
    for instance in instance_store.list_instances():
        if instance.status is not InstanceStatus.COMPLETED:
            continue
        if template_id and instance.template_id != template_id:
            continue
        response = instance_store.load_response(instance.id)
        if response is None or response.submitted_data is None:
            continue
        items.append(_list_item(instance, response))
    items.sort(key=lambda i: i.submitted_at, reverse=True)
    return items


def find_submission(submission_id: str) -> SubmissionListItem | None:
    for item in list_submissions():
        if item.id == submission_id:
            return item
    return None
