"""FastAPI backend for FormFlow.

Client routes are keyed by a form instance's secure token (the token is the
credential).  Consultant routes require a staff session token sent as
``Authorization: Bearer <token>``.  Every error response has the shape
``{"error": <message>}``.

Part of the FormFlow intake suite.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from formflow import audit_log, auth, draft_service, export, instance_store, submission_service, tokens
from formflow.draft_service import resolve_instance
from formflow.errors import FormFlowError, SchemaError, TemplateNotFoundError
from formflow.log_config import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    configure_logging()
    yield


app = FastAPI(title="FormFlow API", lifespan=_lifespan)


@app.exception_handler(StarletteHTTPException)
async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = [
        f"{'.'.join(str(p) for p in err['loc'][1:]) or 'body'}: {err['msg']}"
        for err in exc.errors()
    ]
    return JSONResponse({"error": "; ".join(messages)}, status_code=422)


@app.exception_handler(Exception)
async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class LoginRequest(BaseModel):
    password: str


class TemplateRequest(BaseModel):
    """Payload for creating a form template."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    form_schema: dict = Field(alias="schema")
    ui_schema: dict = Field(default_factory=dict, alias="uiSchema")
    description: str = ""
    category: str = ""


class CreateInstanceRequest(BaseModel):
    """Payload for sending a form link to a client."""

    template_id: str = Field(min_length=1)
    client_email: str = Field(pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
    client_name: str = ""
    personal_message: str = Field(default="", max_length=1000)
    expiry_days: float | None = Field(default=None, ge=0.5, le=30)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _json_object(request: Request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON data")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON data")
    return body


def _require_token(token: str) -> str:
    if not token or not token.strip():
        raise HTTPException(status_code=400, detail="Token is required")
    return token


def require_staff(authorization: str | None = Header(default=None)) -> str:
    """Dependency resolving the staff session token from the request."""
    token = ""
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    if not auth.session_is_valid(token):
        raise HTTPException(status_code=401, detail="Authentication required")
    return token


def _csv_response(result: export.CsvExport) -> Response:
    return Response(
        content=result.content,
        media_type=result.content_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


# ---------------------------------------------------------------------------
# Health & auth
# ---------------------------------------------------------------------------

@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/auth/login")
def login(request: LoginRequest) -> dict[str, str]:
    token = auth.login(request.password)
    if token is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {"token": token}


@app.post("/api/auth/logout")
def logout(token: str = Depends(require_staff)) -> dict[str, bool]:
    auth.destroy_session(token)
    return {"success": True}


@app.get("/api/auth/session")
def session(authorization: str | None = Header(default=None)) -> dict[str, bool]:
    try:
        require_staff(authorization)
    except HTTPException:
        return {"authenticated": False}
    return {"authenticated": True}


# ---------------------------------------------------------------------------
# Client form routes (token-keyed)
# ---------------------------------------------------------------------------

@app.get("/api/forms/{token}")
def get_form(token: str) -> dict[str, Any]:
    """Load a form for the client: template, status, expiry and current draft."""
    _require_token(token)
    try:
        instance = resolve_instance(token, allow_completed=True)
    except FormFlowError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)

    template = instance_store.load_template(instance.template_id)
    if template is None:
        raise HTTPException(status_code=500, detail="Form template is missing")

    if instance.opened_at is None:
        instance.opened_at = instance_store.now_iso()
        instance_store.save_instance(instance)
        audit_log.record("FORM_OPENED", instance.id, actor_type="CLIENT")

    draft = draft_service.get_draft(token)
    return {
        "instance": {
            "id": instance.id,
            "status": instance.status.value,
            "clientName": instance.client_name,
            "personalMessage": instance.personal_message,
            "expiresAt": instance.expires_at,
            "timeRemaining": tokens.time_until_expiry_string(instance.expires_at),
            "expiringSoon": tokens.is_expiring_soon(instance.expires_at),
        },
        "template": {
            "name": template.name,
            "description": template.description,
            "schema": template.schema,
            "uiSchema": template.ui_schema,
        },
        "draftData": draft.draft_data,
        "lastSavedAt": draft.last_saved_at,
    }


@app.post("/api/forms/{token}/draft")
async def save_draft(token: str, request: Request) -> dict[str, Any]:
    _require_token(token)
    draft_data = await _json_object(request)

    result = draft_service.save_draft(token, draft_data)
    if not result.success:
        raise HTTPException(status_code=result.status_code, detail=result.error)

    return {
        "success": True,
        "lastSavedAt": result.last_saved_at,
        "message": "Draft saved successfully",
    }


@app.get("/api/forms/{token}/draft")
def get_draft(token: str) -> dict[str, Any]:
    _require_token(token)
    result = draft_service.get_draft(token)
    if result.error:
        raise HTTPException(status_code=result.status_code, detail=result.error)
    return {
        "draftData": result.draft_data,
        "lastSavedAt": result.last_saved_at,
        "status": result.status,
    }


@app.delete("/api/forms/{token}/draft")
def clear_draft(token: str) -> dict[str, Any]:
    _require_token(token)
    result = draft_service.clear_draft(token)
    if not result.success:
        raise HTTPException(status_code=result.status_code, detail=result.error)
    return {"success": True, "lastSavedAt": result.last_saved_at, "message": "Draft cleared"}


@app.post("/api/forms/{token}/submit")
async def submit_form(token: str, request: Request) -> dict[str, Any]:
    _require_token(token)
    data = await _json_object(request)

    result = submission_service.submit_form(token, data)
    if not result.success:
        raise HTTPException(status_code=result.status_code, detail=result.error)

    return {
        "success": True,
        "submissionId": result.submission_id,
        "submittedAt": result.submitted_at,
        "message": "Form submitted successfully",
    }


# ---------------------------------------------------------------------------
# Consultant routes
# ---------------------------------------------------------------------------

@app.get("/api/templates")
def list_templates(active_only: bool = False, _staff: str = Depends(require_staff)) -> list[dict]:
    return [t.to_dict() for t in instance_store.list_templates(active_only=active_only)]


@app.post("/api/templates", status_code=201)
def create_template(request: TemplateRequest, _staff: str = Depends(require_staff)) -> dict:
    try:
        template = instance_store.create_template(
            name=request.name,
            schema=request.form_schema,
            ui_schema=request.ui_schema,
            description=request.description,
            category=request.category,
        )
    except SchemaError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid schema: {exc}")
    audit_log.record("TEMPLATE_SAVED", template.id, actor_type="STAFF")
    return template.to_dict()


@app.get("/api/templates/{template_id}")
def get_template(template_id: str, _staff: str = Depends(require_staff)) -> dict:
    template = instance_store.load_template(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return template.to_dict()


@app.post("/api/instances", status_code=201)
def create_instance(request: CreateInstanceRequest, _staff: str = Depends(require_staff)) -> dict:
    """Create a tokenized form link for a client."""
    try:
        instance = instance_store.create_instance(
            template_id=request.template_id,
            client_email=request.client_email,
            client_name=request.client_name,
            expiry_days=request.expiry_days,
            personal_message=request.personal_message,
        )
    except TemplateNotFoundError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    audit_log.record(
        "INSTANCE_CREATED", instance.id, actor_type="STAFF", template_id=instance.template_id
    )
    return instance.to_dict()


@app.get("/api/instances")
def list_instances(_staff: str = Depends(require_staff)) -> list[dict]:
    results = []
    for instance in instance_store.list_instances():
        d = instance.to_dict()
        d["effective_status"] = instance_store.effective_status(instance).value
        results.append(d)
    return results


@app.get("/api/stats")
def stats(_staff: str = Depends(require_staff)) -> dict[str, int]:
    return instance_store.instance_counts()


@app.get("/api/submissions")
def list_submissions(template_id: str | None = None, _staff: str = Depends(require_staff)) -> list[dict]:
    return [s.to_dict() for s in submission_service.list_submissions(template_id)]


@app.get("/api/submissions/export")
def export_submissions(
    template_id: str | None = None,
    date_format: str = "localized",
    flatten: bool = True,
    _staff: str = Depends(require_staff),
) -> Response:
    if date_format not in ("iso", "localized"):
        raise HTTPException(status_code=400, detail=f"Unknown date format: {date_format}")
    items = submission_service.list_submissions(template_id)
    return _csv_response(
        export.generate_submissions_csv(items, date_format=date_format, flatten_data=flatten)
    )


@app.get("/api/submissions/{submission_id}/export")
def export_submission(
    submission_id: str,
    date_format: str = "localized",
    _staff: str = Depends(require_staff),
) -> Response:
    item = submission_service.find_submission(submission_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Submission not found")
    return _csv_response(export.generate_single_submission_csv(item, date_format=date_format))
