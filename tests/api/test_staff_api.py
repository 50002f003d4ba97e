"""Tests for formflow/api.py -- consultant endpoints behind staff sessions."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from formflow import auth
from formflow.api import app


@pytest.fixture()
def client(tmp_data_dir):
    return TestClient(app)


@pytest.fixture()
def headers(tmp_data_dir):
    auth.set_password("correct horse")
    return {"Authorization": f"Bearer {auth.create_session()}"}


@pytest.fixture()
def template_id(client, headers, sample_schema):
    resp = client.post("/api/templates", headers=headers, json={
        "name": "Client Intake",
        "schema": sample_schema,
        "uiSchema": {"ui:order": ["email", "fullName"]},
        "category": "Study Permit",
    })
    assert resp.status_code == 201
    return resp.json()["id"]


def _send(client, headers, template_id, email="maria@example.com"):
    return client.post("/api/instances", headers=headers, json={
        "template_id": template_id,
        "client_email": email,
        "client_name": "Maria Garcia",
    })


# ── Auth ──────────────────────────────────────────────────────────────────


def test_routes_require_session(client):
    for path in ("/api/templates", "/api/instances", "/api/stats", "/api/submissions"):
        resp = client.get(path)
        assert resp.status_code == 401
        assert resp.json() == {"error": "Authentication required"}


def test_bad_bearer_token(client, headers):
    resp = client.get("/api/stats", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


def test_login_logout(client, tmp_data_dir):
    auth.set_password("pw")
    assert client.post("/api/auth/login", json={"password": "wrong"}).status_code == 401

    token = client.post("/api/auth/login", json={"password": "pw"}).json()["token"]
    h = {"Authorization": f"Bearer {token}"}
    assert client.get("/api/auth/session", headers=h).json() == {"authenticated": True}

    assert client.post("/api/auth/logout", headers=h).json() == {"success": True}
    assert client.get("/api/auth/session", headers=h).json() == {"authenticated": False}


# ── Templates ─────────────────────────────────────────────────────────────


def test_create_and_get_template(client, headers, template_id):
    resp = client.get(f"/api/templates/{template_id}", headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["name"] == "Client Intake"
    assert body["ui_schema"] == {"ui:order": ["email", "fullName"]}
    assert [t["id"] for t in client.get("/api/templates", headers=headers).json()] == [template_id]


def test_invalid_schema_rejected(client, headers):
    resp = client.post("/api/templates", headers=headers, json={
        "name": "Broken",
        "schema": {"properties": {"a": {"type": "string"}}, "required": ["b"]},
    })
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Invalid schema:")


def test_template_requires_name(client, headers, sample_schema):
    resp = client.post("/api/templates", headers=headers, json={"name": "", "schema": sample_schema})
    assert resp.status_code == 422
    assert "error" in resp.json()


def test_unknown_template(client, headers):
    assert client.get("/api/templates/missing", headers=headers).status_code == 404


# ── Instances & stats ─────────────────────────────────────────────────────


def test_create_instance(client, headers, template_id):
    resp = _send(client, headers, template_id)
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "SENT"
    assert len(body["secure_token"]) >= 16

    listed = client.get("/api/instances", headers=headers).json()
    assert listed[0]["id"] == body["id"]
    assert listed[0]["effective_status"] == "SENT"


def test_create_instance_bad_email(client, headers, template_id):
    assert _send(client, headers, template_id, email="not-an-email").status_code == 422


def test_create_instance_expiry_bounds(client, headers, template_id):
    resp = client.post("/api/instances", headers=headers, json={
        "template_id": template_id, "client_email": "a@b.co", "expiry_days": 60,
    })
    assert resp.status_code == 422


def test_create_instance_unknown_template(client, headers):
    resp = _send(client, headers, "missing")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Template not found or inactive"}


def test_stats(client, headers, template_id):
    _send(client, headers, template_id)
    token = _send(client, headers, template_id, email="b@x.io").json()["secure_token"]
    client.post(f"/api/forms/{token}/draft", json={"fullName": "B"})

    stats = client.get("/api/stats", headers=headers).json()
    assert stats["TOTAL"] == 2
    assert stats["SENT"] == 1
    assert stats["IN_PROGRESS"] == 1


# ── Submissions & export ──────────────────────────────────────────────────


def test_submissions_and_csv(client, headers, template_id, sample_document):
    token = _send(client, headers, template_id).json()["secure_token"]
    submission_id = client.post(f"/api/forms/{token}/submit", json=sample_document).json()["submissionId"]

    subs = client.get("/api/submissions", headers=headers).json()
    assert [s["id"] for s in subs] == [submission_id]
    assert subs[0]["formTitle"] == "Client Intake"

    resp = client.get("/api/submissions/export", headers=headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=\"submissions-" in resp.headers["content-disposition"]
    assert '"Address - City"' in resp.text

    resp = client.get(f"/api/submissions/{submission_id}/export", headers=headers)
    assert resp.status_code == 200
    assert f'submission-{submission_id}.csv' in resp.headers["content-disposition"]
    assert resp.text.startswith('"Field","Value"')


def test_export_bad_date_format(client, headers):
    resp = client.get("/api/submissions/export?date_format=roman", headers=headers)
    assert resp.status_code == 400


def test_export_unknown_submission(client, headers):
    assert client.get("/api/submissions/SUB-0-MISSING/export", headers=headers).status_code == 404


def test_export_empty(client, headers):
    resp = client.get("/api/submissions/export", headers=headers)
    assert resp.status_code == 200
    assert resp.text == "No submissions found"
