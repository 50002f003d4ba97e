"""Shared fixtures for all tests."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

import formflow.audit_log as audit_mod
import formflow.auth as auth_mod
import formflow.instance_store as store_mod


@pytest.fixture()
def tmp_data_dir(tmp_path: Path):
    """Redirect every file-backed store to a temporary data directory."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    config_dir = data_dir / "config"
    with patch.object(store_mod, "DATA_DIR", data_dir), \
         patch.object(audit_mod, "DATA_DIR", data_dir / "audit"), \
         patch.object(auth_mod, "_CONFIG_DIR", config_dir), \
         patch.object(auth_mod, "_AUTH_FILE", config_dir / "auth.json"), \
         patch.object(auth_mod, "_SESSIONS_FILE", config_dir / "sessions.json"):
        yield data_dir


@pytest.fixture()
def sample_schema() -> dict:
    """A client intake schema covering every field kind."""
    return {
        "type": "object",
        "title": "Client Intake",
        "properties": {
            "fullName": {"type": "string", "title": "Full name", "minLength": 2},
            "email": {"type": "string", "title": "Email", "format": "email"},
            "age": {"type": "integer", "minimum": 0, "maximum": 130},
            "country": {"type": "string", "enum": ["Canada", "India", "Philippines"]},
            "hasSpouse": {"type": "boolean"},
            "languages": {
                "type": "array",
                "items": {"type": "string"},
                "maxItems": 3,
            },
            "address": {
                "type": "object",
                "properties": {
                    "city": {"type": "string"},
                    "postalCode": {
                        "type": "string",
                        "pattern": "^[A-Z]\\d[A-Z] ?\\d[A-Z]\\d$",
                        "patternMessage": "Enter a Canadian postal code",
                    },
                },
                "required": ["city"],
            },
        },
        "required": ["fullName", "email"],
    }


@pytest.fixture()
def sample_document() -> dict:
    return {
        "fullName": "Maria Garcia",
        "email": "maria@example.com",
        "age": 34,
        "country": "Canada",
        "hasSpouse": False,
        "languages": ["English", "Spanish"],
        "address": {"city": "Toronto", "postalCode": "M5V 2T6"},
    }
