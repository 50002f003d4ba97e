"""Staff password authentication for the consultant dashboard and API.

The password hash lives in ``auth.json`` and session tokens in
``sessions.json``, both under ``CONFIG_DIR``.  The API accepts a session
token as ``Authorization: Bearer <token>``; the Streamlit dashboard calls
``require_auth()`` right after ``st.set_page_config()``.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import secrets
import uuid
from datetime import datetime, timezone
from pathlib import Path

from formflow.config import get_settings

_CONFIG_DIR = get_settings().data_dir / "config"
_AUTH_FILE = _CONFIG_DIR / "auth.json"
_SESSIONS_FILE = _CONFIG_DIR / "sessions.json"

_PBKDF2_ROUNDS = 200_000


# ── Internal helpers ─────────────────────────────────────────────────────────


def _hash_password(password: str, salt: str) -> str:
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), bytes.fromhex(salt), _PBKDF2_ROUNDS
    )
    return digest.hex()


def _load_json(path: Path) -> dict | None:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text())
    except (json.JSONDecodeError, OSError):
        return None


def _save_json(path: Path, data: dict) -> None:
    _CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2))


def _load_auth() -> dict | None:
    return _load_json(_AUTH_FILE)


def _load_sessions() -> dict:
    return _load_json(_SESSIONS_FILE) or {}


def _session_hours() -> int:
    auth = _load_auth() or {}
    return auth.get("session_hours", get_settings().session_hours)


def _is_fresh(created_iso: str, max_hours: float) -> bool:
    try:
        created = datetime.fromisoformat(created_iso)
    except (ValueError, TypeError):
        return False
    elapsed = (datetime.now(timezone.utc) - created).total_seconds() / 3600
    return elapsed < max_hours


# ── Password management ──────────────────────────────────────────────────────


def is_password_set() -> bool:
    auth = _load_auth()
    return auth is not None and bool(auth.get("password_hash"))


def set_password(password: str) -> None:
    if not password:
        raise ValueError("Password cannot be empty.")
    salt = secrets.token_hex(16)
    auth = _load_auth() or {"session_hours": get_settings().session_hours}
    auth["salt"] = salt
    auth["password_hash"] = _hash_password(password, salt)
    _save_json(_AUTH_FILE, auth)


def check_password(password: str) -> bool:
    auth = _load_auth()
    if not auth or not auth.get("password_hash") or not password:
        return False
    candidate = _hash_password(password, auth.get("salt", ""))
    return hmac.compare_digest(candidate, auth["password_hash"])


def change_password(current: str, new: str) -> tuple[bool, str]:
    """Validate the current password and replace it.  Returns (success, message)."""
    if not is_password_set():
        return False, "No password is configured."
    if not check_password(current):
        return False, "Current password is incorrect."
    set_password(new)
    return True, "Password changed successfully."


# ── Sessions ─────────────────────────────────────────────────────────────────


def create_session() -> str:
    token = uuid.uuid4().hex
    sessions = _load_sessions()
    sessions[token] = datetime.now(timezone.utc).isoformat()
    _save_json(_SESSIONS_FILE, sessions)
    return token


def session_is_valid(token: str | None) -> bool:
    if not token:
        return False
    created = _load_sessions().get(token)
    if not created:
        return False
    return _is_fresh(created, _session_hours())


def destroy_session(token: str) -> None:
    sessions = _load_sessions()
    sessions.pop(token, None)
    _save_json(_SESSIONS_FILE, sessions)


def login(password: str) -> str | None:
    """Return a new session token when *password* is correct."""
    if not check_password(password):
        return None
    return create_session()


def active_session_count() -> int:
    max_hours = _session_hours()
    return sum(1 for ts in _load_sessions().values() if _is_fresh(ts, max_hours))


# ── Streamlit gate ───────────────────────────────────────────────────────────


def require_auth() -> None:
    """Gate the current Streamlit page behind the staff password.

    Renders a login (or first-run setup) form and calls ``st.stop()`` until
    the user is authenticated.
    """
    import streamlit as st

    token = st.session_state.get("_auth_token")
    if session_is_valid(token):
        return
    if token:
        st.session_state.pop("_auth_token", None)

    _, col, _ = st.columns([1, 1, 1])
    with col:
        st.subheader("FormFlow")
        if is_password_set():
            _render_login_form(st)
        else:
            _render_setup_form(st)
    st.stop()


def render_logout() -> None:
    import streamlit as st

    if not st.session_state.get("_auth_token"):
        return
    if st.sidebar.button("Log Out", key="_auth_logout"):
        token = st.session_state.pop("_auth_token", None)
        if token:
            destroy_session(token)
        st.rerun()


def _render_login_form(st) -> None:
    with st.form("_auth_login_form"):
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Log In", use_container_width=True)
    if submitted:
        token = login(password)
        if token is None:
            st.error("Incorrect password.")
        else:
            st.session_state["_auth_token"] = token
            st.rerun()


def _render_setup_form(st) -> None:
    st.caption("Set a password to secure the consultant dashboard.")
    with st.form("_auth_setup_form"):
        pw1 = st.text_input("New Password", type="password")
        pw2 = st.text_input("Confirm Password", type="password")
        submitted = st.form_submit_button("Set Password", use_container_width=True)
    if submitted:
        if not pw1:
            st.error("Password cannot be empty.")
        elif pw1 != pw2:
            st.error("Passwords do not match.")
        else:
            set_password(pw1)
            st.session_state["_auth_token"] = create_session()
            st.rerun()
