"""Secure form-link tokens and their expiry arithmetic."""

from __future__ import annotations

import re
import secrets
from datetime import datetime, timedelta, timezone

DEFAULT_EXPIRY_DAYS = 7
MIN_EXPIRY_DAYS = 0.5
MAX_EXPIRY_DAYS = 30
MIN_TOKEN_LENGTH = 16
EXPIRING_SOON = timedelta(hours=24)

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def generate_form_token() -> str:
    """32 random bytes, base64url without padding."""
    return secrets.token_urlsafe(32)


def validate_token_format(token: str) -> bool:
    if not token or not isinstance(token, str):
        return False
    if len(token) < MIN_TOKEN_LENGTH:
        return False
    return bool(_TOKEN_RE.match(token))


def calculate_expiry(days: float = DEFAULT_EXPIRY_DAYS, max_days: float = MAX_EXPIRY_DAYS) -> datetime:
    """Expiry *days* from now, clamped to 12 hours .. *max_days*."""
    days = min(max(MIN_EXPIRY_DAYS, days), max_days)
    return _now() + timedelta(days=days)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    dt = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_expired(expires_at: str | datetime) -> bool:
    return parse_timestamp(expires_at) <= _now()


def time_until_expiry(expires_at: str | datetime) -> timedelta:
    remaining = parse_timestamp(expires_at) - _now()
    return max(remaining, timedelta(0))


def is_expiring_soon(expires_at: str | datetime) -> bool:
    remaining = time_until_expiry(expires_at)
    return timedelta(0) < remaining <= EXPIRING_SOON


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'' if n == 1 else 's'}"


def time_until_expiry_string(expires_at: str | datetime) -> str:
    """Human-readable time left, e.g. ``"2 days, 3 hours"``."""
    remaining = time_until_expiry(expires_at)
    if remaining <= timedelta(0):
        return "Expired"

    total_minutes = int(remaining.total_seconds() // 60)
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)

    if days > 0:
        return f"{_plural(days, 'day')}, {_plural(hours, 'hour')}"
    if hours > 0:
        return f"{_plural(hours, 'hour')}, {_plural(minutes, 'minute')}"
    return _plural(minutes, "minute")
