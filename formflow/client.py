"""HTTP client for the draft endpoints, used by the intake page.

``DraftClient.save_function()`` adapts the blocking ``requests`` calls into
the coroutine the auto-save controller expects.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import requests

from formflow.errors import TerminalSaveError

logger = logging.getLogger(__name__)


class DraftSaveError(RuntimeError):
    """Transient draft save failure (network error or 5xx)."""


class DraftClient:
    def __init__(self, base_url: str, token: str, timeout: float | None = 10.0,
                 session: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def draft_url(self) -> str:
        return f"{self.base_url}/api/forms/{self.token}/draft"

    @property
    def health_url(self) -> str:
        return f"{self.base_url}/api/health"

    def _raise_for(self, resp: requests.Response) -> None:
        if resp.ok:
            return
        try:
            message = resp.json().get("error") or resp.reason
        except ValueError:
            message = resp.reason or f"HTTP {resp.status_code}"
        if resp.status_code in (400, 404, 422):
            raise TerminalSaveError(message, resp.status_code)
        raise DraftSaveError(message)

    def _request(self, method: str, url: str, **kwargs: Any) -> dict:
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise DraftSaveError(f"Network error: {exc}") from exc
        self._raise_for(resp)
        return resp.json()

    def get_form(self) -> dict:
        return self._request("GET", f"{self.base_url}/api/forms/{self.token}")

    def save_draft(self, data: dict[str, Any]) -> dict:
        return self._request("POST", self.draft_url, json=data)

    def get_draft(self) -> dict:
        return self._request("GET", self.draft_url)

    def submit(self, data: dict[str, Any]) -> dict:
        return self._request("POST", f"{self.base_url}/api/forms/{self.token}/submit", json=data)

    def save_function(self) -> Callable[[dict], Awaitable[None]]:
        async def _save(data: dict) -> None:
            result = await asyncio.to_thread(self.save_draft, data)
            logger.debug("Draft saved at %s", result.get("lastSavedAt"))

        return _save
