"""Network connectivity signal for auto-save.

``ConnectivityMonitor`` holds the current online/offline flag and notifies
registered listeners on transitions.  ``probe`` refreshes the flag by
pinging the API health endpoint.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

import requests

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivityMonitor:
    def __init__(self, online: bool = True, health_url: str | None = None) -> None:
        self._online = online
        self.health_url = health_url
        self._listeners: list[Listener] = []

    @property
    def online(self) -> bool:
        return self._online

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def set_online(self, online: bool) -> None:
        """Record the connectivity state, notifying listeners on change."""
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            listener(online)

    async def probe(self, timeout: float = 3.0) -> bool:
        """Ping the health endpoint and update the state from the result."""
        if not self.health_url:
            return self._online
        try:
            resp = await asyncio.to_thread(requests.get, self.health_url, timeout=timeout)
            online = resp.ok
        except requests.RequestException as exc:
            logger.debug("Health probe failed: %s", exc)
            online = False
        self.set_online(online)
        return online
