"""Tests for formflow/local_store.py and formflow/connectivity.py."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import MagicMock, patch

import requests

from formflow.connectivity import ConnectivityMonitor
from formflow.local_store import LocalFallbackStore


# ── Local fallback store ─────────────────────────────────────────────────


class TestLocalFallbackStore:
    def test_write_and_read(self, tmp_path):
        store = LocalFallbackStore(tmp_path)
        store.write("autosave-abc", {"name": "Maria"})
        snapshot = store.read("autosave-abc")
        assert snapshot.data == {"name": "Maria"}
        assert snapshot.timestamp.tzinfo is not None

    def test_file_layout(self, tmp_path):
        LocalFallbackStore(tmp_path).write("autosave", {"a": 1})
        payload = json.loads((tmp_path / "autosave.json").read_text())
        assert payload["data"] == {"a": 1}
        assert "timestamp" in payload

    def test_unsafe_key_is_sanitised(self, tmp_path):
        store = LocalFallbackStore(tmp_path)
        store.write("../../etc/passwd", {"a": 1})
        assert store.read("../../etc/passwd").data == {"a": 1}
        assert all(p.parent == tmp_path for p in tmp_path.iterdir())

    def test_similar_keys_stay_distinct(self, tmp_path):
        store = LocalFallbackStore(tmp_path)
        store.write("a/b", {"v": 1})
        store.write("a_b", {"v": 2})
        assert store.read("a/b").data == {"v": 1}
        assert store.read("a_b").data == {"v": 2}
        store.clear("a/b")
        assert store.read("a/b") is None
        assert store.read("a_b").data == {"v": 2}

    def test_missing_reads_none(self, tmp_path):
        assert LocalFallbackStore(tmp_path / "nowhere").read("k") is None

    def test_corrupt_reads_none(self, tmp_path):
        (tmp_path / "k.json").write_text("NOT JSON{{{")
        assert LocalFallbackStore(tmp_path).read("k") is None

    def test_wrong_shape_reads_none(self, tmp_path):
        (tmp_path / "k.json").write_text(json.dumps({"data": 1}))
        assert LocalFallbackStore(tmp_path).read("k") is None

    def test_clear(self, tmp_path):
        store = LocalFallbackStore(tmp_path)
        store.write("k", {"a": 1})
        store.clear("k")
        store.clear("k")
        assert store.read("k") is None


# ── Connectivity monitor ─────────────────────────────────────────────────


class TestConnectivityMonitor:
    def test_listeners_notified_on_change_only(self):
        seen = []
        monitor = ConnectivityMonitor()
        monitor.add_listener(seen.append)
        monitor.set_online(True)
        monitor.set_online(False)
        monitor.set_online(False)
        monitor.set_online(True)
        assert seen == [False, True]

    def test_add_is_idempotent_and_remove_tolerant(self):
        monitor = ConnectivityMonitor()
        listener = MagicMock()
        monitor.add_listener(listener)
        monitor.add_listener(listener)
        assert monitor.listener_count == 1
        monitor.remove_listener(listener)
        monitor.remove_listener(listener)
        assert monitor.listener_count == 0

    def test_probe_without_url_keeps_state(self):
        monitor = ConnectivityMonitor(online=False)
        assert asyncio.run(monitor.probe()) is False

    def test_probe_success(self):
        monitor = ConnectivityMonitor(online=False, health_url="http://api/health")
        with patch("formflow.connectivity.requests.get", return_value=MagicMock(ok=True)):
            assert asyncio.run(monitor.probe()) is True
        assert monitor.online

    def test_probe_network_error(self):
        monitor = ConnectivityMonitor(health_url="http://api/health")
        with patch("formflow.connectivity.requests.get",
                   side_effect=requests.ConnectionError("down")):
            assert asyncio.run(monitor.probe()) is False
        assert not monitor.online
