"""
Unit tests for api/ttm_router.py and the app-level health route.

The registry and translation source are swapped through api.deps; the
replication queue is drained by hand instead of by the startup worker.
"""

import logging
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from api import deps
from api.main import app, drain_replication_queue
from ttmserver.exceptions import TransientBackendError
from ttmserver.registry import BackendRegistry
from ttmserver.replication import InMemoryTranslationSource


SERVICES = {
    "primary": {"type": "ttmserver", "class": "elasticsearch", "url": "memory://", "public": True},
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def registry():
    return BackendRegistry(SERVICES, default="primary", wiki_id="w")


@pytest.fixture
def client(registry):
    deps.reset_state()
    deps.set_registry(registry)
    deps.set_source(InMemoryTranslationSource(wiki="w"))
    yield TestClient(app)
    deps.reset_state()


def drain():
    return deps.get_queue().drain(deps.get_coordinator())


@pytest.fixture
def translated(client):
    client.post("/api/ttm/translations", json={
        "location": "Greeting", "language": "en", "text": "Hello world", "definition": True,
    })
    client.post("/api/ttm/translations", json={
        "location": "Greeting", "language": "de", "text": "Hallo Welt",
    })
    drain()
    return client


# ---------------------------------------------------------------------------
# Liveness
# ---------------------------------------------------------------------------

class TestLiveness:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert data["uptime_seconds"] >= 0


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

class TestTranslations:
    def test_definition_queues_rebuild(self, client):
        resp = client.post("/api/ttm/translations", json={
            "location": "Greeting", "language": "en", "text": "Hello world", "definition": True,
        })
        assert resp.status_code == 202
        assert resp.json() == {"location": "Greeting", "language": "en", "command": "rebuild", "queued": 1}

    def test_translation_queues_refresh(self, client):
        client.post("/api/ttm/translations", json={
            "location": "Greeting", "language": "en", "text": "Hello world", "definition": True,
        })
        resp = client.post("/api/ttm/translations", json={
            "location": "Greeting", "language": "de", "text": "Hallo Welt",
        })
        assert resp.status_code == 202
        assert resp.json()["command"] == "refresh"
        assert resp.json()["queued"] == 2

    def test_removal_queues_delete(self, translated):
        resp = translated.post("/api/ttm/translations", json={"location": "Greeting", "language": "de", "text": None})
        assert resp.json()["command"] == "delete"
        drain()
        resp = translated.get("/api/ttm/suggestions", params={"source": "en", "target": "de", "text": "Hello world"})
        assert resp.json()["total"] == 0

    def test_translation_without_definition(self, client):
        resp = client.post("/api/ttm/translations", json={"location": "Nope", "language": "de", "text": "x"})
        assert resp.status_code == 404

    def test_translation_in_source_language(self, translated):
        resp = translated.post("/api/ttm/translations", json={"location": "Greeting", "language": "en", "text": "x"})
        assert resp.status_code == 400

    def test_validation(self, client):
        resp = client.post("/api/ttm/translations", json={"location": "", "language": "de"})
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

class TestSuggestions:
    def test_suggestions(self, translated):
        resp = translated.get("/api/ttm/suggestions", params={"source": "en", "target": "de", "text": "Hello world"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        suggestion = data["suggestions"][0]
        assert suggestion["target"] == "Hallo Welt"
        assert suggestion["quality"] == 1.0
        assert suggestion["service"] == "primary"
        assert suggestion["local"] is True
        assert suggestion["source_language"] == "en"

    def test_blank_text(self, translated):
        resp = translated.get("/api/ttm/suggestions", params={"source": "en", "target": "de", "text": " "})
        assert resp.json() == {"suggestions": [], "total": 0}

    def test_missing_parameter(self, client):
        assert client.get("/api/ttm/suggestions", params={"source": "en", "text": "x"}).status_code == 422

    def test_public_query(self, translated):
        resp = translated.get("/api/ttm/query", params={"source": "en", "target": "de", "text": "Hello world"})
        assert resp.status_code == 200
        assert [s["target"] for s in resp.json()["ttmserver"]] == ["Hallo Welt"]


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

class TestSearch:
    def test_search(self, translated):
        resp = translated.get("/api/ttm/search", params={"q": "world"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["service"] == "primary"
        assert data["total"] == 1
        assert data["documents"][0]["content"] == "Hello <em>world</em>"
        assert data["facets"]["language"] == {"en": 1}

    def test_no_default_service(self):
        deps.reset_state()
        deps.set_registry(BackendRegistry({}))
        try:
            resp = TestClient(app).get("/api/ttm/search", params={"q": "world"})
        finally:
            deps.reset_state()
        assert resp.status_code == 404

    def test_backend_unavailable(self, translated, registry):
        with patch.object(registry.get("primary"), "search", side_effect=TransientBackendError("index down")):
            resp = translated.get("/api/ttm/search", params={"q": "world"})
        assert resp.status_code == 503


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------

class TestAdministration:
    def test_health(self, translated):
        resp = translated.get("/api/ttm/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["default_service"] == "primary"
        assert data["services"] == [{"name": "primary", "status": "green", "error": None}]
        assert data["queue_length"] == 0

    def test_health_degraded_before_first_write(self, client):
        assert client.get("/api/ttm/health").json()["status"] == "degraded"

    def test_services(self, client):
        data = client.get("/api/ttm/services").json()
        assert data["writable_set"] == ["primary"]
        assert data["queryable"] == {"primary": "internal"}
        assert data["services"][0]["name"] == "primary"
        assert data["services"][0]["default"] is True

    def test_services_misconfigured(self):
        deps.reset_state()
        deps.set_registry(BackendRegistry({
            "a": {"type": "ttmserver", "class": "fake", "writable": True},
            "b": {"type": "ttmserver", "class": "fake", "mirrors": ["a"]},
        }))
        try:
            resp = TestClient(app).get("/api/ttm/services")
        finally:
            deps.reset_state()
        assert resp.status_code == 500


# ---------------------------------------------------------------------------
# Replication worker
# ---------------------------------------------------------------------------

class TestReplicationWorker:
    def test_drains_queue(self, client):
        client.post("/api/ttm/translations", json={
            "location": "Greeting", "language": "en", "text": "Hello world", "definition": True,
        })
        assert drain_replication_queue() == 1
        assert len(deps.get_queue()) == 0

    def test_unexpected_error_is_logged_not_raised(self, client, caplog):
        for text in ("Hello world", "Hello there"):
            client.post("/api/ttm/translations", json={
                "location": "Greeting", "language": "en", "text": text, "definition": True,
            })

        coordinator = deps.get_coordinator()
        with patch.object(coordinator, "run", side_effect=PermissionError("read-only filesystem")):
            with caplog.at_level(logging.ERROR):
                assert drain_replication_queue() == 0
        assert "unexpected error" in caplog.text

        # The next round picks up the remaining job
        assert drain_replication_queue() == 1
