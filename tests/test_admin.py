import asyncio
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.database import get_db
from app.main import app
from app.routers import admin
from app.services.session_store import SessionStore

ADMIN_HEADERS = {"X-Admin-Token": "admin-token"}


@pytest.fixture
def store(fake_redis):
    return SessionStore(redis_client=fake_redis, ttl_seconds=3600)


@pytest.fixture
def client(db_session, seeded_job, store, fake_redis):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[admin.get_admin_session_store] = lambda: store
    with patch("app.services.health_service.get_redis", return_value=fake_redis):
        yield TestClient(app)
    app.dependency_overrides.clear()


def test_liveness(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_system_health(client):
    response = client.get("/admin/health")

    assert response.status_code == 200
    assert response.json()["redis"] == "ok"
    assert response.json()["tasks"]["pending"] == 5


class TestHeal:
    def test_requires_token(self, client):
        assert client.post("/admin/heal").status_code == 401
        assert client.post("/admin/heal", headers={"X-Admin-Token": "wrong"}).status_code == 401

    def test_heals_with_token(self, client):
        response = client.post("/admin/heal", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json()["healed_count"] == 0

    def test_unconfigured_token(self, client):
        with patch.object(admin.settings, "admin_token", None):
            assert client.post("/admin/heal", headers=ADMIN_HEADERS).status_code == 500


class TestSessionReset:
    def test_deletes_session(self, client, store):
        asyncio.run(store.create("6591234567", "thread_1"))

        response = client.delete("/admin/sessions/+6591234567", headers=ADMIN_HEADERS)

        assert response.json() == {"phone": "6591234567", "deleted": True}
        assert asyncio.run(store.resolve("6591234567")) is None

    def test_unknown_session(self, client):
        response = client.delete("/admin/sessions/6500000000", headers=ADMIN_HEADERS)
        assert response.json() == {"phone": "6500000000", "deleted": False}

    def test_requires_token(self, client):
        assert client.delete("/admin/sessions/6591234567").status_code == 401
