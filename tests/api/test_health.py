from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from chatsync.api.deps import get_container
from chatsync.api.routers.health import router as health_router
from chatsync.main import create_app
from tests.conftest import make_settings


@pytest.fixture
def client():
    app = create_app(make_settings())
    with TestClient(app) as client:
        yield client


def test_health_check(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "message": "Server Healthy"}


def test_health_check_db(client):
    response = client.get("/api/v1/health/db")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "message": "Database connection OK"}


def test_health_check_db_unavailable():
    container = MagicMock()
    container.engine.connect.return_value.__aenter__.side_effect = OperationalError(
        "SELECT 1", {}, Exception("connection refused")
    )
    app = FastAPI()
    app.include_router(health_router)
    app.dependency_overrides[get_container] = lambda: container

    response = TestClient(app).get("/health/db")

    assert response.status_code == 503
    assert response.json() == {"detail": "Database unavailable"}


def test_correlation_id_is_echoed(client):
    response = client.get("/api/v1/health", headers={"X-Correlation-ID": "req-123"})
    assert response.headers["X-Correlation-ID"] == "req-123"
