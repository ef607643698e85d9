"""
Integration tests for the health endpoint.
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from app.factory import create_app
from services.storage_service import MinIOStorageService


def _session_scope_for(session):
    @asynccontextmanager
    async def scope():
        yield session

    return scope


@asynccontextmanager
async def _broken_scope():
    raise OperationalError("SELECT 1", {}, Exception("connection refused"))
    yield


async def _get_health():
    transport = httpx.ASGITransport(app=create_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.get("/health")


@pytest.mark.asyncio
async def test_healthy(db_session):
    with patch("app.routes.health.session_scope", _session_scope_for(db_session)), patch.object(
        MinIOStorageService, "health_check", new_callable=AsyncMock, return_value=True
    ):
        response = await _get_health()

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["services"]["database"]["status"] == "healthy"
    assert body["services"]["minio"]["status"] == "healthy"


@pytest.mark.asyncio
async def test_degraded_when_database_is_down():
    with patch("app.routes.health.session_scope", _broken_scope), patch.object(
        MinIOStorageService, "health_check", new_callable=AsyncMock, return_value=True
    ):
        response = await _get_health()

    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "degraded"
    assert body["services"]["database"]["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_degraded_when_storage_is_down(db_session):
    with patch("app.routes.health.session_scope", _session_scope_for(db_session)), patch.object(
        MinIOStorageService, "health_check", new_callable=AsyncMock, return_value=False
    ):
        response = await _get_health()

    body = response.json()
    assert body["status"] == "degraded"
    assert body["services"]["minio"]["status"] == "unhealthy"
