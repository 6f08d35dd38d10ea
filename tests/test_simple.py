"""
Simple test cases to verify test configuration.
"""
from httpx import AsyncClient
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession


async def test_app_exists(client: AsyncClient):
    response = await client.get("/openapi.json")
    assert response.status_code == 200
    assert "/api/v1/products" in response.json()["paths"]


async def test_database_session(async_session: AsyncSession):
    result = await async_session.exec(select(1))
    assert result.one() == 1


async def test_trace_id_header(client: AsyncClient):
    response = await client.get("/api/v1/categories", headers={"X-Trace-ID": "trace-abc"})
    assert response.headers["X-Trace-ID"] == "trace-abc"


async def test_trace_id_generated(client: AsyncClient):
    response = await client.get("/api/v1/categories")
    assert len(response.headers["X-Trace-ID"]) == 32
