import pytest


@pytest.mark.unit
@pytest.mark.asyncio
async def test_health_endpoint(async_client):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_responses_carry_process_time_header(async_client):
    resp = await async_client.get("/health")
    assert float(resp.headers["X-Process-Time"]) >= 0
