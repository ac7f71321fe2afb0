import pytest
from aiohttp.test_utils import TestClient, TestServer

from core.health import HealthServer
from utils.constants import HEALTH_RESPONSE


@pytest.mark.asyncio
async def test_health_endpoint():
    client = TestClient(TestServer(HealthServer(port=0).build_app()))
    await client.start_server()
    try:
        response = await client.get('/')
        assert response.status == 200
        assert response.content_type == 'text/plain'
        assert await response.text() == HEALTH_RESPONSE
    finally:
        await client.close()
