from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from amlguard.core.config import get_settings
from amlguard.services.telemetry import reset_metrics
from amlguard.tests.utils.app import build_test_app


@pytest.fixture(autouse=True)
def _reset_process_state() -> None:
    # Settings and telemetry are process-wide; isolate them per test.
    get_settings.cache_clear()
    reset_metrics()
    yield
    get_settings.cache_clear()
    reset_metrics()


@pytest.fixture
async def app():
    app = build_test_app()
    yield app
    # The context is built eagerly, so tear it down explicitly to stop background workers.
    await app.state.context.aclose()


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
