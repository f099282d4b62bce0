from __future__ import annotations

from fastapi import FastAPI

from amlguard.apps.api.main import create_app
from amlguard.core.config import Settings
from amlguard.persistence.memory import MemoryStore
from amlguard.persistence.store import Store


def build_test_app(*, environment: str = "development", store: Store | None = None) -> FastAPI:
    # Every test app gets a fresh demo store so writes never leak between tests.
    settings = Settings(environment=environment, database_url=None)
    return create_app(settings, store=store or MemoryStore.with_demo_data())
