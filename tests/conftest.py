"""Pytest configuration and fixtures."""

from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from shortlinks.config import Settings
from shortlinks.crud import LinkStore
from shortlinks.database import make_engine
from shortlinks.main import create_app
from shortlinks.service import LinkService


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite file."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'links.db'}",
        public_base_url="http://testserver",
        secret_key="test-secret",
        admin_username="admin",
        admin_password="s3cret",
        log_level="DEBUG",
    )


@pytest.fixture
async def store(settings) -> AsyncGenerator[LinkStore, None]:
    store = LinkStore(make_engine(settings.database_url), timeout=settings.store_timeout)
    await store.create_all()

    yield store

    await store.dispose()


@pytest.fixture
def service(store) -> LinkService:
    return LinkService(store)


@pytest.fixture
def app(settings, store):
    return create_app(settings=settings, store=store)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
async def admin_headers(client) -> dict:
    """Bearer header for the configured admin."""
    resp = await client.post("/login", data={"username": "admin", "password": "s3cret"})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}
