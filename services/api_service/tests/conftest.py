"""
Pytest fixtures for API service tests
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from shared.utils.config import ApiServiceSettings, load_api_settings, load_database_settings
from services.api_service.app.main import create_app
from services.api_service.app.models.item import Item


class InMemoryItemRepository:
    """ItemRepository stand-in that keeps rows in a list"""

    def __init__(self):
        self.rows: List[Item] = []
        self.seeded = False
        self.schema_calls = 0

    async def ensure_schema(self, seed: bool = True) -> bool:
        self.schema_calls += 1
        if self.seeded or not seed:
            return False
        for name in ("Read the README", "Start the dev stack", "Build for production"):
            await self.create_item(name)
        self.seeded = True
        return True

    async def list_items(self, limit: int = 50, offset: int = 0) -> Tuple[List[Item], int]:
        return self.rows[offset:offset + limit], len(self.rows)

    async def get_item(self, item_id: int) -> Optional[Item]:
        return next((item for item in self.rows if item.id == item_id), None)

    async def create_item(self, name: str) -> Item:
        item = Item(id=len(self.rows) + 1, name=name, created_at=datetime.now(timezone.utc))
        self.rows.append(item)
        return item

    async def reset(self) -> None:
        self.rows.clear()
        self.seeded = False


def _async_cm(value):
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=value)
    cm.__aexit__ = AsyncMock(return_value=None)
    return cm


@pytest.fixture
def db_settings():
    return load_database_settings(
        postgres_host="db",
        postgres_user="app",
        postgres_password="secret",
        postgres_db="edgestack",
    )


@pytest.fixture
def api_settings(db_settings) -> ApiServiceSettings:
    return load_api_settings(deployment_mode="development", database=db_settings)


@pytest.fixture
def mock_db_pool():
    """Mock asyncpg pool whose connection supports transactions"""
    conn = MagicMock()
    conn.execute = AsyncMock()
    conn.fetchval = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.transaction = MagicMock(return_value=_async_cm(None))

    pool = MagicMock()
    pool.acquire = MagicMock(return_value=_async_cm(conn))
    pool.close = AsyncMock()
    return pool, conn


@pytest.fixture
def mock_db():
    """DatabaseManager stand-in"""
    db = MagicMock()
    db.initialize = AsyncMock()
    db.close = AsyncMock()
    db.test_connection = AsyncMock(return_value=True)
    return db


@pytest.fixture
def item_store():
    return InMemoryItemRepository()


@pytest.fixture
def api_app(api_settings, mock_db, item_store):
    """API app with the database gate, pool and repository replaced"""
    with patch("services.api_service.app.main.wait_for_database", new=AsyncMock(return_value=1)):
        with patch("services.api_service.app.main.DatabaseManager", return_value=mock_db):
            with patch("services.api_service.app.main.ItemRepository", return_value=item_store):
                yield create_app(api_settings)


@pytest.fixture
def api_client(api_app):
    with TestClient(api_app) as client:
        yield client
