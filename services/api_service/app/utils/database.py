"""
Database operations for the API service
"""

from typing import List, Optional, Tuple

import structlog

from shared.utils.database import DatabaseManager

from ..models.item import Item

logger = structlog.get_logger(__name__)

ITEMS_TABLE = "items"

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS items (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
]

SAMPLE_DATA = [
    "INSERT INTO items (name) VALUES ('Read the README'), ('Start the dev stack'), ('Build for production')",
]

INITIAL_SEED = "initial"


class ItemRepository:
    """Item storage on top of the shared connection pool"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def ensure_schema(self, seed: bool = True) -> bool:
        """Create tables; insert sample rows on the first-ever startup only"""
        return await self.db.apply_seed(INITIAL_SEED, SCHEMA_STATEMENTS, SAMPLE_DATA if seed else ())

    async def list_items(self, limit: int = 50, offset: int = 0) -> Tuple[List[Item], int]:
        """Get items with pagination"""
        async with self.db.get_pool().acquire() as conn:
            total = await conn.fetchval("SELECT COUNT(*) FROM items")
            rows = await conn.fetch(
                "SELECT id, name, created_at FROM items ORDER BY id LIMIT $1 OFFSET $2",
                limit, offset
            )
        return [Item(**dict(row)) for row in rows], total or 0

    async def get_item(self, item_id: int) -> Optional[Item]:
        """Get item by ID"""
        async with self.db.get_pool().acquire() as conn:
            row = await conn.fetchrow(
                "SELECT id, name, created_at FROM items WHERE id = $1", item_id
            )
        if row:
            return Item(**dict(row))
        return None

    async def create_item(self, name: str) -> Item:
        """Create a new item"""
        async with self.db.get_pool().acquire() as conn:
            row = await conn.fetchrow(
                "INSERT INTO items (name) VALUES ($1) RETURNING id, name, created_at", name
            )
        logger.info("Item created", item_id=row["id"])
        return Item(**dict(row))

    async def reset(self) -> None:
        """Destroy all stored items and the seed marker"""
        await self.db.drop_tables([ITEMS_TABLE])
