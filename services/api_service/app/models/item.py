"""
Item models
A minimal resource that exercises the database through the router
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class ItemCreate(BaseModel):
    """Schema for creating an item"""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={"example": {"name": "Buy milk"}}
    )

    name: str = Field(..., min_length=1, max_length=200, description="Item name")


class Item(BaseModel):
    """Stored item"""
    id: int
    name: str
    created_at: datetime


class ItemListResponse(BaseModel):
    """Paginated item list"""
    items: List[Item]
    total: int
    limit: int
    offset: int
