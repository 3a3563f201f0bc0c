"""
Item routes
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
import structlog

from ..models.item import Item, ItemCreate, ItemListResponse
from ..utils.database import ItemRepository

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_items(request: Request) -> ItemRepository:
    return request.app.state.items


@router.get("", response_model=ItemListResponse)
async def list_items(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    items: ItemRepository = Depends(get_items),
):
    """List items"""
    rows, total = await items.list_items(limit=limit, offset=offset)
    return ItemListResponse(items=rows, total=total, limit=limit, offset=offset)


@router.post("", response_model=Item, status_code=status.HTTP_201_CREATED)
async def create_item(payload: ItemCreate, items: ItemRepository = Depends(get_items)):
    """Create an item"""
    return await items.create_item(payload.name)


@router.get("/{item_id}", response_model=Item)
async def get_item(item_id: int, items: ItemRepository = Depends(get_items)):
    """Get a single item"""
    item = await items.get_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return item
