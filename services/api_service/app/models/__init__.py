from .item import Item, ItemCreate, ItemListResponse

__all__ = ["Item", "ItemCreate", "ItemListResponse"]
