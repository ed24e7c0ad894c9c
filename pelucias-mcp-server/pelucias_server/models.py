"""Data models for the UP Pelúcias storefront."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


class Product(BaseModel):
    """Represents a product from the catalog table."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Product ID")
    name: str = Field(description="Product name")
    price: Decimal = Field(ge=0, description="Product price in BRL")
    category: str = Field(description="Top-level category")
    subcategory: Optional[str] = Field(None, description="Subcategory inside the category")
    images: list[str] = Field(default_factory=list, description="Image URLs, first one is the cover")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")


class CartItem(BaseModel):
    """Represents an entry of the persisted cart snapshot."""

    product: Product
    quantity: int = Field(gt=0, description="Quantity of the product")


class CartSnapshot(BaseModel):
    """Ordered cart entries as written to the durable store."""

    items: list[CartItem] = Field(default_factory=list, description="Cart entries in insertion order")


class CartLine(BaseModel):
    """Represents a cart entry with its computed subtotal."""

    product: Product
    quantity: int
    subtotal: Decimal = Field(description="Price times quantity")


class Cart(BaseModel):
    """Represents the shopping cart as shown to clients."""

    items: list[CartLine] = Field(default_factory=list, description="Cart lines")
    total: Decimal = Field(default=Decimal("0"), description="Total cart value")
    item_count: int = Field(default=0, description="Total number of items")
    is_open: bool = Field(default=False, description="Whether the cart drawer is open")


class FilterSelection(BaseModel):
    """Current category, subcategory and search selection."""

    model_config = ConfigDict(frozen=True)

    category: Optional[str] = None
    subcategory: Optional[str] = None
    search_term: str = ""

    @model_validator(mode="after")
    def _subcategory_needs_category(self) -> "FilterSelection":
        if self.category is None and self.subcategory is not None:
            raise ValueError("A subcategory cannot be selected without its category")
        return self
