from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Optional


class ProductBase(BaseModel):
    """Base schema for Product with common attributes."""
    name: str = Field(..., min_length=1, max_length=255, description="Product name")
    price: float = Field(..., ge=0, allow_inf_nan=False, description="Unit price (must be non-negative)")
    stock: float = Field(..., ge=0, allow_inf_nan=False, description="Available stock in kg (must be non-negative)")
    category: Optional[str] = Field(None, max_length=100, description="Product category")


class ProductCreate(ProductBase):
    """Schema for creating a new product. The threshold defaults to DEFAULT_LOW_STOCK_THRESHOLD."""
    low_stock_threshold: Optional[float] = Field(
        None, ge=0, allow_inf_nan=False, description="Stock at or below this is low stock"
    )


class ProductUpdate(BaseModel):
    """Schema for an owner's update or restock. All fields are optional."""
    name: Optional[str] = Field(None, min_length=1, max_length=255, description="Product name")
    category: Optional[str] = Field(None, max_length=100, description="Product category")
    price: Optional[float] = Field(None, ge=0, allow_inf_nan=False, description="Unit price")
    stock: Optional[float] = Field(None, ge=0, allow_inf_nan=False, description="Available stock in kg")
    low_stock_threshold: Optional[float] = Field(
        None, ge=0, allow_inf_nan=False, description="Low-stock threshold in kg"
    )


class ProductResponse(ProductBase):
    """Schema for product response including all fields."""
    id: int
    owner_id: int
    low_stock_threshold: float
    low_stock_since_date: Optional[datetime] = None
    image_paths: list[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProductListResponse(BaseModel):
    """Schema for paginated product list response."""
    items: list[ProductResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class LowStockProductsResponse(BaseModel):
    """Schema for a villager's low-stock products, oldest low-stock episode first."""
    products: list[ProductResponse]
