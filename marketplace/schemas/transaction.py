from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Optional


class PurchaseRequest(BaseModel):
    """Schema for buying a product."""
    quantity: float = Field(..., gt=0, allow_inf_nan=False, description="Quantity to purchase in kg")


class PurchasedProduct(BaseModel):
    """Product state right after a purchase."""
    id: int
    name: str
    stock: float
    low_stock_threshold: float
    low_stock_since_date: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PurchaseResponse(BaseModel):
    """Schema for purchase response."""
    message: str
    product: PurchasedProduct
    low_stock_alert: bool


class TransactionResponse(BaseModel):
    """Schema for a recorded sale."""
    id: int
    product_id: int
    buyer_id: int
    buyer_email: Optional[str] = None
    quantity_sold: float
    date_of_sale: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionHistoryResponse(BaseModel):
    """Schema for a product's sales, most recent first."""
    transactions: list[TransactionResponse]
