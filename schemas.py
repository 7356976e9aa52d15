"""
Database Schemas for the Storefront

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercased class name, snake_cased
(RefreshToken -> "refresh_token", StockHistory -> "stock_history").
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Role = Literal["ADMIN", "USER"]
OrderStatus = Literal["pending", "paid", "processing", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "expired", "refunded"]
PaymentMethod = Literal["bank_transfer", "ewallet", "cod"]
StockChangeType = Literal["PURCHASE", "RELEASE", "REFUND", "ADJUSTMENT", "RESTOCK"]


class User(BaseModel):
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address, unique")
    password_hash: str = Field(..., description="salt$digest")
    role: Role = Field("USER")


class Product(BaseModel):
    name: str = Field(..., description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    price: float = Field(..., ge=0, description="Unit price in IDR")
    stock: int = Field(0, ge=0, description="Stock for orders placed without a variant")
    category: Optional[str] = Field(None, description="Product category")
    images: List[str] = Field(default_factory=list)


class Variant(BaseModel):
    product_id: str
    name: str = Field(..., description="Option label, e.g. a size")
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0, description="Independent of the parent product's stock")


class OrderItem(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    name: str
    price: float
    quantity: int = Field(..., ge=1)


class ShippingDetails(BaseModel):
    name: str
    email: str
    phone: str
    address: str
    city: str
    postal_code: str


class Order(BaseModel):
    user_id: Optional[str] = None
    items: List[OrderItem]
    total: float
    shipping_details: ShippingDetails
    payment_method: PaymentMethod = "bank_transfer"
    status: OrderStatus = "pending"
    payment_status: PaymentStatus = "pending"
    payment_token: Optional[str] = None
    payment_redirect_url: Optional[str] = None
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None


class RefreshToken(BaseModel):
    token: str
    user_id: str
    expires_at: datetime


class StockHistory(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    type: StockChangeType
    quantity: int = Field(..., description="Signed change applied to the counter")
    previous_stock: int
    new_stock: int
    reason: str
    order_id: Optional[str] = None


class ApiModel(BaseModel):
    """Base for request bodies: accepts camelCase (as sent by the storefront
    client) as well as snake_case field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
