"""
Database Schemas for Hijabi Inoor

Each Pydantic model represents a MongoDB collection. The collection name is the
lowercased class name (e.g., Product -> "product"). Embedded models (cart lines,
order lines, addresses) are stored inside their parent document.
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

ProductCategory = Literal["hijabs", "abayas", "ensemble", "boxes-cadeau"]
DiscountType = Literal["percentage", "fixed"]
OrderStatus = Literal["pending", "paid", "confirmed", "processing", "shipped", "delivered", "cancelled", "refunded"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded", "cancelled"]
PaymentMethod = Literal["sumup", "whatsapp"]
CheckoutState = Literal["pending", "success", "failed"]


def _as_utc(v: Optional[datetime]) -> Optional[datetime]:
    # MongoDB hands back naive UTC datetimes unless the client is tz aware
    if isinstance(v, datetime) and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


# Catalog

class Category(BaseModel):
    id: Optional[str] = None
    slug: ProductCategory
    name: str
    description: Optional[str] = None
    image: Optional[str] = None
    is_active: bool = True
    display_order: int = 0


class Subcategory(BaseModel):
    id: Optional[str] = None
    slug: str
    name: str
    name_fr: Optional[str] = None
    category_id: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    display_order: int = 0


class Product(BaseModel):
    id: Optional[str] = None
    sku: Optional[str] = None
    slug: Optional[str] = None
    name: str
    name_ar: str = ""
    name_fr: str = ""
    name_it: str = ""
    name_es: str = ""
    description: str = ""
    description_ar: str = ""
    description_fr: str = ""
    description_it: str = ""
    description_es: str = ""
    price: float = Field(..., ge=0, description="Unit price in EUR")
    original_price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None
    images: List[str] = Field(default_factory=list, max_length=3)
    category: ProductCategory
    subcategory: Optional[str] = None
    colors: List[str] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)
    stock_quantity: Optional[int] = None
    in_stock: bool = True
    is_new: bool = False
    new_arrival: bool = False
    is_best_seller: bool = False
    is_on_sale: bool = False
    is_featured: bool = False
    rating: float = Field(0, ge=0, le=5)
    review_count: int = 0
    tags: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None


# Cart

class CartItem(BaseModel):
    id: str = Field(..., description="<product_id>-<color>-<size>")
    product: Product
    quantity: int = Field(1, ge=1)
    selected_color: str = ""
    selected_size: str = ""


class Cart(BaseModel):
    session_id: str
    items: List[CartItem] = Field(default_factory=list)
    promotion_code: Optional[str] = None


# Promotions

class Promotion(BaseModel):
    id: Optional[str] = None
    name: str
    code: Optional[str] = None
    description: str = ""
    discount_type: DiscountType
    discount_value: float = Field(..., ge=0)
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    min_purchase_amount: Optional[float] = Field(None, ge=0)
    max_discount_amount: Optional[float] = Field(None, ge=0)
    applicable_categories: Optional[List[str]] = None
    applicable_products: Optional[List[str]] = None
    usage_limit: Optional[int] = Field(None, ge=0)
    usage_count: int = 0

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v):
        if v is None:
            return None
        v = v.strip().upper()
        return v or None

    @field_validator("start_date", "end_date")
    @classmethod
    def ensure_utc(cls, v):
        return _as_utc(v)

    @property
    def is_automatic(self) -> bool:
        return not self.code


class AppliedPromotion(BaseModel):
    promotion: Promotion
    discount_amount: float


# Orders

class CustomerInfo(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None


class ShippingAddress(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class OrderItem(BaseModel):
    product_id: str
    product_name: str
    product_image: Optional[str] = None
    quantity: int = Field(..., ge=1)
    unit_price: float
    total_price: float
    selected_color: Optional[str] = None
    selected_size: Optional[str] = None


class Order(BaseModel):
    id: Optional[str] = None
    reference: str
    customer_email: Optional[EmailStr] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address: Optional[ShippingAddress] = None
    items: List[OrderItem]
    subtotal: float = Field(..., ge=0)
    discount_amount: float = Field(0, ge=0)
    promotion_id: Optional[str] = None
    promotion_code: Optional[str] = None
    shipping_cost: float = Field(0, ge=0)
    total: float = Field(..., ge=0)
    currency: str = "EUR"
    status: OrderStatus = "pending"
    payment_method: PaymentMethod
    payment_status: PaymentStatus = "pending"
    tracking_number: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CheckoutSession(BaseModel):
    """
    In-flight card payment. Holds the frozen order draft until the processor
    reports the checkout as paid; no order exists before that.
    """
    id: Optional[str] = None
    reference: str
    session_id: str
    checkout_id: Optional[str] = None
    redirect_url: Optional[str] = None
    order: Order
    state: CheckoutState = "pending"
    processor_status: Optional[str] = None
    order_id: Optional[str] = None
