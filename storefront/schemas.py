from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal
from datetime import datetime

from storefront.services.pricing import normalize_code

# --- catalog ---

class FlavorRead(BaseModel):
    id: int
    name: str
    image: Optional[str] = None
    class Config: from_attributes = True
class WeightRead(BaseModel):
    id: int
    value: int
    unit: str
    display: str
    class Config: from_attributes = True
class VariantImageRead(BaseModel):
    url: str
    is_primary: bool = False
    class Config: from_attributes = True
class VariantRead(BaseModel):
    id: int
    product_id: int
    sku: str
    flavor_id: Optional[int] = None
    weight_id: Optional[int] = None
    price_cents: int
    sale_price_cents: Optional[int] = None
    effective_price_cents: int
    quantity: int
    is_active: bool
    images: List[VariantImageRead] = []
    class Config: from_attributes = True
class CombinationRead(BaseModel):
    flavor_id: Optional[int] = None
    weight_id: Optional[int] = None
    variant_id: int
class SelectionRead(BaseModel):
    flavor_id: Optional[int] = None
    weight_id: Optional[int] = None
    variant: Optional[VariantRead] = None
class ProductDetail(BaseModel):
    id: int
    name: str
    slug: str
    description: str = ""
    is_purchasable: bool
    variants: List[VariantRead] = []
    flavor_options: List[FlavorRead] = []
    weight_options: List[WeightRead] = []
    available_combinations: List[CombinationRead] = []
    default_selection: SelectionRead
class ProductSummary(BaseModel):
    id: int
    name: str
    slug: str
    min_price_cents: Optional[int] = None
    is_purchasable: bool
    created_at: datetime

class SelectionRequest(BaseModel):
    flavor_id: Optional[int] = None
    weight_id: Optional[int] = None
    changed: Optional[Literal["flavor", "weight"]] = None

# --- coupons ---

class CouponVerify(BaseModel):
    code: str = Field(min_length=1)
    cart_total_cents: int = Field(ge=0)

    @field_validator("code")
    @classmethod
    def _upper(cls, v: str) -> str:
        return normalize_code(v) or v

class CouponVerifyResponse(BaseModel):
    valid: bool
    code: str
    discount_type: str
    discount_value: float
    discount_cents: int
    final_cents: int

# --- cart ---

class CartItemAdd(BaseModel):
    variant_id: int
    qty: int = Field(ge=1)
class CartItemUpdate(BaseModel):
    qty: int = Field(ge=0)
class CartItemRead(BaseModel):
    variant_id: int
    product_id: int
    qty: int
    unit_price_cents: int
    title: str
class CartRead(BaseModel):
    items: List[CartItemRead] = []
    subtotal_cents: int = 0

# --- orders ---

class ShippingAddress(BaseModel):
    full_name: str = ""
    address_line1: str
    address_line2: str | None = ""
    city: str
    state: str = ""
    country: str = Field(min_length=2, max_length=2)   # "IN", "US", etc
    postcode: str
    phone: str = ""

class CheckoutRequest(ShippingAddress):
    coupon_code: Optional[str] = None

    @field_validator("coupon_code")
    @classmethod
    def _upper(cls, v: Optional[str]) -> Optional[str]:
        return normalize_code(v)

class CheckoutResponse(BaseModel):
    order_id: int
    order_number: str
    status: str
    sub_total_cents: int
    discount_cents: int
    total_cents: int
    currency: str

class CancelRequest(BaseModel):
    reason: str = ""

class StatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None
    reason: Optional[str] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    location: Optional[str] = None

class TrackingUpdateRequest(BaseModel):
    status: str = Field(min_length=1)
    location: Optional[str] = None
    description: Optional[str] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None

class OrderItemRead(BaseModel):
    variant_id: int
    product_id: int
    qty: int
    unit_price_cents: int
    subtotal_cents: int
    title: str
    sku: str
    flavor: Optional[str] = None
    weight: Optional[str] = None
class TrackingUpdateRead(BaseModel):
    status: str
    location: Optional[str] = None
    description: Optional[str] = None
    timestamp: datetime
    class Config: from_attributes = True
class TrackingRead(BaseModel):
    carrier: str
    tracking_number: str
    status: str
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    updates: List[TrackingUpdateRead] = []
    class Config: from_attributes = True
class CouponTerms(BaseModel):
    code: str
    discount_type: Optional[str] = None
    discount_value: Optional[float] = None
class CancellationRead(BaseModel):
    reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancelled_by_role: Optional[str] = None
class OrderView(BaseModel):
    id: int
    order_number: str
    user_email: str
    status: str
    payment_status: str
    progress: int
    can_cancel: bool
    allowed_transitions: List[str] = []
    sub_total_cents: int
    discount_cents: int
    total_cents: int
    currency: str
    coupon: Optional[CouponTerms] = None
    shipping_address: ShippingAddress
    items: List[OrderItemRead] = []
    tracking: Optional[TrackingRead] = None
    cancellation: Optional[CancellationRead] = None
    notes: Optional[str] = None
    created_at: datetime
    delivered_at: Optional[datetime] = None
class OrderStatusRead(BaseModel):
    id: int
    status: str
    allowed_transitions: List[str] = []
class OrderPage(BaseModel):
    orders: List[OrderView] = []
    total: int
    limit: int
    offset: int
class OrderStats(BaseModel):
    since: datetime
    total_orders: int
    status_counts: dict[str, int] = {}
    revenue_cents: int
    average_order_cents: int

# --- inventory ---

class InventoryItem(BaseModel):
    variant_id: int
    qty: int = Field(ge=1)
class InventoryItemsReq(BaseModel):
    items: List[InventoryItem]
