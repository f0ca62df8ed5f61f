from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    Integer, String, Text, Boolean, DateTime, ForeignKey, BigInteger, Numeric,
    CheckConstraint, UniqueConstraint, Enum as SAEnum,
)
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from storefront.db.session import Base


def utcnow() -> datetime:
    # naive UTC, matching the DateTime() columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    CAPTURED = "CAPTURED"
    REFUNDED = "REFUNDED"


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


# --- catalog ---

class Flavor(Base):
    __tablename__ = "flavors"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    image: Mapped[str | None] = mapped_column(String(1024), nullable=True)


class Weight(Base):
    __tablename__ = "weights"
    __table_args__ = (UniqueConstraint("value", "unit", name="uq_weights_value_unit"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    unit: Mapped[str] = mapped_column(String(8), nullable=False)

    @property
    def display(self) -> str:
        return f"{self.value}{self.unit}"


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(240), nullable=False)
    slug: Mapped[str] = mapped_column(String(240), unique=True, nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)

    variants = relationship("ProductVariant", back_populates="product",
                            cascade="all, delete-orphan", order_by="ProductVariant.id")
    flavor_options = relationship("ProductFlavorOption", back_populates="product",
                                  cascade="all, delete-orphan", order_by="ProductFlavorOption.position")
    weight_options = relationship("ProductWeightOption", back_populates="product",
                                  cascade="all, delete-orphan", order_by="ProductWeightOption.position")


class ProductFlavorOption(Base):
    __tablename__ = "product_flavor_options"
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), primary_key=True)
    flavor_id: Mapped[int] = mapped_column(ForeignKey("flavors.id", ondelete="RESTRICT"), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    product = relationship("Product", back_populates="flavor_options")
    flavor = relationship("Flavor")


class ProductWeightOption(Base):
    __tablename__ = "product_weight_options"
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), primary_key=True)
    weight_id: Mapped[int] = mapped_column(ForeignKey("weights.id", ondelete="RESTRICT"), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    product = relationship("Product", back_populates="weight_options")
    weight = relationship("Weight")


class ProductVariant(Base):
    __tablename__ = "product_variants"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_variant_quantity_non_negative"),
        CheckConstraint("sale_price_cents IS NULL OR sale_price_cents <= price_cents",
                        name="ck_variant_sale_le_price"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True)
    flavor_id: Mapped[int | None] = mapped_column(ForeignKey("flavors.id", ondelete="RESTRICT"), nullable=True)
    weight_id: Mapped[int | None] = mapped_column(ForeignKey("weights.id", ondelete="RESTRICT"), nullable=True)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    sale_price_cents: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)

    product = relationship("Product", back_populates="variants")
    flavor = relationship("Flavor")
    weight = relationship("Weight")
    images = relationship("VariantImage", back_populates="variant", cascade="all, delete-orphan")

    @property
    def effective_price_cents(self) -> int:
        return self.sale_price_cents if self.sale_price_cents is not None else self.price_cents


class VariantImage(Base):
    __tablename__ = "variant_images"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    variant_id: Mapped[int] = mapped_column(ForeignKey("product_variants.id", ondelete="CASCADE"))
    url: Mapped[str] = mapped_column(String(1024), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    variant = relationship("ProductVariant", back_populates="images")


class InventoryLog(Base):
    __tablename__ = "inventory_logs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    variant_id: Mapped[int] = mapped_column(Integer, index=True)
    quantity_change: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str] = mapped_column(String(32))  # sale | return | restock
    reference_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    previous_quantity: Mapped[int] = mapped_column(Integer)
    new_quantity: Mapped[int] = mapped_column(Integer)
    notes: Mapped[str] = mapped_column(String(255), default="")
    created_by: Mapped[str] = mapped_column(String(255), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)


# --- coupons ---

class Coupon(Base):
    __tablename__ = "coupons"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(255), default="")
    discount_type: Mapped[DiscountType] = mapped_column(SAEnum(DiscountType, native_enum=False, length=16))
    # percent (two decimal places) for PERCENTAGE, whole cents for FIXED_AMOUNT
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    min_order_cents: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, default=0)
    start_date: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)


# --- orders ---

class Order(Base):
    __tablename__ = "orders"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    user_email: Mapped[str] = mapped_column(String(255), index=True)
    status: Mapped[OrderStatus] = mapped_column(SAEnum(OrderStatus, native_enum=False, length=16),
                                                default=OrderStatus.PENDING, index=True)
    payment_status: Mapped[PaymentStatus] = mapped_column(SAEnum(PaymentStatus, native_enum=False, length=16),
                                                          default=PaymentStatus.PENDING)
    sub_total_cents: Mapped[int] = mapped_column(BigInteger)
    discount_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    total_cents: Mapped[int] = mapped_column(BigInteger)
    currency: Mapped[str] = mapped_column(String(3), default="INR")

    # coupon terms as applied at checkout
    coupon_id: Mapped[int | None] = mapped_column(ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)
    coupon_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    coupon_discount_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    coupon_discount_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # shipping address snapshot
    ship_name: Mapped[str] = mapped_column(String(120), default="")
    address_line1: Mapped[str] = mapped_column(String(255))
    address_line2: Mapped[str] = mapped_column(String(255), default="")
    city: Mapped[str] = mapped_column(String(120))
    state: Mapped[str] = mapped_column(String(120), default="")
    country: Mapped[str] = mapped_column(String(2))  # ISO2
    postcode: Mapped[str] = mapped_column(String(32))
    phone: Mapped[str] = mapped_column(String(32), default="")

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancelled_by_role: Mapped[str | None] = mapped_column(String(16), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, onupdate=utcnow)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan",
                         order_by="OrderItem.id")
    tracking = relationship("OrderTracking", back_populates="order", uselist=False,
                            cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"))
    product_id: Mapped[int] = mapped_column(Integer)
    variant_id: Mapped[int] = mapped_column(Integer, index=True)
    qty: Mapped[int] = mapped_column(Integer)
    unit_price_cents: Mapped[int] = mapped_column(BigInteger)
    subtotal_cents: Mapped[int] = mapped_column(BigInteger)
    title_snapshot: Mapped[str] = mapped_column(String(255))
    sku_snapshot: Mapped[str] = mapped_column(String(64))
    flavor_snapshot: Mapped[str | None] = mapped_column(String(120), nullable=True)
    weight_snapshot: Mapped[str | None] = mapped_column(String(32), nullable=True)

    order = relationship("Order", back_populates="items")


class OrderTracking(Base):
    __tablename__ = "order_tracking"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), unique=True)
    carrier: Mapped[str] = mapped_column(String(64), default="")
    tracking_number: Mapped[str] = mapped_column(String(64), default="")
    status: Mapped[str] = mapped_column(String(32), default="SHIPPED")
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)

    order = relationship("Order", back_populates="tracking")
    updates = relationship("TrackingUpdate", back_populates="tracking", cascade="all, delete-orphan",
                           order_by="TrackingUpdate.id")


class TrackingUpdate(Base):
    __tablename__ = "tracking_updates"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tracking_id: Mapped[int] = mapped_column(ForeignKey("order_tracking.id", ondelete="CASCADE"), index=True)
    status: Mapped[str] = mapped_column(String(32))
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)

    tracking = relationship("OrderTracking", back_populates="updates")
