from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Optional

from sqlalchemy import JSON, CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, Boolean, Date, DateTime, Integer, Numeric, String, Text

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer, "sqlite")
Money = Numeric(12, 2)


class Base(DeclarativeBase):
    pass


class SlotType(StrEnum):
    NORMAL = "normal"
    EMERGENCY = "emergency"


class OrderStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NEEDS_COMPENSATION = "needs_compensation"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


def _enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
    )


class AvailableDate(Base):
    __tablename__ = "available_dates"
    __table_args__ = (
        UniqueConstraint("day", name="uq_available_dates_day"),
        CheckConstraint("normal_slots >= 0", name="chk_ad_normal_slots"),
        CheckConstraint("emergency_slots >= 0", name="chk_ad_emergency_slots"),
        CheckConstraint("emergency_slot_cost >= 0", name="chk_ad_emergency_cost"),
        CheckConstraint(
            "normal_booked_slots >= 0 AND normal_booked_slots <= normal_slots",
            name="chk_ad_normal_booked",
        ),
        CheckConstraint(
            "emergency_booked_slots >= 0 AND emergency_booked_slots <= emergency_slots",
            name="chk_ad_emergency_booked",
        ),
        Index("idx_ad_available_day", "is_available", "day"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    normal_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    emergency_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    normal_booked_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emergency_booked_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emergency_slot_cost: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    cloth_provided_discount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    materials: Mapped[list["ProductMaterial"]] = relationship(back_populates="product", lazy="selectin")


class ProductMaterial(Base):
    __tablename__ = "product_materials"
    __table_args__ = (UniqueConstraint("product_id", "name", name="uq_product_material"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    additional_cost: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    product: Mapped["Product"] = relationship(back_populates="materials")


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (UniqueConstraint("user_id", name="uq_carts_user"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    items: Mapped[list["CartItem"]] = relationship(
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
        lazy="selectin",
    )


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="chk_ci_quantity"),
        CheckConstraint(
            "normal_slots_total + emergency_slots_total = quantity",
            name="chk_ci_slots_cover_quantity",
        ),
        Index("idx_ci_cart", "cart_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    cart_id: Mapped[int] = mapped_column(ForeignKey("carts.id"), nullable=False)
    product_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    slot_type: Mapped[SlotType] = mapped_column(_enum(SlotType), nullable=False)
    clothes_provided: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    material: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    size: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    special_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    selected_dates: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    normal_slots_total: Mapped[int] = mapped_column(Integer, nullable=False)
    emergency_slots_total: Mapped[int] = mapped_column(Integer, nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    normal_slots_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    emergency_slots_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    emergency_charges: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    cart: Mapped["Cart"] = relationship(back_populates="items")
    allocations: Mapped[list["CartItemAllocation"]] = relationship(
        back_populates="cart_item",
        cascade="all, delete-orphan",
        order_by="CartItemAllocation.position",
        lazy="selectin",
    )


class CartItemAllocation(Base):
    """Per-date slot counts produced by the planner when the item was added."""

    __tablename__ = "cart_item_allocations"
    __table_args__ = (
        CheckConstraint("normal_slots_used >= 0", name="chk_cia_normal"),
        CheckConstraint("emergency_slots_used >= 0", name="chk_cia_emergency"),
        UniqueConstraint("cart_item_id", "position", name="uq_cia_position"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    cart_item_id: Mapped[int] = mapped_column(ForeignKey("cart_items.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    normal_slots_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emergency_slots_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emergency_slot_cost: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    cart_item: Mapped["CartItem"] = relationship(back_populates="allocations")


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="chk_orders_quantity"),
        CheckConstraint("total_price >= 0", name="chk_orders_total"),
        Index("idx_orders_user", "user_id"),
        Index("idx_orders_gateway", "gateway_order_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    product_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    slot_type: Mapped[SlotType] = mapped_column(_enum(SlotType), nullable=False)
    clothes_provided: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    material: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    size: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    special_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_address: Mapped[str] = mapped_column(Text, nullable=False)
    selected_dates: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    normal_slots_total: Mapped[int] = mapped_column(Integer, nullable=False)
    emergency_slots_total: Mapped[int] = mapped_column(Integer, nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    normal_slots_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    emergency_slots_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    emergency_charges: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    payment_method_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    gateway_order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    gateway_signature: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    status: Mapped[OrderStatus] = mapped_column(_enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING
    )
    payment_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    slot_allocation: Mapped[list["OrderSlotAllocation"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderSlotAllocation.position",
        lazy="selectin",
    )


class OrderSlotAllocation(Base):
    """Frozen copy of a ledger row plus the slots this order takes from it.

    ``date_id`` is not a foreign key: past ledger rows get purged
    while orders are kept forever.
    """

    __tablename__ = "order_slot_allocations"
    __table_args__ = (
        CheckConstraint("normal_slots_used >= 0", name="chk_osa_normal"),
        CheckConstraint("emergency_slots_used >= 0", name="chk_osa_emergency"),
        CheckConstraint(
            "total_slots_used = normal_slots_used + emergency_slots_used",
            name="chk_osa_total",
        ),
        Index("idx_osa_order", "order_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    date_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    normal_slots: Mapped[int] = mapped_column(Integer, nullable=False)
    emergency_slots: Mapped[int] = mapped_column(Integer, nullable=False)
    normal_booked_slots: Mapped[int] = mapped_column(Integer, nullable=False)
    emergency_booked_slots: Mapped[int] = mapped_column(Integer, nullable=False)
    emergency_slot_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False)
    normal_slots_used: Mapped[int] = mapped_column(Integer, nullable=False)
    emergency_slots_used: Mapped[int] = mapped_column(Integer, nullable=False)
    total_slots_used: Mapped[int] = mapped_column(Integer, nullable=False)

    order: Mapped["Order"] = relationship(back_populates="slot_allocation")
