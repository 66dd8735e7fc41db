from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .domain.services import AllocationEntry, AllocationPlan, remaining_emergency, remaining_normal
from .models import AvailableDate, Cart, CartItem, Order, OrderSlotAllocation, OrderStatus, PaymentStatus, SlotType
from .utils.time import to_utc_date


class AvailableDateRead(BaseModel):
    date_id: int
    day: date
    normal_slots: int
    emergency_slots: int
    normal_booked_slots: int
    emergency_booked_slots: int
    remaining_normal: int
    remaining_emergency: int
    emergency_slot_cost: Decimal
    is_available: bool

    @classmethod
    def from_db(cls, *, row: AvailableDate) -> "AvailableDateRead":
        return cls(
            date_id=row.id,
            day=row.day,
            normal_slots=row.normal_slots,
            emergency_slots=row.emergency_slots,
            normal_booked_slots=row.normal_booked_slots,
            emergency_booked_slots=row.emergency_booked_slots,
            remaining_normal=remaining_normal(row),
            remaining_emergency=remaining_emergency(row),
            emergency_slot_cost=row.emergency_slot_cost,
            is_available=row.is_available,
        )


class AvailableDateUpsert(BaseModel):
    day: date
    normal_slots: int = Field(default=4, ge=0)
    emergency_slots: int = Field(default=1, ge=0)
    emergency_slot_cost: Decimal = Field(default=Decimal("0"), ge=0)
    is_available: bool = True


class AvailableDateBulkUpsert(BaseModel):
    days: List[AvailableDateUpsert] = Field(min_length=1)


class MonthDefaults(BaseModel):
    year: int = Field(ge=2000, le=9999)
    month: int = Field(ge=1, le=12)
    normal_slots: int = Field(default=4, ge=0)
    emergency_slots: int = Field(default=1, ge=0)
    emergency_slot_cost: Decimal = Field(default=Decimal("0"), ge=0)
    is_available: bool = True


class PurgeResult(BaseModel):
    deleted: int


class CartItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(ge=1, le=10)
    # First entry is the primary date; the rest are additional dates in selection order.
    dates: List[datetime | date] = Field(min_length=1)
    slot_type: SlotType = SlotType.NORMAL
    clothes_provided: bool = False
    material: Optional[str] = None
    size: Optional[str] = None
    special_notes: Optional[str] = None

    @field_validator("dates")
    @classmethod
    def _normalize_dates(cls, value: List[datetime | date]) -> List[date]:
        return [to_utc_date(item) for item in value]


class AllocationEntryRead(BaseModel):
    day: date
    normal_slots_used: int
    emergency_slots_used: int
    total_slots_used: int
    emergency_slot_cost: Decimal

    @classmethod
    def from_entry(cls, entry: AllocationEntry | OrderSlotAllocation) -> "AllocationEntryRead":
        return cls(
            day=entry.day,
            normal_slots_used=entry.normal_slots_used,
            emergency_slots_used=entry.emergency_slots_used,
            total_slots_used=entry.normal_slots_used + entry.emergency_slots_used,
            emergency_slot_cost=entry.emergency_slot_cost,
        )


class PlanRead(BaseModel):
    quantity: int
    slot_type: SlotType
    allocation: List[AllocationEntryRead]
    normal_slots_total: int
    emergency_slots_total: int
    missing: int
    complete: bool
    unit_price: Decimal
    normal_slots_cost: Decimal
    emergency_slots_cost: Decimal
    emergency_charges: Decimal
    total_price: Decimal

    @classmethod
    def from_plan(cls, plan: AllocationPlan) -> "PlanRead":
        return cls(
            quantity=plan.quantity,
            slot_type=plan.slot_type,
            allocation=[AllocationEntryRead.from_entry(entry) for entry in plan.allocation],
            normal_slots_total=plan.normal_slots_total,
            emergency_slots_total=plan.emergency_slots_total,
            missing=plan.missing,
            complete=plan.complete,
            unit_price=plan.unit_price,
            normal_slots_cost=plan.normal_slots_cost,
            emergency_slots_cost=plan.emergency_slots_cost,
            emergency_charges=plan.emergency_charges,
            total_price=plan.total_price,
        )


class CartItemRead(BaseModel):
    item_id: int
    product_id: int
    quantity: int
    slot_type: SlotType
    clothes_provided: bool
    material: Optional[str]
    size: Optional[str]
    special_notes: Optional[str]
    selected_dates: List[str]
    allocation: List[AllocationEntryRead]
    normal_slots_total: int
    emergency_slots_total: int
    base_price: Decimal
    emergency_charges: Decimal
    total_price: Decimal

    @classmethod
    def from_db(cls, *, item: CartItem) -> "CartItemRead":
        return cls(
            item_id=item.id,
            product_id=item.product_id,
            quantity=item.quantity,
            slot_type=item.slot_type,
            clothes_provided=item.clothes_provided,
            material=item.material,
            size=item.size,
            special_notes=item.special_notes,
            selected_dates=list(item.selected_dates),
            allocation=[AllocationEntryRead.from_entry(entry) for entry in item.allocations],
            normal_slots_total=item.normal_slots_total,
            emergency_slots_total=item.emergency_slots_total,
            base_price=item.base_price,
            emergency_charges=item.emergency_charges,
            total_price=item.total_price,
        )


class CartRead(BaseModel):
    cart_id: int
    user_id: str
    delivery_address: Optional[str]
    items: List[CartItemRead]
    total_price: Decimal

    @classmethod
    def from_db(cls, *, cart: Cart) -> "CartRead":
        return cls(
            cart_id=cart.id,
            user_id=cart.user_id,
            delivery_address=cart.delivery_address,
            items=[CartItemRead.from_db(item=item) for item in cart.items],
            total_price=sum((item.total_price for item in cart.items), Decimal("0.00")),
        )


class DeliveryAddressUpdate(BaseModel):
    delivery_address: str = Field(min_length=1, max_length=2000)


class CartValidationRead(BaseModel):
    valid: bool
    item_count: int


class CheckoutRequest(BaseModel):
    payment_method_id: Optional[str] = Field(default=None, max_length=128)


class CheckoutRead(BaseModel):
    order_ids: List[int]
    gateway_order_id: str
    amount: Decimal
    currency: str
    item_count: int


class PaymentVerify(BaseModel):
    order_ids: List[int] = Field(min_length=1)
    gateway_order_id: str = Field(min_length=1)
    payment_id: str = Field(min_length=1)
    signature: str = Field(min_length=1)


class PaymentFailure(BaseModel):
    order_ids: List[int] = Field(min_length=1)
    reason: str = Field(default="payment failed", max_length=500)


class PaymentFailureRead(BaseModel):
    cancelled: int


class OrderRead(BaseModel):
    order_id: int
    order_number: str
    user_id: str
    product_id: int
    quantity: int
    slot_type: SlotType
    clothes_provided: bool
    material: Optional[str]
    size: Optional[str]
    special_notes: Optional[str]
    delivery_address: str
    selected_dates: List[str]
    slot_allocation: List[AllocationEntryRead]
    normal_slots_total: int
    emergency_slots_total: int
    base_price: Decimal
    normal_slots_cost: Decimal
    emergency_slots_cost: Decimal
    emergency_charges: Decimal
    total_price: Decimal
    status: OrderStatus
    payment_status: PaymentStatus
    gateway_order_id: Optional[str]
    cancellation_reason: Optional[str]
    created_at: datetime

    @classmethod
    def from_db(cls, *, order: Order) -> "OrderRead":
        return cls(
            order_id=order.id,
            order_number=f"#{str(order.id)[-8:].upper()}",
            user_id=order.user_id,
            product_id=order.product_id,
            quantity=order.quantity,
            slot_type=order.slot_type,
            clothes_provided=order.clothes_provided,
            material=order.material,
            size=order.size,
            special_notes=order.special_notes,
            delivery_address=order.delivery_address,
            selected_dates=list(order.selected_dates),
            slot_allocation=[AllocationEntryRead.from_entry(entry) for entry in order.slot_allocation],
            normal_slots_total=order.normal_slots_total,
            emergency_slots_total=order.emergency_slots_total,
            base_price=order.base_price,
            normal_slots_cost=order.normal_slots_cost,
            emergency_slots_cost=order.emergency_slots_cost,
            emergency_charges=order.emergency_charges,
            total_price=order.total_price,
            status=order.status,
            payment_status=order.payment_status,
            gateway_order_id=order.gateway_order_id,
            cancellation_reason=order.cancellation_reason,
            created_at=order.created_at,
        )


class PaymentVerificationRead(BaseModel):
    confirmed: bool
    orders: List[OrderRead]


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class PaymentConfirm(BaseModel):
    payment_reference: str = Field(min_length=1, max_length=64)
