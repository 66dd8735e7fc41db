from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import AsyncContextManager, Iterable, Optional, Protocol, Sequence

from ..models import AvailableDate, Cart, CartItem, Order, OrderStatus


class AvailabilityLedger(Protocol):
    """Per-day capacity rows. ``increment_booked`` is the only writer of booked counts."""

    async def get_day(self, day: date) -> AvailableDate | None: ...

    async def get_days(self, days: Iterable[date]) -> dict[date, AvailableDate]: ...

    async def list_range(
        self,
        start: date,
        end: date | None,
        *,
        only_available: bool,
    ) -> list[AvailableDate]: ...

    async def increment_booked(self, date_id: int, *, normal: int, emergency: int) -> AvailableDate: ...

    def atomic(self) -> AsyncContextManager[None]: ...

    async def upsert(
        self,
        day: date,
        *,
        normal_slots: int,
        emergency_slots: int,
        emergency_slot_cost: Decimal,
        is_available: bool,
    ) -> AvailableDate: ...

    async def purge_before(self, day: date) -> int: ...


@dataclass(frozen=True)
class ProductPricing:
    product_id: int
    base_price: Decimal
    cloth_provided_discount: Decimal = Decimal("0")
    materials: dict[str, Decimal] = field(default_factory=dict)


class Catalog(Protocol):
    async def get_pricing(self, product_id: int) -> ProductPricing | None: ...


class CartRepository(Protocol):
    async def get(self, user_id: str) -> Cart | None: ...

    async def get_or_create(self, user_id: str) -> Cart: ...

    async def add_item(self, cart: Cart, item: CartItem) -> CartItem: ...

    async def remove_item(self, cart: Cart, item_id: int) -> bool: ...

    async def clear(self, user_id: str) -> None: ...

    async def set_delivery_address(self, cart: Cart, address: str) -> Cart: ...


class OrderRepository(Protocol):
    async def create(self, order: Order) -> Order: ...

    async def save(self, order: Order) -> Order: ...

    async def get(self, order_id: int) -> Order | None: ...

    async def get_for_user(self, order_id: int, user_id: str) -> Order | None: ...

    async def list_by_user(self, user_id: str) -> list[Order]: ...

    async def list_all(self, *, status: OrderStatus | None = None) -> list[Order]: ...

    async def list_for_user_by_ids(self, order_ids: Sequence[int], user_id: str) -> list[Order]: ...

    async def mark_paid(self, order_id: int, *, payment_id: str, signature: str | None) -> bool: ...

    async def mark_paid_after_cancel(self, order_id: int, *, payment_id: str, signature: str | None) -> bool: ...

    async def cancel_pending(self, order_ids: Sequence[int], *, reason: str) -> int: ...

    async def set_status(self, order: Order, status: OrderStatus) -> Order: ...


class PaymentGateway(Protocol):
    async def create_order(
        self,
        *,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Optional[dict[str, str]] = None,
    ) -> str: ...


@dataclass(frozen=True)
class OrderConfirmation:
    order_id: int
    order_number: str
    user_id: str
    quantity: int
    total_price: Decimal
    delivery_dates: list[str]
    status: str


class Notifier(Protocol):
    async def send_order_confirmation(self, confirmation: OrderConfirmation) -> None: ...

    async def send_order_status_update(self, confirmation: OrderConfirmation, *, previous_status: str) -> None: ...
