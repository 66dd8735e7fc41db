from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import AsyncIterator, Iterable, List, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import CapacityExceededError, DateUnavailableError
from ..domain.repositories import (
    AvailabilityLedger,
    CartRepository,
    Catalog,
    OrderRepository,
    ProductPricing,
)
from ..models import AvailableDate, Cart, CartItem, Order, OrderStatus, PaymentStatus, Product, SlotType
from ..utils.time import utc_now_naive


class SqlAlchemyAvailabilityLedger(AvailabilityLedger):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_day(self, day: date) -> AvailableDate | None:
        stmt = select(AvailableDate).where(AvailableDate.day == day).execution_options(populate_existing=True)
        result = await self.session.scalar(stmt)
        return result if isinstance(result, AvailableDate) else None

    async def get_days(self, days: Iterable[date]) -> dict[date, AvailableDate]:
        wanted = set(days)
        if not wanted:
            return {}
        # Always re-read: checkout must compare against current counters, not an identity-map copy.
        stmt = (
            select(AvailableDate)
            .where(AvailableDate.day.in_(wanted))
            .execution_options(populate_existing=True)
        )
        rows = await self.session.scalars(stmt)
        return {row.day: row for row in rows}

    async def list_range(
        self,
        start: date,
        end: date | None,
        *,
        only_available: bool,
    ) -> List[AvailableDate]:
        stmt = select(AvailableDate).where(AvailableDate.day >= start).order_by(AvailableDate.day)
        if end is not None:
            stmt = stmt.where(AvailableDate.day <= end)
        if only_available:
            stmt = stmt.where(AvailableDate.is_available.is_(True))
        rows = await self.session.scalars(stmt)
        return list(rows)

    async def increment_booked(self, date_id: int, *, normal: int, emergency: int) -> AvailableDate:
        if normal < 0 or emergency < 0:
            raise ValueError("booked counts only grow through increment_booked")
        stmt = (
            update(AvailableDate)
            .where(
                AvailableDate.id == date_id,
                AvailableDate.is_available.is_(True),
                AvailableDate.normal_booked_slots + normal <= AvailableDate.normal_slots,
                AvailableDate.emergency_booked_slots + emergency <= AvailableDate.emergency_slots,
            )
            .values(
                normal_booked_slots=AvailableDate.normal_booked_slots + normal,
                emergency_booked_slots=AvailableDate.emergency_booked_slots + emergency,
                updated_at=utc_now_naive(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        row = await self.session.get(AvailableDate, date_id, populate_existing=True)
        if result.rowcount == 1 and row is not None:
            return row
        if row is None:
            raise DateUnavailableError(date_id=date_id)
        if not row.is_available:
            raise DateUnavailableError(row.day, date_id=row.id)
        if row.normal_booked_slots + normal > row.normal_slots:
            raise CapacityExceededError(row.id, SlotType.NORMAL.value, row.normal_slots, row.normal_booked_slots, normal)
        raise CapacityExceededError(
            row.id, SlotType.EMERGENCY.value, row.emergency_slots, row.emergency_booked_slots, emergency
        )

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        async with self.session.begin_nested():
            yield

    async def upsert(
        self,
        day: date,
        *,
        normal_slots: int,
        emergency_slots: int,
        emergency_slot_cost: Decimal,
        is_available: bool,
    ) -> AvailableDate:
        now = utc_now_naive()
        row = await self.get_day(day)
        if row is None:
            row = AvailableDate(
                day=day,
                normal_booked_slots=0,
                emergency_booked_slots=0,
                created_at=now,
            )
            self.session.add(row)
        elif normal_slots < row.normal_booked_slots or emergency_slots < row.emergency_booked_slots:
            raise ValueError(f"capacity for {day.isoformat()} cannot drop below booked slots")
        row.normal_slots = normal_slots
        row.emergency_slots = emergency_slots
        row.emergency_slot_cost = emergency_slot_cost
        row.is_available = is_available
        row.updated_at = now
        await self.session.flush()
        return row

    async def purge_before(self, day: date) -> int:
        result = await self.session.execute(
            delete(AvailableDate).where(AvailableDate.day < day).execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)


class SqlAlchemyCatalog(Catalog):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_pricing(self, product_id: int) -> ProductPricing | None:
        product = await self.session.get(Product, product_id)
        if product is None or not product.is_active:
            return None
        return ProductPricing(
            product_id=product.id,
            base_price=product.base_price,
            cloth_provided_discount=product.cloth_provided_discount,
            materials={m.name: m.additional_cost for m in product.materials if m.is_available},
        )


class SqlAlchemyCartRepository(CartRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: str) -> Cart | None:
        result = await self.session.scalar(select(Cart).where(Cart.user_id == user_id))
        return result if isinstance(result, Cart) else None

    async def get_or_create(self, user_id: str) -> Cart:
        cart = await self.get(user_id)
        if cart is not None:
            return cart
        now = utc_now_naive()
        cart = Cart(user_id=user_id, items=[], created_at=now, updated_at=now)
        self.session.add(cart)
        await self.session.flush()
        return cart

    async def add_item(self, cart: Cart, item: CartItem) -> CartItem:
        cart.items.append(item)
        cart.updated_at = utc_now_naive()
        await self.session.flush()
        return item

    async def remove_item(self, cart: Cart, item_id: int) -> bool:
        item = next((i for i in cart.items if i.id == item_id), None)
        if item is None:
            return False
        cart.items.remove(item)
        cart.updated_at = utc_now_naive()
        await self.session.flush()
        return True

    async def clear(self, user_id: str) -> None:
        cart = await self.get(user_id)
        if cart is None:
            return
        cart.items.clear()
        cart.updated_at = utc_now_naive()
        await self.session.flush()

    async def set_delivery_address(self, cart: Cart, address: str) -> Cart:
        cart.delivery_address = address
        cart.updated_at = utc_now_naive()
        await self.session.flush()
        return cart


class SqlAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, order: Order) -> Order:
        self.session.add(order)
        await self.session.flush()
        return order

    async def save(self, order: Order) -> Order:
        order.updated_at = utc_now_naive()
        self.session.add(order)
        await self.session.flush()
        return order

    async def get(self, order_id: int) -> Optional[Order]:
        stmt = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Order) else None

    async def get_for_user(self, order_id: int, user_id: str) -> Optional[Order]:
        stmt = select(Order).where(Order.id == order_id, Order.user_id == user_id)
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Order) else None

    async def list_by_user(self, user_id: str) -> List[Order]:
        stmt = select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc(), Order.id.desc())
        rows = await self.session.scalars(stmt)
        return list(rows)

    async def list_all(self, *, status: Optional[OrderStatus] = None) -> List[Order]:
        stmt = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
        if status is not None:
            stmt = stmt.where(Order.status == status)
        rows = await self.session.scalars(stmt)
        return list(rows)

    async def list_for_user_by_ids(self, order_ids: Sequence[int], user_id: str) -> List[Order]:
        if not order_ids:
            return []
        stmt = (
            select(Order)
            .where(Order.id.in_(order_ids), Order.user_id == user_id)
            .order_by(Order.id)
            .execution_options(populate_existing=True)
        )
        rows = await self.session.scalars(stmt)
        return list(rows)

    async def mark_paid(self, order_id: int, *, payment_id: str, signature: Optional[str]) -> bool:
        # Conditional update: only the first caller moves payment pending -> completed.
        now = utc_now_naive()
        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.payment_status == PaymentStatus.PENDING,
                Order.status == OrderStatus.PENDING,
            )
            .values(
                payment_status=PaymentStatus.COMPLETED,
                status=OrderStatus.CONFIRMED,
                gateway_payment_id=payment_id,
                gateway_signature=signature,
                payment_completed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def mark_paid_after_cancel(self, order_id: int, *, payment_id: str, signature: Optional[str]) -> bool:
        # A charge that lands on an already cancelled order is parked for a refund or manual booking.
        now = utc_now_naive()
        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.payment_status == PaymentStatus.FAILED,
                Order.status == OrderStatus.CANCELLED,
            )
            .values(
                payment_status=PaymentStatus.COMPLETED,
                status=OrderStatus.NEEDS_COMPENSATION,
                gateway_payment_id=payment_id,
                gateway_signature=signature,
                payment_completed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def cancel_pending(self, order_ids: Sequence[int], *, reason: str) -> int:
        if not order_ids:
            return 0
        stmt = (
            update(Order)
            .where(Order.id.in_(order_ids), Order.payment_status == PaymentStatus.PENDING)
            .values(
                status=OrderStatus.CANCELLED,
                payment_status=PaymentStatus.FAILED,
                cancellation_reason=reason,
                updated_at=utc_now_naive(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def set_status(self, order: Order, status: OrderStatus) -> Order:
        order.status = status
        return await self.save(order)
