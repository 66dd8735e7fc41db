from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Mapping, Optional

from ..domain.errors import (
    DateUnavailableError,
    EmptyCartError,
    IncompleteAllocationError,
    MissingDeliveryAddressError,
)
from ..domain.repositories import AvailabilityLedger, CartRepository, OrderRepository, PaymentGateway
from ..domain.services import DayDemand, aggregate_demand, money, validate_demand
from ..models import AvailableDate, Cart, CartItem, Order, OrderSlotAllocation, OrderStatus, PaymentStatus
from ..utils.time import utc_now_naive

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    order_ids: List[int]
    gateway_order_id: str
    amount: Decimal
    currency: str
    item_count: int


def cart_demand(cart: Cart) -> dict[date, DayDemand]:
    """Total slots every item of the cart wants, per day. Two items may share a day."""
    return aggregate_demand(
        (alloc.day, alloc.normal_slots_used, alloc.emergency_slots_used)
        for item in cart.items
        for alloc in item.allocations
    )


def _check_item_complete(item: CartItem) -> None:
    allocated = sum(a.normal_slots_used + a.emergency_slots_used for a in item.allocations)
    if not item.selected_dates or allocated < item.quantity:
        raise IncompleteAllocationError(item.quantity - allocated, item.quantity)


async def validate_cart(
    cart_repo: CartRepository,
    ledger: AvailabilityLedger,
    *,
    user_id: str,
    require_address: bool = False,
) -> Cart:
    """
    Capacity gate over a whole cart.

    Demand is summed across items before comparing with freshly read remaining
    capacity, so two items that each fit alone but not together are rejected.
    With ``require_address`` a cart without a delivery address is refused before
    any capacity is read.
    Raises on the first short or vanished day; nothing is written.
    """
    cart = await cart_repo.get(user_id)
    if cart is None or not cart.items:
        raise EmptyCartError()
    if require_address and not cart.delivery_address:
        raise MissingDeliveryAddressError()
    for item in cart.items:
        _check_item_complete(item)

    demand = cart_demand(cart)
    validate_demand(demand, await ledger.get_days(demand))
    return cart


def freeze_allocation(item: CartItem, rows: Mapping[date, AvailableDate]) -> List[OrderSlotAllocation]:
    frozen: List[OrderSlotAllocation] = []
    for position, alloc in enumerate(a for a in item.allocations if a.normal_slots_used or a.emergency_slots_used):
        row = rows.get(alloc.day)
        if row is None or not row.is_available:
            raise DateUnavailableError(alloc.day)
        frozen.append(
            OrderSlotAllocation(
                position=position,
                date_id=row.id,
                day=row.day,
                normal_slots=row.normal_slots,
                emergency_slots=row.emergency_slots,
                normal_booked_slots=row.normal_booked_slots,
                emergency_booked_slots=row.emergency_booked_slots,
                emergency_slot_cost=row.emergency_slot_cost,
                is_available=row.is_available,
                normal_slots_used=alloc.normal_slots_used,
                emergency_slots_used=alloc.emergency_slots_used,
                total_slots_used=alloc.normal_slots_used + alloc.emergency_slots_used,
            )
        )
    return frozen


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


async def create_orders_from_cart(
    cart_repo: CartRepository,
    order_repo: OrderRepository,
    ledger: AvailabilityLedger,
    gateway: PaymentGateway,
    *,
    user_id: str,
    payment_method_id: Optional[str] = None,
    currency: str = "INR",
) -> CheckoutResult:
    """
    Gate the cart, freeze one order per item, then open one gateway order for the sum.

    Must run inside a single transaction: a failure at any step leaves no orders
    behind. Ledger counters are not touched here; that happens on payment.
    """
    cart = await validate_cart(cart_repo, ledger, user_id=user_id, require_address=True)

    # Re-read after the gate so the snapshot reflects the ledger at freezing time.
    rows = await ledger.get_days(cart_demand(cart))
    now = utc_now_naive()
    orders: List[Order] = []
    for item in cart.items:
        order = Order(
            user_id=user_id,
            product_id=item.product_id,
            quantity=item.quantity,
            slot_type=item.slot_type,
            clothes_provided=item.clothes_provided,
            material=item.material,
            size=item.size,
            special_notes=item.special_notes,
            delivery_address=cart.delivery_address,
            selected_dates=list(item.selected_dates),
            normal_slots_total=item.normal_slots_total,
            emergency_slots_total=item.emergency_slots_total,
            base_price=item.base_price,
            normal_slots_cost=item.normal_slots_cost,
            emergency_slots_cost=item.emergency_slots_cost,
            emergency_charges=item.emergency_charges,
            total_price=item.total_price,
            payment_method_id=payment_method_id,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            created_at=now,
            updated_at=now,
            slot_allocation=freeze_allocation(item, rows),
        )
        orders.append(await order_repo.create(order))

    total = money(sum((item.total_price for item in cart.items), Decimal("0")))
    order_ids = [order.id for order in orders]
    gateway_order_id = await gateway.create_order(
        amount_minor=to_minor_units(total),
        currency=currency,
        receipt=f"cart_{cart.id}_{int(now.timestamp())}",
        notes={
            "orderIds": ",".join(str(order_id) for order_id in order_ids),
            "itemCount": str(len(orders)),
            "userId": user_id,
        },
    )
    for order in orders:
        order.gateway_order_id = gateway_order_id
        await order_repo.save(order)

    logger.info("Created %d pending orders for user %s under %s", len(orders), user_id, gateway_order_id)
    return CheckoutResult(
        order_ids=order_ids,
        gateway_order_id=gateway_order_id,
        amount=total,
        currency=currency,
        item_count=len(orders),
    )
