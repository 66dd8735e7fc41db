from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from ..domain.errors import (
    CartItemNotFoundError,
    DateUnavailableError,
    IncompleteAllocationError,
    ProductNotFoundError,
)
from ..domain.repositories import AvailabilityLedger, CartRepository, Catalog
from ..domain.services import (
    AllocationPlan,
    PricingInputs,
    aggregate_demand,
    plan_allocation,
    validate_demand,
)
from ..models import Cart, CartItem, CartItemAllocation, SlotType
from ..utils.time import utc_now_naive


@dataclass(frozen=True)
class ItemRequest:
    product_id: int
    quantity: int
    dates: Sequence[date]
    slot_type: SlotType
    clothes_provided: bool = False
    material: Optional[str] = None
    size: Optional[str] = None
    special_notes: Optional[str] = None

    @property
    def ordered_dates(self) -> tuple[date, ...]:
        # Primary first, then additional dates in selection order; a repeat adds no capacity.
        return tuple(dict.fromkeys(self.dates))


async def plan_item(
    ledger: AvailabilityLedger,
    catalog: Catalog,
    *,
    request: ItemRequest,
    max_quantity: int = 10,
) -> AllocationPlan:
    if not 1 <= request.quantity <= max_quantity:
        raise ValueError(f"quantity must be between 1 and {max_quantity}")
    if not request.ordered_dates:
        raise ValueError("at least one date must be selected")

    pricing = await catalog.get_pricing(request.product_id)
    if pricing is None:
        raise ProductNotFoundError(request.product_id)

    material_cost = Decimal("0")
    if not request.clothes_provided and request.material:
        if request.material not in pricing.materials:
            raise ValueError(f"material {request.material!r} is not available for this product")
        material_cost = pricing.materials[request.material]

    rows = await ledger.get_days(request.ordered_dates)
    for day in request.ordered_dates:
        if day not in rows:
            raise DateUnavailableError(day)

    return plan_allocation(
        request.quantity,
        [rows[day] for day in request.ordered_dates],
        request.slot_type,
        PricingInputs(
            base_price=pricing.base_price,
            clothes_provided=request.clothes_provided,
            material_cost=material_cost,
            cloth_provided_discount=pricing.cloth_provided_discount,
        ),
    )


async def add_item(
    cart_repo: CartRepository,
    ledger: AvailabilityLedger,
    catalog: Catalog,
    *,
    user_id: str,
    request: ItemRequest,
    max_quantity: int = 10,
) -> CartItem:
    plan = await plan_item(ledger, catalog, request=request, max_quantity=max_quantity)
    if not plan.complete:
        raise IncompleteAllocationError(plan.missing, plan.quantity)

    # Optimistic: checked against the live ledger, nothing is held.
    demand = aggregate_demand((e.day, e.normal_slots_used, e.emergency_slots_used) for e in plan.allocation)
    validate_demand(demand, await ledger.get_days(demand))

    cart = await cart_repo.get_or_create(user_id)
    item = CartItem(
        product_id=request.product_id,
        quantity=plan.quantity,
        slot_type=plan.slot_type,
        clothes_provided=request.clothes_provided,
        material=request.material,
        size=request.size,
        special_notes=request.special_notes,
        selected_dates=[day.isoformat() for day in request.ordered_dates],
        normal_slots_total=plan.normal_slots_total,
        emergency_slots_total=plan.emergency_slots_total,
        base_price=plan.unit_price,
        normal_slots_cost=plan.normal_slots_cost,
        emergency_slots_cost=plan.emergency_slots_cost,
        emergency_charges=plan.emergency_charges,
        total_price=plan.total_price,
        created_at=utc_now_naive(),
        allocations=[
            CartItemAllocation(
                position=position,
                day=entry.day,
                normal_slots_used=entry.normal_slots_used,
                emergency_slots_used=entry.emergency_slots_used,
                emergency_slot_cost=entry.emergency_slot_cost,
            )
            for position, entry in enumerate(plan.allocation)
        ],
    )
    return await cart_repo.add_item(cart, item)


async def get_cart(cart_repo: CartRepository, *, user_id: str) -> Cart:
    return await cart_repo.get_or_create(user_id)


async def remove_item(cart_repo: CartRepository, *, user_id: str, item_id: int) -> Cart:
    cart = await cart_repo.get(user_id)
    if cart is None or not await cart_repo.remove_item(cart, item_id):
        raise CartItemNotFoundError(item_id)
    return cart


async def clear_cart(cart_repo: CartRepository, *, user_id: str) -> None:
    await cart_repo.clear(user_id)


async def set_delivery_address(cart_repo: CartRepository, *, user_id: str, address: str) -> Cart:
    address = address.strip()
    if not address:
        raise ValueError("delivery address must not be empty")
    cart = await cart_repo.get_or_create(user_id)
    return await cart_repo.set_delivery_address(cart, address)
