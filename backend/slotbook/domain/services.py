from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Sequence

from ..models import AvailableDate, OrderStatus, SlotType
from .errors import CapacityShortfallError, DateUnavailableError, InvalidStatusTransitionError

CENT = Decimal("0.01")


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def remaining_normal(row: AvailableDate) -> int:
    """Bookable normal slots; a switched-off day has none regardless of raw capacity."""
    if not row.is_available:
        return 0
    return max(row.normal_slots - row.normal_booked_slots, 0)


def remaining_emergency(row: AvailableDate) -> int:
    if not row.is_available:
        return 0
    return max(row.emergency_slots - row.emergency_booked_slots, 0)


def remaining(row: AvailableDate, slot_type: SlotType) -> int:
    if slot_type == SlotType.NORMAL:
        return remaining_normal(row)
    return remaining_emergency(row)


@dataclass(frozen=True)
class PricingInputs:
    base_price: Decimal
    clothes_provided: bool = False
    material_cost: Decimal = Decimal("0")
    cloth_provided_discount: Decimal = Decimal("0")


@dataclass(frozen=True)
class AllocationEntry:
    date_id: int
    day: date
    normal_slots_used: int
    emergency_slots_used: int
    emergency_slot_cost: Decimal

    @property
    def total_slots_used(self) -> int:
        return self.normal_slots_used + self.emergency_slots_used


@dataclass(frozen=True)
class AllocationPlan:
    quantity: int
    slot_type: SlotType
    allocation: tuple[AllocationEntry, ...]
    normal_slots_total: int
    emergency_slots_total: int
    missing: int
    unit_price: Decimal
    normal_slots_cost: Decimal
    emergency_slots_cost: Decimal
    emergency_charges: Decimal
    total_price: Decimal

    @property
    def complete(self) -> bool:
        return self.missing == 0


def adjust_unit_price(inputs: PricingInputs) -> Decimal:
    """
    Apply the single material/discount adjustment to the catalog base price.

    When the shop supplies the cloth the chosen material's extra cost is added.
    When the customer brings their own cloth the product discount applies: a value
    up to 1 is a fraction of the price, anything larger is a flat amount, and the
    result never drops below zero.
    """
    price = inputs.base_price
    if not inputs.clothes_provided:
        price += inputs.material_cost
    elif inputs.cloth_provided_discount > 0:
        discount = inputs.cloth_provided_discount
        if discount <= 1:
            price = price * (1 - discount)
        else:
            price = max(Decimal("0"), price - discount)
    return money(price)


def price_allocation(
    entries: Iterable[AllocationEntry],
    unit_price: Decimal,
) -> tuple[Decimal, Decimal, Decimal]:
    """Return (normal cost, emergency cost, emergency surcharge part) for an allocation."""
    normal_cost = Decimal("0")
    emergency_cost = Decimal("0")
    charges = Decimal("0")
    for entry in entries:
        normal_cost += entry.normal_slots_used * unit_price
        # Surcharge is per day, so equal emergency counts on two days can cost differently.
        emergency_cost += entry.emergency_slots_used * (unit_price + entry.emergency_slot_cost)
        charges += entry.emergency_slots_used * entry.emergency_slot_cost
    return money(normal_cost), money(emergency_cost), money(charges)


def plan_allocation(
    quantity: int,
    ordered_days: Sequence[AvailableDate],
    slot_type: SlotType,
    pricing: PricingInputs,
) -> AllocationPlan:
    """
    Greedily spread ``quantity`` over ``ordered_days`` (primary first) using one slot class.

    Days are consumed in the given order, each giving up to its remaining capacity.
    Days that contribute nothing produce no entry. If the days run out first the
    plan is returned with ``missing > 0``; it is never silently short.
    """
    if quantity < 1:
        raise ValueError("quantity must be >= 1")

    entries: list[AllocationEntry] = []
    left = quantity
    for row in ordered_days:
        if left == 0:
            break
        use = min(left, remaining(row, slot_type))
        if use == 0:
            continue
        entries.append(
            AllocationEntry(
                date_id=row.id,
                day=row.day,
                normal_slots_used=use if slot_type == SlotType.NORMAL else 0,
                emergency_slots_used=use if slot_type == SlotType.EMERGENCY else 0,
                emergency_slot_cost=money(Decimal(str(row.emergency_slot_cost))),
            )
        )
        left -= use

    unit_price = adjust_unit_price(pricing)
    normal_cost, emergency_cost, charges = price_allocation(entries, unit_price)
    return AllocationPlan(
        quantity=quantity,
        slot_type=slot_type,
        allocation=tuple(entries),
        normal_slots_total=sum(e.normal_slots_used for e in entries),
        emergency_slots_total=sum(e.emergency_slots_used for e in entries),
        missing=left,
        unit_price=unit_price,
        normal_slots_cost=normal_cost,
        emergency_slots_cost=emergency_cost,
        emergency_charges=charges,
        total_price=money(normal_cost + emergency_cost),
    )


@dataclass
class DayDemand:
    normal: int = 0
    emergency: int = 0


def aggregate_demand(entries: Iterable[tuple[date, int, int]]) -> dict[date, DayDemand]:
    """Sum (day, normal, emergency) triples per day, ignoring zero rows."""
    demand: dict[date, DayDemand] = defaultdict(DayDemand)
    for day, normal, emergency in entries:
        if normal == 0 and emergency == 0:
            continue
        demand[day].normal += normal
        demand[day].emergency += emergency
    return dict(demand)


def validate_demand(demand: Mapping[date, DayDemand], rows: Mapping[date, AvailableDate]) -> None:
    """
    Pure capacity gate: every demanded day must exist, be available and have enough
    remaining slots of each class. Raises on the first failing day, in date order.
    """
    for day in sorted(demand):
        need = demand[day]
        row = rows.get(day)
        if row is None or not row.is_available:
            raise DateUnavailableError(day)
        for slot_type, required in ((SlotType.NORMAL, need.normal), (SlotType.EMERGENCY, need.emergency)):
            if required == 0:
                continue
            available = remaining(row, slot_type)
            if required > available:
                raise CapacityShortfallError(day, slot_type.value, available, required)


# Manual moves only. pending -> confirmed belongs to the booking committer (mark_paid),
# and leaving needs_compensation for confirmed re-applies the frozen allocation.
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.IN_PROGRESS}),
    OrderStatus.IN_PROGRESS: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.NEEDS_COMPENSATION: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def ensure_transition(current: OrderStatus, target: OrderStatus) -> None:
    if target not in ORDER_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(current.value, target.value)
