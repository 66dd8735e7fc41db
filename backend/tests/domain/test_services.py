from datetime import date, datetime
from decimal import Decimal

import pytest
from slotbook.domain.errors import CapacityShortfallError, DateUnavailableError, InvalidStatusTransitionError
from slotbook.domain.services import (
    PricingInputs,
    adjust_unit_price,
    aggregate_demand,
    ensure_transition,
    plan_allocation,
    remaining,
    validate_demand,
)
from slotbook.models import AvailableDate, OrderStatus, SlotType

D1 = date(2030, 5, 1)
D2 = date(2030, 5, 2)


def _day(
    day: date,
    *,
    date_id: int = 1,
    normal: int = 4,
    normal_booked: int = 0,
    emergency: int = 1,
    emergency_booked: int = 0,
    cost: str = "0",
    available: bool = True,
) -> AvailableDate:
    now = datetime(2030, 1, 1)
    return AvailableDate(
        id=date_id,
        day=day,
        normal_slots=normal,
        emergency_slots=emergency,
        normal_booked_slots=normal_booked,
        emergency_booked_slots=emergency_booked,
        emergency_slot_cost=Decimal(cost),
        is_available=available,
        created_at=now,
        updated_at=now,
    )


PLAIN = PricingInputs(base_price=Decimal("100"))


def test_plan_reports_shortfall_on_single_date() -> None:
    row = _day(D1, normal_booked=2)
    plan = plan_allocation(3, [row], SlotType.NORMAL, PLAIN)
    assert [(e.day, e.normal_slots_used) for e in plan.allocation] == [(D1, 2)]
    assert plan.missing == 1
    assert plan.complete is False


def test_plan_spreads_over_additional_dates_in_order() -> None:
    first = _day(D1, date_id=1, normal_booked=3)
    second = _day(D2, date_id=2, normal_booked=2)
    plan = plan_allocation(3, [first, second], SlotType.NORMAL, PLAIN)
    assert [(e.date_id, e.normal_slots_used) for e in plan.allocation] == [(1, 1), (2, 2)]
    assert plan.complete
    assert plan.normal_slots_total == 3
    assert plan.emergency_slots_total == 0


def test_plan_skips_days_with_nothing_left() -> None:
    full = _day(D1, date_id=1, normal_booked=4)
    off = _day(D2, date_id=2, available=False)
    plan = plan_allocation(2, [full, off], SlotType.NORMAL, PLAIN)
    assert plan.allocation == ()
    assert plan.missing == 2
    assert plan.total_price == Decimal("0.00")


def test_plan_never_returns_less_without_flagging() -> None:
    rows = [_day(D1, date_id=1, normal_booked=1), _day(D2, date_id=2, normal_booked=2)]
    for quantity in range(1, 11):
        plan = plan_allocation(quantity, rows, SlotType.NORMAL, PLAIN)
        allocated = sum(e.total_slots_used for e in plan.allocation)
        assert allocated + plan.missing == quantity
        assert plan.complete == (allocated == quantity)


def test_plan_rejects_non_positive_quantity() -> None:
    with pytest.raises(ValueError):
        plan_allocation(0, [_day(D1)], SlotType.NORMAL, PLAIN)


def test_plan_is_deterministic_for_same_snapshot() -> None:
    rows = [_day(D1, date_id=1, emergency=2, cost="20"), _day(D2, date_id=2, emergency=3, cost="35.5")]
    pricing = PricingInputs(base_price=Decimal("99.99"), clothes_provided=True, cloth_provided_discount=Decimal("0.15"))
    first = plan_allocation(4, rows, SlotType.EMERGENCY, pricing)
    second = plan_allocation(4, rows, SlotType.EMERGENCY, pricing)
    assert first == second
    assert first.total_price == second.total_price


def test_unit_price_applies_fractional_discount_when_cloth_brought() -> None:
    inputs = PricingInputs(
        base_price=Decimal("100"),
        clothes_provided=True,
        cloth_provided_discount=Decimal("0.1"),
    )
    assert adjust_unit_price(inputs) == Decimal("90.00")


def test_unit_price_flat_discount_never_goes_negative() -> None:
    flat = PricingInputs(base_price=Decimal("100"), clothes_provided=True, cloth_provided_discount=Decimal("30"))
    assert adjust_unit_price(flat) == Decimal("70.00")
    huge = PricingInputs(base_price=Decimal("100"), clothes_provided=True, cloth_provided_discount=Decimal("250"))
    assert adjust_unit_price(huge) == Decimal("0.00")


def test_unit_price_adds_material_only_when_shop_supplies_cloth() -> None:
    supplied = PricingInputs(base_price=Decimal("100"), material_cost=Decimal("25"))
    assert adjust_unit_price(supplied) == Decimal("125.00")
    own_cloth = PricingInputs(base_price=Decimal("100"), clothes_provided=True, material_cost=Decimal("25"))
    assert adjust_unit_price(own_cloth) == Decimal("100.00")


def test_emergency_cost_uses_per_day_surcharge() -> None:
    pricing = PricingInputs(
        base_price=Decimal("100"),
        clothes_provided=True,
        cloth_provided_discount=Decimal("0.1"),
    )
    row = _day(D1, emergency=2, cost="20")
    plan = plan_allocation(2, [row], SlotType.EMERGENCY, pricing)
    assert plan.unit_price == Decimal("90.00")
    assert plan.emergency_slots_cost == Decimal("220.00")
    assert plan.emergency_charges == Decimal("40.00")
    assert plan.normal_slots_cost == Decimal("0.00")
    assert plan.total_price == Decimal("220.00")


def test_emergency_surcharge_differs_between_days() -> None:
    rows = [_day(D1, date_id=1, emergency=1, cost="20"), _day(D2, date_id=2, emergency=1, cost="50")]
    plan = plan_allocation(2, rows, SlotType.EMERGENCY, PLAIN)
    assert plan.emergency_slots_cost == Decimal("270.00")
    assert plan.emergency_charges == Decimal("70.00")


def test_remaining_is_zero_for_switched_off_day() -> None:
    row = _day(D1, available=False)
    assert remaining(row, SlotType.NORMAL) == 0
    assert remaining(row, SlotType.EMERGENCY) == 0


def test_validate_demand_sums_across_items() -> None:
    row = _day(D1, normal_booked=3)
    demand = aggregate_demand([(D1, 1, 0), (D1, 1, 0)])
    with pytest.raises(CapacityShortfallError) as excinfo:
        validate_demand(demand, {D1: row})
    assert excinfo.value.available == 1
    assert excinfo.value.required == 2
    assert excinfo.value.status_code == 409


def test_validate_demand_rejects_vanished_day() -> None:
    demand = aggregate_demand([(D2, 1, 0)])
    with pytest.raises(DateUnavailableError):
        validate_demand(demand, {D1: _day(D1)})


def test_validate_demand_checks_each_slot_class() -> None:
    row = _day(D1, emergency=1, emergency_booked=1)
    demand = aggregate_demand([(D1, 2, 0), (D1, 0, 1)])
    with pytest.raises(CapacityShortfallError) as excinfo:
        validate_demand(demand, {D1: row})
    assert excinfo.value.slot_type == "emergency"


def test_aggregate_demand_ignores_zero_rows() -> None:
    demand = aggregate_demand([(D1, 0, 0), (D2, 2, 1)])
    assert list(demand) == [D2]
    assert (demand[D2].normal, demand[D2].emergency) == (2, 1)


def test_status_transitions() -> None:
    ensure_transition(OrderStatus.CONFIRMED, OrderStatus.IN_PROGRESS)
    ensure_transition(OrderStatus.NEEDS_COMPENSATION, OrderStatus.CANCELLED)
    ensure_transition(OrderStatus.PENDING, OrderStatus.CANCELLED)
    with pytest.raises(InvalidStatusTransitionError):
        ensure_transition(OrderStatus.CONFIRMED, OrderStatus.CANCELLED)
    with pytest.raises(InvalidStatusTransitionError):
        ensure_transition(OrderStatus.COMPLETED, OrderStatus.IN_PROGRESS)


@pytest.mark.parametrize("target", [OrderStatus.CONFIRMED, OrderStatus.NEEDS_COMPENSATION])
def test_pending_order_is_only_confirmed_through_payment(target: OrderStatus) -> None:
    with pytest.raises(InvalidStatusTransitionError):
        ensure_transition(OrderStatus.PENDING, target)
