from __future__ import annotations

import logging
from enum import StrEnum
from typing import Iterable, Optional

from ..domain.errors import CapacityExceededError, DateUnavailableError, InvalidStatusTransitionError
from ..domain.repositories import AvailabilityLedger, OrderRepository
from ..models import Order, OrderSlotAllocation, OrderStatus

logger = logging.getLogger(__name__)


class BookingOutcome(StrEnum):
    COMMITTED = "committed"
    ALREADY_PROCESSED = "already_processed"
    COMPENSATION_REQUIRED = "compensation_required"


async def apply_slot_allocation(ledger: AvailabilityLedger, allocation: Iterable[OrderSlotAllocation]) -> None:
    """Add a frozen allocation to the ledger, all entries or none."""
    async with ledger.atomic():
        for entry in allocation:
            if entry.normal_slots_used == 0 and entry.emergency_slots_used == 0:
                continue
            await ledger.increment_booked(
                entry.date_id,
                normal=entry.normal_slots_used,
                emergency=entry.emergency_slots_used,
            )


async def commit_order_booking(
    order_repo: OrderRepository,
    ledger: AvailabilityLedger,
    *,
    order: Order,
    payment_id: str,
    signature: Optional[str],
) -> BookingOutcome:
    """
    Mark the order paid and book its slots, exactly once per order.

    The pending -> completed payment transition is a conditional update; only the
    caller that wins it touches the ledger, so a replayed callback is a no-op.
    If the ledger refuses the increment the charge has already happened, so the
    order is parked as ``needs_compensation`` instead of being confirmed. A charge
    arriving for an order that was cancelled meanwhile is parked the same way.
    """
    if not await order_repo.mark_paid(order.id, payment_id=payment_id, signature=signature):
        if await order_repo.mark_paid_after_cancel(order.id, payment_id=payment_id, signature=signature):
            logger.error("Payment %s captured for cancelled order %s", payment_id, order.id)
            return BookingOutcome.COMPENSATION_REQUIRED
        logger.info("Order %s already processed, skipping booking", order.id)
        return BookingOutcome.ALREADY_PROCESSED

    try:
        await apply_slot_allocation(ledger, order.slot_allocation)
    except (CapacityExceededError, DateUnavailableError) as exc:
        logger.error("Booking refused for paid order %s: %s", order.id, exc.message)
        paid = await order_repo.get(order.id)
        if paid is None:
            raise
        await order_repo.set_status(paid, OrderStatus.NEEDS_COMPENSATION)
        return BookingOutcome.COMPENSATION_REQUIRED

    logger.info("Booked %d date(s) for order %s", len(order.slot_allocation), order.id)
    return BookingOutcome.COMMITTED


async def book_compensated_order(order_repo: OrderRepository, ledger: AvailabilityLedger, *, order: Order) -> Order:
    """
    Retry the ledger write for a paid order parked as ``needs_compensation``.

    Capacity errors propagate unchanged so the order stays parked.
    """
    if order.status != OrderStatus.NEEDS_COMPENSATION:
        raise InvalidStatusTransitionError(order.status.value, OrderStatus.CONFIRMED.value)
    await apply_slot_allocation(ledger, order.slot_allocation)
    logger.info("Booked %d date(s) for compensated order %s", len(order.slot_allocation), order.id)
    return await order_repo.set_status(order, OrderStatus.CONFIRMED)
