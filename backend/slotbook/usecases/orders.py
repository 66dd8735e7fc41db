import logging
from typing import List, Optional

from ..domain.errors import OrderNotFoundError
from ..domain.repositories import AvailabilityLedger, Notifier, OrderRepository
from ..domain.services import ensure_transition
from ..models import Order, OrderStatus
from .booking import BookingOutcome, book_compensated_order, commit_order_booking
from .payments import build_confirmation

logger = logging.getLogger(__name__)

ADMIN_CANCEL_REASON = "cancelled by admin"


async def list_user_orders(order_repo: OrderRepository, *, user_id: str) -> List[Order]:
    return await order_repo.list_by_user(user_id)


async def get_user_order(order_repo: OrderRepository, *, order_id: int, user_id: str) -> Optional[Order]:
    return await order_repo.get_for_user(order_id, user_id)


async def list_all_orders(order_repo: OrderRepository, *, status: Optional[OrderStatus] = None) -> List[Order]:
    return await order_repo.list_all(status=status)


async def _require_order(order_repo: OrderRepository, order_id: int) -> Order:
    order = await order_repo.get(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


async def update_order_status(
    order_repo: OrderRepository,
    ledger: AvailabilityLedger,
    *,
    order_id: int,
    status: OrderStatus,
) -> tuple[Order, OrderStatus]:
    """
    Administrative progression: confirmed -> in_progress -> completed, cancelling an
    unpaid order, and the two exits from needs_compensation.

    Cancelling a pending order also fails its payment so a late callback parks it.
    Confirming a compensation order books its frozen allocation first and fails
    with the ledger error if the days are still short.
    """
    order = await _require_order(order_repo, order_id)
    previous = order.status
    if previous == status:
        return order, previous
    ensure_transition(previous, status)

    if previous == OrderStatus.PENDING:
        await order_repo.cancel_pending([order.id], reason=ADMIN_CANCEL_REASON)
        return await _require_order(order_repo, order_id), previous
    if previous == OrderStatus.NEEDS_COMPENSATION and status == OrderStatus.CONFIRMED:
        return await book_compensated_order(order_repo, ledger, order=order), previous

    updated = await order_repo.set_status(order, status)
    return updated, previous


async def confirm_payment(
    order_repo: OrderRepository,
    ledger: AvailabilityLedger,
    *,
    order_id: int,
    payment_reference: str,
) -> tuple[Order, BookingOutcome]:
    """Record an offline or lost-callback payment; runs the same committer as the gateway callback."""
    order = await _require_order(order_repo, order_id)
    outcome = await commit_order_booking(
        order_repo,
        ledger,
        order=order,
        payment_id=payment_reference,
        signature=None,
    )
    return await _require_order(order_repo, order_id), outcome


async def send_status_update(notifier: Notifier, order: Order, previous: OrderStatus) -> bool:
    try:
        await notifier.send_order_status_update(build_confirmation(order), previous_status=previous.value)
    except Exception:
        logger.exception("Failed to send status update for order %s", order.id)
        return False
    return True
