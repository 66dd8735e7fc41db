from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from ..domain.errors import OrderNotFoundError, PaymentNotConfiguredError
from ..domain.repositories import AvailabilityLedger, CartRepository, Notifier, OrderConfirmation, OrderRepository
from ..models import Order, OrderStatus
from ..utils.signature import verify_payment_signature
from ..utils.time import format_day
from .booking import BookingOutcome, commit_order_booking

logger = logging.getLogger(__name__)

SIGNATURE_MISMATCH_REASON = "payment signature mismatch"
BOOKED_STATUSES = frozenset({OrderStatus.CONFIRMED, OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED})


@dataclass
class PaymentVerification:
    signature_valid: bool
    orders: List[Order]
    outcomes: Dict[int, BookingOutcome] = field(default_factory=dict)
    cancelled_count: int = 0

    @property
    def confirmed(self) -> bool:
        """True only when every order of the batch holds its slots."""
        return self.signature_valid and all(order.status in BOOKED_STATUSES for order in self.orders)


async def _load_user_orders(order_repo: OrderRepository, *, user_id: str, order_ids: Sequence[int]) -> List[Order]:
    wanted = list(dict.fromkeys(order_ids))
    if not wanted:
        raise OrderNotFoundError()
    orders = await order_repo.list_for_user_by_ids(wanted, user_id)
    if len(orders) != len(wanted):
        missing = sorted(set(wanted) - {order.id for order in orders})
        raise OrderNotFoundError(missing[0] if missing else None)
    return orders


async def verify_payment(
    order_repo: OrderRepository,
    cart_repo: CartRepository,
    ledger: AvailabilityLedger,
    *,
    user_id: str,
    order_ids: Sequence[int],
    payment_id: str,
    gateway_order_id: str,
    signature: str,
    secret: str,
) -> PaymentVerification:
    """
    Gateway callback: check ``HMAC(order_id|payment_id)``, then book every order of the batch.

    A bad signature is a security failure, not a retryable error: pending orders
    are cancelled with no ledger effect and a rejected result is returned (not
    raised) so the caller can still commit the cancellation.
    """
    if not secret:
        raise PaymentNotConfiguredError()
    orders = await _load_user_orders(order_repo, user_id=user_id, order_ids=order_ids)
    ids = [order.id for order in orders]

    signature_ok = verify_payment_signature(gateway_order_id, payment_id, signature, secret)
    if not signature_ok or any(order.gateway_order_id != gateway_order_id for order in orders):
        logger.warning(
            "Payment signature mismatch for user %s, gateway order %s, orders %s",
            user_id,
            gateway_order_id,
            ids,
        )
        cancelled = await order_repo.cancel_pending(ids, reason=SIGNATURE_MISMATCH_REASON)
        refreshed = await order_repo.list_for_user_by_ids(ids, user_id)
        return PaymentVerification(signature_valid=False, orders=refreshed, cancelled_count=cancelled)

    outcomes: Dict[int, BookingOutcome] = {}
    for order in orders:
        outcomes[order.id] = await commit_order_booking(
            order_repo,
            ledger,
            order=order,
            payment_id=payment_id,
            signature=signature,
        )

    # A replayed callback must not wipe items added to the cart since.
    if any(outcome != BookingOutcome.ALREADY_PROCESSED for outcome in outcomes.values()):
        await cart_repo.clear(user_id)

    refreshed = await order_repo.list_for_user_by_ids(ids, user_id)
    return PaymentVerification(signature_valid=True, orders=refreshed, outcomes=outcomes)


async def cancel_on_failure(
    order_repo: OrderRepository,
    *,
    user_id: str,
    order_ids: Sequence[int],
    reason: str,
) -> int:
    """Gateway dismissal or failure: cancel whatever is still unpaid. The ledger is untouched."""
    orders = await _load_user_orders(order_repo, user_id=user_id, order_ids=order_ids)
    cancelled = await order_repo.cancel_pending([order.id for order in orders], reason=reason)
    logger.info("%d order(s) cancelled for user %s: %s", cancelled, user_id, reason)
    return cancelled


def build_confirmation(order: Order) -> OrderConfirmation:
    return OrderConfirmation(
        order_id=order.id,
        order_number=f"#{str(order.id)[-8:].upper()}",
        user_id=order.user_id,
        quantity=order.quantity,
        total_price=order.total_price,
        delivery_dates=[format_day(entry.day) for entry in order.slot_allocation],
        status=order.status.value,
    )


async def send_confirmations(notifier: Notifier, orders: Sequence[Order]) -> int:
    """Notify each confirmed order. A failed send is logged and never undoes the booking."""
    sent = 0
    for order in orders:
        if order.status != OrderStatus.CONFIRMED:
            continue
        try:
            await notifier.send_order_confirmation(build_confirmation(order))
        except Exception:
            logger.exception("Failed to send confirmation for order %s", order.id)
            continue
        sent += 1
    return sent
