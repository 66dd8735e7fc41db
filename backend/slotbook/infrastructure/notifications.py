from __future__ import annotations

import logging

from ..domain.repositories import Notifier, OrderConfirmation

logger = logging.getLogger(__name__)


class LoggingNotifier(Notifier):
    """Hands confirmations to the log; mail delivery is wired outside this service."""

    async def send_order_confirmation(self, confirmation: OrderConfirmation) -> None:
        logger.info(
            "Order confirmation %s for user %s: qty=%s total=%s dates=%s status=%s",
            confirmation.order_number,
            confirmation.user_id,
            confirmation.quantity,
            confirmation.total_price,
            ", ".join(confirmation.delivery_dates),
            confirmation.status,
        )

    async def send_order_status_update(self, confirmation: OrderConfirmation, *, previous_status: str) -> None:
        logger.info(
            "Order %s for user %s moved %s -> %s (dates=%s)",
            confirmation.order_number,
            confirmation.user_id,
            previous_status,
            confirmation.status,
            ", ".join(confirmation.delivery_dates),
        )
