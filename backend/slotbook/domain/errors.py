"""
Domain errors for the scheduling core.

Every error carries a user-facing ``message`` and the HTTP ``status_code`` the
routers answer with, so the HTTP boundary never has to format internals.
"""
from __future__ import annotations

from datetime import date
from typing import Optional


class SchedulingError(Exception):
    """Base exception for all scheduling-core errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class CapacityShortfallError(SchedulingError):
    """Not enough remaining slots of one class on one day (user-correctable)."""

    def __init__(self, day: date, slot_type: str, available: int, required: int):
        self.day = day
        self.slot_type = slot_type
        self.available = available
        self.required = required
        super().__init__(
            f"Not enough {slot_type} slots available for {day.isoformat()}: "
            f"{available} available, {required} required",
            409,
        )


class IncompleteAllocationError(SchedulingError):
    """The selected dates cannot hold the whole requested quantity."""

    def __init__(self, missing: int, quantity: int):
        self.missing = missing
        self.quantity = quantity
        plural = "s" if missing != 1 else ""
        super().__init__(
            f"You need {missing} more slot{plural} for quantity {quantity}. Please select additional dates.",
            409,
        )


class DateUnavailableError(SchedulingError):
    """A previously offered date was removed or switched off."""

    def __init__(self, day: Optional[date] = None, *, date_id: Optional[int] = None):
        self.day = day
        self.date_id = date_id
        label = day.isoformat() if day is not None else f"Date #{date_id}"
        super().__init__(
            f"{label} is no longer available, please select different dates",
            409,
        )


class CapacityExceededError(SchedulingError):
    """A booked-count increment would break ``booked <= capacity``."""

    def __init__(self, date_id: int, slot_type: str, capacity: int, booked: int, requested: int):
        self.date_id = date_id
        self.slot_type = slot_type
        self.capacity = capacity
        self.booked = booked
        self.requested = requested
        super().__init__(
            f"Booking {requested} {slot_type} slot(s) on date {date_id} would exceed capacity "
            f"({booked}/{capacity} booked)",
            409,
        )


class EmptyCartError(SchedulingError):
    def __init__(self) -> None:
        super().__init__("Cart is empty", 400)


class MissingDeliveryAddressError(SchedulingError):
    def __init__(self) -> None:
        super().__init__("Delivery address not set", 400)


class CartItemNotFoundError(SchedulingError):
    def __init__(self, item_id: int):
        super().__init__(f"Item {item_id} not found in cart", 404)


class ProductNotFoundError(SchedulingError):
    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found", 404)


class OrderNotFoundError(SchedulingError):
    def __init__(self, order_id: Optional[int] = None):
        detail = f"Order {order_id} not found" if order_id is not None else "Order not found"
        super().__init__(detail, 404)


class InvalidStatusTransitionError(SchedulingError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move order from {current} to {target}", 409)


class PaymentGatewayError(SchedulingError):
    """The payment provider rejected or failed a request."""

    def __init__(self, message: str = "Payment provider unavailable, please retry later"):
        super().__init__(message, 502)


class PaymentNotConfiguredError(SchedulingError):
    """RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET not set."""

    def __init__(self) -> None:
        super().__init__("Payment system is not configured", 503)
