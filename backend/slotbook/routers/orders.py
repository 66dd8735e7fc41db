import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_admin_user_id, get_current_user_id, get_notifier, get_payment_gateway, get_session
from ..domain.errors import SchedulingError
from ..domain.repositories import Notifier, PaymentGateway
from ..infrastructure.repositories import (
    SqlAlchemyAvailabilityLedger,
    SqlAlchemyCartRepository,
    SqlAlchemyOrderRepository,
)
from ..models import OrderStatus
from ..schemas import (
    CartValidationRead,
    CheckoutRead,
    CheckoutRequest,
    OrderRead,
    OrderStatusUpdate,
    PaymentConfirm,
    PaymentFailure,
    PaymentFailureRead,
    PaymentVerificationRead,
    PaymentVerify,
)
from ..usecases import checkout as checkout_usecase
from ..usecases import orders as order_usecase
from ..usecases import payments as payment_usecase
from ..usecases.booking import BookingOutcome
from ..utils.audit_log import emit_audit_log
from .errors import audit_failure, http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["orders"], dependencies=[Depends(get_current_user_id)])
admin_router = APIRouter(prefix="/admin/orders", tags=["orders"], dependencies=[Depends(get_admin_user_id)])


@router.post("/orders/validate-cart", response_model=CartValidationRead)
async def validate_cart(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> CartValidationRead:
    cart_repo = SqlAlchemyCartRepository(session)
    ledger = SqlAlchemyAvailabilityLedger(session)
    try:
        async with session.begin():
            cart = await checkout_usecase.validate_cart(cart_repo, ledger, user_id=user_id)
            item_count = len(cart.items)
    except (SchedulingError, SQLAlchemyError) as exc:
        raise http_error(exc) from exc
    return CartValidationRead(valid=True, item_count=item_count)


@router.post("/orders/from-cart", response_model=CheckoutRead, status_code=status.HTTP_201_CREATED)
async def create_orders_from_cart(
    payload: CheckoutRequest,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> CheckoutRead:
    cart_repo = SqlAlchemyCartRepository(session)
    order_repo = SqlAlchemyOrderRepository(session)
    ledger = SqlAlchemyAvailabilityLedger(session)
    try:
        async with session.begin():
            result = await checkout_usecase.create_orders_from_cart(
                cart_repo,
                order_repo,
                ledger,
                gateway,
                user_id=user_id,
                payment_method_id=payload.payment_method_id,
                currency=get_settings().payment_currency,
            )
    except (SchedulingError, SQLAlchemyError) as exc:
        raise http_error(exc) from exc

    try:
        for order_id in result.order_ids:
            emit_audit_log(
                action="order.created",
                initiator="user",
                order_id=order_id,
                user_id=user_id,
                gateway_order_id=result.gateway_order_id,
                status_to=OrderStatus.PENDING,
            )
    except RuntimeError as exc:
        raise audit_failure(exc) from exc

    return CheckoutRead(
        order_ids=result.order_ids,
        gateway_order_id=result.gateway_order_id,
        amount=result.amount,
        currency=result.currency,
        item_count=result.item_count,
    )


@router.post("/orders/verify-payment", response_model=PaymentVerificationRead)
async def verify_payment(
    payload: PaymentVerify,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    notifier: Notifier = Depends(get_notifier),
) -> PaymentVerificationRead:
    order_repo = SqlAlchemyOrderRepository(session)
    cart_repo = SqlAlchemyCartRepository(session)
    ledger = SqlAlchemyAvailabilityLedger(session)
    try:
        async with session.begin():
            verification = await payment_usecase.verify_payment(
                order_repo,
                cart_repo,
                ledger,
                user_id=user_id,
                order_ids=payload.order_ids,
                payment_id=payload.payment_id,
                gateway_order_id=payload.gateway_order_id,
                signature=payload.signature,
                secret=get_settings().razorpay_key_secret,
            )
    except (SchedulingError, SQLAlchemyError) as exc:
        raise http_error(exc) from exc

    if not verification.signature_valid:
        try:
            for order in verification.orders:
                emit_audit_log(
                    action="order.cancelled",
                    initiator="gateway",
                    order_id=order.id,
                    user_id=user_id,
                    gateway_order_id=payload.gateway_order_id,
                    status_to=order.status,
                    message=payment_usecase.SIGNATURE_MISMATCH_REASON,
                )
        except RuntimeError as exc:
            raise audit_failure(exc) from exc
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payment failed, order cancelled")

    try:
        for order in verification.orders:
            outcome = verification.outcomes.get(order.id)
            if outcome == BookingOutcome.COMMITTED:
                emit_audit_log(
                    action="order.confirmed",
                    initiator="gateway",
                    order_id=order.id,
                    user_id=user_id,
                    gateway_order_id=order.gateway_order_id,
                    amount=order.total_price,
                    status_from=OrderStatus.PENDING,
                    status_to=order.status,
                )
            elif outcome == BookingOutcome.COMPENSATION_REQUIRED:
                emit_audit_log(
                    action="order.compensation_required",
                    initiator="system",
                    order_id=order.id,
                    user_id=user_id,
                    gateway_order_id=order.gateway_order_id,
                    status_to=order.status,
                )
    except RuntimeError as exc:
        raise audit_failure(exc) from exc

    committed = [
        order for order in verification.orders if verification.outcomes.get(order.id) == BookingOutcome.COMMITTED
    ]
    await payment_usecase.send_confirmations(notifier, committed)
    return PaymentVerificationRead(
        confirmed=verification.confirmed,
        orders=[OrderRead.from_db(order=order) for order in verification.orders],
    )


@router.post("/orders/payment-failed", response_model=PaymentFailureRead)
async def payment_failed(
    payload: PaymentFailure,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> PaymentFailureRead:
    order_repo = SqlAlchemyOrderRepository(session)
    try:
        async with session.begin():
            cancelled = await payment_usecase.cancel_on_failure(
                order_repo,
                user_id=user_id,
                order_ids=payload.order_ids,
                reason=payload.reason,
            )
    except (SchedulingError, SQLAlchemyError) as exc:
        raise http_error(exc) from exc

    try:
        emit_audit_log(
            action="order.cancelled",
            initiator="user",
            user_id=user_id,
            status_to=OrderStatus.CANCELLED,
            message=payload.reason,
            extra={"order_ids": payload.order_ids, "cancelled": cancelled},
        )
    except RuntimeError as exc:
        raise audit_failure(exc) from exc
    return PaymentFailureRead(cancelled=cancelled)


@router.get("/me/orders", response_model=List[OrderRead])
async def list_my_orders(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> list[OrderRead]:
    order_repo = SqlAlchemyOrderRepository(session)
    orders = await order_usecase.list_user_orders(order_repo, user_id=user_id)
    return [OrderRead.from_db(order=order) for order in orders]


@router.get("/me/orders/{order_id}", response_model=OrderRead)
async def get_my_order(
    order_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> OrderRead:
    order_repo = SqlAlchemyOrderRepository(session)
    order = await order_usecase.get_user_order(order_repo, order_id=order_id, user_id=user_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="order not found")
    return OrderRead.from_db(order=order)


@admin_router.get("", response_model=List[OrderRead])
async def list_all_orders(
    order_status: Optional[OrderStatus] = Query(default=None, alias="status"),
    session: AsyncSession = Depends(get_session),
) -> list[OrderRead]:
    order_repo = SqlAlchemyOrderRepository(session)
    orders = await order_usecase.list_all_orders(order_repo, status=order_status)
    return [OrderRead.from_db(order=order) for order in orders]


@admin_router.patch("/{order_id}/status", response_model=OrderRead)
async def update_order_status(
    payload: OrderStatusUpdate,
    order_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    admin_id: str = Depends(get_admin_user_id),
    notifier: Notifier = Depends(get_notifier),
) -> OrderRead:
    order_repo = SqlAlchemyOrderRepository(session)
    ledger = SqlAlchemyAvailabilityLedger(session)
    try:
        async with session.begin():
            order, previous = await order_usecase.update_order_status(
                order_repo, ledger, order_id=order_id, status=payload.status
            )
    except (SchedulingError, SQLAlchemyError) as exc:
        raise http_error(exc) from exc

    if previous != order.status:
        try:
            emit_audit_log(
                action="order.status_changed",
                initiator="admin",
                order_id=order.id,
                user_id=order.user_id,
                status_from=previous,
                status_to=order.status,
                extra={"admin_id": admin_id},
            )
        except RuntimeError as exc:
            raise audit_failure(exc) from exc
        await order_usecase.send_status_update(notifier, order, previous)
    return OrderRead.from_db(order=order)


@admin_router.post("/{order_id}/confirm-payment", response_model=OrderRead)
async def confirm_payment(
    payload: PaymentConfirm,
    order_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    admin_id: str = Depends(get_admin_user_id),
    notifier: Notifier = Depends(get_notifier),
) -> OrderRead:
    order_repo = SqlAlchemyOrderRepository(session)
    ledger = SqlAlchemyAvailabilityLedger(session)
    try:
        async with session.begin():
            order, outcome = await order_usecase.confirm_payment(
                order_repo, ledger, order_id=order_id, payment_reference=payload.payment_reference
            )
    except (SchedulingError, SQLAlchemyError) as exc:
        raise http_error(exc) from exc

    action = {
        BookingOutcome.COMMITTED: "order.confirmed",
        BookingOutcome.COMPENSATION_REQUIRED: "order.compensation_required",
    }.get(outcome)
    if action is not None:
        try:
            emit_audit_log(
                action=action,
                initiator="admin",
                order_id=order.id,
                user_id=order.user_id,
                gateway_order_id=order.gateway_order_id,
                amount=order.total_price,
                status_to=order.status,
                message=payload.payment_reference,
                extra={"admin_id": admin_id},
            )
        except RuntimeError as exc:
            raise audit_failure(exc) from exc
    if outcome == BookingOutcome.COMMITTED:
        await payment_usecase.send_confirmations(notifier, [order])
    return OrderRead.from_db(order=order)
