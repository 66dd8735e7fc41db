from datetime import date
from decimal import Decimal

import pytest
from fakes import FakeGateway, FakeNotifier, make_day
from slotbook.domain.errors import OrderNotFoundError, PaymentNotConfiguredError
from slotbook.models import OrderStatus, PaymentStatus, SlotType
from slotbook.usecases import cart as cart_uc
from slotbook.usecases import checkout as checkout_uc
from slotbook.usecases import payments as uc
from slotbook.usecases.booking import BookingOutcome
from slotbook.utils.signature import compute_payment_signature

SECRET = "rzp_secret"
D1 = date(2030, 11, 3)
D2 = date(2030, 11, 4)


async def _checkout(cart_repo, order_repo, ledger, catalog, *quantities: int) -> checkout_uc.CheckoutResult:
    for quantity in quantities:
        await cart_uc.add_item(
            cart_repo,
            ledger,
            catalog,
            user_id="u1",
            request=cart_uc.ItemRequest(product_id=1, quantity=quantity, dates=[D1, D2], slot_type=SlotType.NORMAL),
        )
    await cart_uc.set_delivery_address(cart_repo, user_id="u1", address="12 Market Road")
    return await checkout_uc.create_orders_from_cart(cart_repo, order_repo, ledger, FakeGateway(), user_id="u1")


async def _verify(cart_repo, order_repo, ledger, result, *, signature=None, user_id="u1"):
    payment_id = "pay_789"
    return await uc.verify_payment(
        order_repo,
        cart_repo,
        ledger,
        user_id=user_id,
        order_ids=result.order_ids,
        payment_id=payment_id,
        gateway_order_id=result.gateway_order_id,
        signature=signature or compute_payment_signature(result.gateway_order_id, payment_id, SECRET),
        secret=SECRET,
    )


@pytest.mark.asyncio
async def test_verified_payment_books_and_clears_cart(cart_repo, order_repo, catalog, ledger_factory) -> None:
    ledger = ledger_factory(make_day(D1, date_id=1), make_day(D2, date_id=2))
    result = await _checkout(cart_repo, order_repo, ledger, catalog, 3, 1)

    verification = await _verify(cart_repo, order_repo, ledger, result)

    assert verification.confirmed is True
    assert set(verification.outcomes.values()) == {BookingOutcome.COMMITTED}
    assert [o.status for o in verification.orders] == [OrderStatus.CONFIRMED, OrderStatus.CONFIRMED]
    rows = await ledger.get_days([D1, D2])
    assert rows[D1].normal_booked_slots == 4
    assert rows[D2].normal_booked_slots == 0
    assert (await cart_repo.get("u1")).items == []


@pytest.mark.asyncio
async def test_replayed_callback_keeps_new_cart_items(cart_repo, order_repo, catalog, ledger_factory) -> None:
    ledger = ledger_factory(make_day(D1, date_id=1), make_day(D2, date_id=2))
    result = await _checkout(cart_repo, order_repo, ledger, catalog, 2)
    await _verify(cart_repo, order_repo, ledger, result)
    await cart_uc.add_item(
        cart_repo,
        ledger,
        catalog,
        user_id="u1",
        request=cart_uc.ItemRequest(product_id=1, quantity=1, dates=[D2], slot_type=SlotType.NORMAL),
    )

    replay = await _verify(cart_repo, order_repo, ledger, result)

    assert set(replay.outcomes.values()) == {BookingOutcome.ALREADY_PROCESSED}
    assert (await ledger.get_day(D1)).normal_booked_slots == 2
    assert len((await cart_repo.get("u1")).items) == 1


@pytest.mark.asyncio
async def test_bad_signature_cancels_without_booking(cart_repo, order_repo, catalog, ledger_factory) -> None:
    ledger = ledger_factory(make_day(D1, date_id=1), make_day(D2, date_id=2))
    result = await _checkout(cart_repo, order_repo, ledger, catalog, 2)

    verification = await _verify(cart_repo, order_repo, ledger, result, signature="forged")

    assert verification.confirmed is False
    assert verification.cancelled_count == 1
    order = verification.orders[0]
    assert order.status == OrderStatus.CANCELLED
    assert order.payment_status == PaymentStatus.FAILED
    assert order.cancellation_reason == uc.SIGNATURE_MISMATCH_REASON
    assert (await ledger.get_day(D1)).normal_booked_slots == 0
    assert len((await cart_repo.get("u1")).items) == 1


@pytest.mark.asyncio
async def test_gateway_order_mismatch_is_rejected(cart_repo, order_repo, catalog, ledger_factory) -> None:
    ledger = ledger_factory(make_day(D1, date_id=1), make_day(D2, date_id=2))
    result = await _checkout(cart_repo, order_repo, ledger, catalog, 1)
    order_repo.orders[result.order_ids[0]].gateway_order_id = "order_other"

    verification = await _verify(cart_repo, order_repo, ledger, result)
    assert verification.confirmed is False


@pytest.mark.asyncio
async def test_foreign_orders_are_not_found(cart_repo, order_repo, catalog, ledger_factory) -> None:
    ledger = ledger_factory(make_day(D1, date_id=1), make_day(D2, date_id=2))
    result = await _checkout(cart_repo, order_repo, ledger, catalog, 1)
    with pytest.raises(OrderNotFoundError):
        await _verify(cart_repo, order_repo, ledger, result, user_id="intruder")


@pytest.mark.asyncio
async def test_missing_secret_is_not_configured(cart_repo, order_repo, ledger_factory) -> None:
    with pytest.raises(PaymentNotConfiguredError):
        await uc.verify_payment(
            order_repo,
            cart_repo,
            ledger_factory(),
            user_id="u1",
            order_ids=[1],
            payment_id="pay",
            gateway_order_id="order",
            signature="sig",
            secret="",
        )


@pytest.mark.asyncio
async def test_cancel_on_failure_only_touches_unpaid(cart_repo, order_repo, catalog, ledger_factory) -> None:
    ledger = ledger_factory(make_day(D1, date_id=1), make_day(D2, date_id=2))
    result = await _checkout(cart_repo, order_repo, ledger, catalog, 1)
    await _verify(cart_repo, order_repo, ledger, result)

    assert await uc.cancel_on_failure(order_repo, user_id="u1", order_ids=result.order_ids, reason="dismissed") == 0
    assert order_repo.orders[result.order_ids[0]].status == OrderStatus.CONFIRMED


@pytest.mark.asyncio
async def test_confirmations_format_and_tolerate_failures(cart_repo, order_repo, catalog, ledger_factory) -> None:
    ledger = ledger_factory(make_day(D1, date_id=1, normal_booked=3), make_day(D2, date_id=2))
    first = await _checkout(cart_repo, order_repo, ledger, catalog, 2)
    first_verification = await _verify(cart_repo, order_repo, ledger, first)
    second = await _checkout(cart_repo, order_repo, ledger, catalog, 1)
    second_verification = await _verify(cart_repo, order_repo, ledger, second)
    notifier = FakeNotifier(fail_for=second.order_ids)

    sent = await uc.send_confirmations(notifier, first_verification.orders + second_verification.orders)

    assert sent == 1
    confirmation = notifier.sent[0]
    assert confirmation.order_number == "#1"
    assert confirmation.delivery_dates == ["Nov 03, 2030", "Nov 04, 2030"]
    assert confirmation.total_price == Decimal("200.00")
    assert confirmation.status == "confirmed"


@pytest.mark.asyncio
async def test_payment_after_dismissal_is_parked_for_compensation(
    cart_repo, order_repo, catalog, ledger_factory
) -> None:
    ledger = ledger_factory(make_day(D1, date_id=1), make_day(D2, date_id=2))
    result = await _checkout(cart_repo, order_repo, ledger, catalog, 2)
    await uc.cancel_on_failure(order_repo, user_id="u1", order_ids=result.order_ids, reason="dismissed")

    verification = await _verify(cart_repo, order_repo, ledger, result)

    assert verification.signature_valid is True
    assert verification.confirmed is False
    assert set(verification.outcomes.values()) == {BookingOutcome.COMPENSATION_REQUIRED}
    order = verification.orders[0]
    assert (order.status, order.payment_status) == (OrderStatus.NEEDS_COMPENSATION, PaymentStatus.COMPLETED)
    assert order.gateway_payment_id == "pay_789"
    assert (await ledger.get_day(D1)).normal_booked_slots == 0

    replay = await _verify(cart_repo, order_repo, ledger, result)
    assert set(replay.outcomes.values()) == {BookingOutcome.ALREADY_PROCESSED}
    assert replay.confirmed is False
