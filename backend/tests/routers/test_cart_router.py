from datetime import date, datetime
from decimal import Decimal
from typing import cast

import pytest
from fastapi import HTTPException
from slotbook.domain.errors import CartItemNotFoundError, IncompleteAllocationError
from slotbook.models import Cart, CartItem, CartItemAllocation, SlotType
from slotbook.routers import cart as router
from slotbook.schemas import CartItemCreate, DeliveryAddressUpdate
from sqlalchemy.ext.asyncio import AsyncSession


class DummySession:
    async def __aenter__(self) -> "DummySession":
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        return False

    def begin(self) -> "DummySession":
        return self


def _cart() -> Cart:
    now = datetime(2030, 1, 1)
    item = CartItem(
        id=5,
        product_id=1,
        quantity=2,
        slot_type=SlotType.NORMAL,
        clothes_provided=False,
        selected_dates=["2030-12-01"],
        normal_slots_total=2,
        emergency_slots_total=0,
        base_price=Decimal("100.00"),
        normal_slots_cost=Decimal("200.00"),
        emergency_slots_cost=Decimal("0.00"),
        emergency_charges=Decimal("0.00"),
        total_price=Decimal("200.00"),
        created_at=now,
        allocations=[
            CartItemAllocation(
                position=0,
                day=date(2030, 12, 1),
                normal_slots_used=2,
                emergency_slots_used=0,
                emergency_slot_cost=Decimal("0.00"),
            )
        ],
    )
    return Cart(id=1, user_id="u1", delivery_address=None, items=[item], created_at=now, updated_at=now)


@pytest.fixture(autouse=True)
def _stub_repositories(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(router, "SqlAlchemyCartRepository", lambda s: s)
    monkeypatch.setattr(router, "SqlAlchemyAvailabilityLedger", lambda s: s)
    monkeypatch.setattr(router, "SqlAlchemyCatalog", lambda s: s)


def test_item_payload_reduces_datetimes_to_utc_days() -> None:
    payload = CartItemCreate(
        product_id=1,
        quantity=2,
        dates=["2030-12-01T22:30:00-05:00", "2030-12-03"],
        slot_type="emergency",
    )
    assert payload.dates == [date(2030, 12, 2), date(2030, 12, 3)]
    assert payload.slot_type == SlotType.EMERGENCY


def test_item_payload_caps_quantity() -> None:
    with pytest.raises(ValueError):
        CartItemCreate(product_id=1, quantity=11, dates=["2030-12-01"])


@pytest.mark.asyncio
async def test_add_item_returns_cart_with_totals(monkeypatch: pytest.MonkeyPatch) -> None:
    cart = _cart()

    async def fake_add(*args: object, **kwargs: object) -> CartItem:
        request = kwargs["request"]
        assert request.dates == [date(2030, 12, 1)]
        return cart.items[0]

    async def fake_get(*args: object, **kwargs: object) -> Cart:
        return cart

    monkeypatch.setattr(router.cart_usecase, "add_item", fake_add)
    monkeypatch.setattr(router.cart_usecase, "get_cart", fake_get)

    result = await router.add_item(
        payload=CartItemCreate(product_id=1, quantity=2, dates=["2030-12-01"]),
        session=cast(AsyncSession, DummySession()),
        user_id="u1",
    )
    assert result.total_price == Decimal("200.00")
    assert result.items[0].allocation[0].normal_slots_used == 2


@pytest.mark.asyncio
async def test_add_item_incomplete_allocation_is_409(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_add(*args: object, **kwargs: object) -> CartItem:
        raise IncompleteAllocationError(1, 3)

    monkeypatch.setattr(router.cart_usecase, "add_item", fake_add)

    with pytest.raises(HTTPException) as excinfo:
        await router.add_item(
            payload=CartItemCreate(product_id=1, quantity=3, dates=["2030-12-01"]),
            session=cast(AsyncSession, DummySession()),
            user_id="u1",
        )
    assert excinfo.value.status_code == 409
    assert excinfo.value.detail.startswith("You need 1 more slot")


@pytest.mark.asyncio
async def test_remove_missing_item_is_404(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_remove(*args: object, **kwargs: object) -> Cart:
        raise CartItemNotFoundError(9)

    monkeypatch.setattr(router.cart_usecase, "remove_item", fake_remove)

    with pytest.raises(HTTPException) as excinfo:
        await router.remove_item(item_id=9, session=cast(AsyncSession, DummySession()), user_id="u1")
    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_blank_delivery_address_is_400(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_set(*args: object, **kwargs: object) -> Cart:
        raise ValueError("delivery address must not be empty")

    monkeypatch.setattr(router.cart_usecase, "set_delivery_address", fake_set)

    with pytest.raises(HTTPException) as excinfo:
        await router.set_delivery_address(
            payload=DeliveryAddressUpdate(delivery_address="   "),
            session=cast(AsyncSession, DummySession()),
            user_id="u1",
        )
    assert excinfo.value.status_code == 400
