from decimal import Decimal
from typing import Callable

import pytest
from fakes import FakeCartRepo, FakeCatalog, FakeOrderRepo
from slotbook.domain.repositories import ProductPricing
from slotbook.infrastructure.memory import InMemoryAvailabilityLedger
from slotbook.models import AvailableDate


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog(
        ProductPricing(
            product_id=1,
            base_price=Decimal("100.00"),
            cloth_provided_discount=Decimal("0.10"),
            materials={"silk": Decimal("50.00")},
        )
    )


@pytest.fixture
def cart_repo() -> FakeCartRepo:
    return FakeCartRepo()


@pytest.fixture
def order_repo() -> FakeOrderRepo:
    return FakeOrderRepo()


@pytest.fixture
def ledger_factory() -> Callable[..., InMemoryAvailabilityLedger]:
    def _build(*rows: AvailableDate) -> InMemoryAvailabilityLedger:
        return InMemoryAvailabilityLedger(rows)

    return _build
