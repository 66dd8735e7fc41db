from fastapi import APIRouter, Depends, Path, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_current_user_id, get_session
from ..domain.errors import SchedulingError
from ..infrastructure.repositories import (
    SqlAlchemyAvailabilityLedger,
    SqlAlchemyCartRepository,
    SqlAlchemyCatalog,
)
from ..schemas import CartItemCreate, CartRead, DeliveryAddressUpdate, PlanRead
from ..usecases import cart as cart_usecase
from .errors import http_error

router = APIRouter(prefix="/cart", tags=["cart"], dependencies=[Depends(get_current_user_id)])


def _item_request(payload: CartItemCreate) -> cart_usecase.ItemRequest:
    return cart_usecase.ItemRequest(
        product_id=payload.product_id,
        quantity=payload.quantity,
        dates=payload.dates,
        slot_type=payload.slot_type,
        clothes_provided=payload.clothes_provided,
        material=payload.material,
        size=payload.size,
        special_notes=payload.special_notes,
    )


@router.post("/plan", response_model=PlanRead)
async def plan_item(
    payload: CartItemCreate,
    session: AsyncSession = Depends(get_session),
) -> PlanRead:
    """Preview how the quantity spreads over the chosen dates. Nothing is stored."""
    ledger = SqlAlchemyAvailabilityLedger(session)
    catalog = SqlAlchemyCatalog(session)
    try:
        plan = await cart_usecase.plan_item(
            ledger,
            catalog,
            request=_item_request(payload),
            max_quantity=get_settings().max_item_quantity,
        )
    except (SchedulingError, ValueError, SQLAlchemyError) as exc:
        raise http_error(exc) from exc
    return PlanRead.from_plan(plan)


@router.get("", response_model=CartRead)
async def get_cart(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> CartRead:
    cart_repo = SqlAlchemyCartRepository(session)
    try:
        async with session.begin():
            cart = await cart_usecase.get_cart(cart_repo, user_id=user_id)
    except SQLAlchemyError as exc:
        raise http_error(exc) from exc
    return CartRead.from_db(cart=cart)


@router.post("/items", response_model=CartRead, status_code=status.HTTP_201_CREATED)
async def add_item(
    payload: CartItemCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> CartRead:
    cart_repo = SqlAlchemyCartRepository(session)
    ledger = SqlAlchemyAvailabilityLedger(session)
    catalog = SqlAlchemyCatalog(session)
    try:
        async with session.begin():
            await cart_usecase.add_item(
                cart_repo,
                ledger,
                catalog,
                user_id=user_id,
                request=_item_request(payload),
                max_quantity=get_settings().max_item_quantity,
            )
            cart = await cart_usecase.get_cart(cart_repo, user_id=user_id)
    except (SchedulingError, ValueError, SQLAlchemyError) as exc:
        raise http_error(exc) from exc
    return CartRead.from_db(cart=cart)


@router.delete("/items/{item_id}", response_model=CartRead)
async def remove_item(
    item_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> CartRead:
    cart_repo = SqlAlchemyCartRepository(session)
    try:
        async with session.begin():
            cart = await cart_usecase.remove_item(cart_repo, user_id=user_id, item_id=item_id)
    except (SchedulingError, SQLAlchemyError) as exc:
        raise http_error(exc) from exc
    return CartRead.from_db(cart=cart)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cart(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> Response:
    cart_repo = SqlAlchemyCartRepository(session)
    try:
        async with session.begin():
            await cart_usecase.clear_cart(cart_repo, user_id=user_id)
    except SQLAlchemyError as exc:
        raise http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/delivery-address", response_model=CartRead)
async def set_delivery_address(
    payload: DeliveryAddressUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> CartRead:
    cart_repo = SqlAlchemyCartRepository(session)
    try:
        async with session.begin():
            cart = await cart_usecase.set_delivery_address(
                cart_repo, user_id=user_id, address=payload.delivery_address
            )
    except (ValueError, SQLAlchemyError) as exc:
        raise http_error(exc) from exc
    return CartRead.from_db(cart=cart)
