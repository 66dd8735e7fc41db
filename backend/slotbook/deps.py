from typing import AsyncIterator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import get_sessionmaker
from .domain.repositories import Notifier, PaymentGateway
from .infrastructure.notifications import LoggingNotifier
from .infrastructure.payments import RazorpayGateway
from .utils.auth import AccessClaims, decode_access_token

ADMIN_ROLE = "admin"


async def get_session() -> AsyncIterator[AsyncSession]:
    async with get_sessionmaker()() as session:
        yield session


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_access_claims(authorization: str | None = Header(default=None)) -> AccessClaims:
    if authorization is None:
        raise _unauthorized("Authorization header required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _unauthorized("Bearer token required")

    settings = get_settings()
    try:
        return decode_access_token(token.strip(), secret=settings.auth_secret, algorithms=[settings.auth_algorithm])
    except ValueError as exc:
        raise _unauthorized("Invalid or expired token") from exc


async def get_current_user_id(claims: AccessClaims = Depends(get_access_claims)) -> str:
    return claims.user_id


async def get_admin_user_id(claims: AccessClaims = Depends(get_access_claims)) -> str:
    if claims.role != ADMIN_ROLE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin role required")
    return claims.user_id


def get_payment_gateway() -> PaymentGateway:
    return RazorpayGateway.from_settings(get_settings())


def get_notifier() -> Notifier:
    return LoggingNotifier()
