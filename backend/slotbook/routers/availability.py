from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_admin_user_id, get_session
from ..domain.errors import SchedulingError
from ..infrastructure.repositories import SqlAlchemyAvailabilityLedger
from ..schemas import AvailableDateBulkUpsert, AvailableDateRead, MonthDefaults, PurgeResult
from ..usecases import availability as availability_usecase
from ..utils.audit_log import emit_audit_log
from .errors import audit_failure, http_error

router = APIRouter(prefix="", tags=["availability"])
admin_router = APIRouter(
    prefix="/admin/available-dates",
    tags=["availability"],
    dependencies=[Depends(get_admin_user_id)],
)


@router.get("/available-dates", response_model=List[AvailableDateRead])
async def list_available_dates(
    year: Optional[int] = Query(default=None, ge=2000, le=9999),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    session: AsyncSession = Depends(get_session),
) -> list[AvailableDateRead]:
    ledger = SqlAlchemyAvailabilityLedger(session)
    try:
        rows = await availability_usecase.list_available_dates(ledger, year=year, month=month)
    except (ValueError, SQLAlchemyError) as exc:
        raise http_error(exc) from exc
    return [AvailableDateRead.from_db(row=row) for row in rows]


@admin_router.get("", response_model=List[AvailableDateRead])
async def list_all_dates(
    year: Optional[int] = Query(default=None, ge=2000, le=9999),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    session: AsyncSession = Depends(get_session),
) -> list[AvailableDateRead]:
    ledger = SqlAlchemyAvailabilityLedger(session)
    try:
        rows = await availability_usecase.list_available_dates(
            ledger, year=year, month=month, include_unavailable=True
        )
    except (ValueError, SQLAlchemyError) as exc:
        raise http_error(exc) from exc
    return [AvailableDateRead.from_db(row=row) for row in rows]


@admin_router.put("", response_model=List[AvailableDateRead])
async def upsert_dates(
    payload: AvailableDateBulkUpsert,
    session: AsyncSession = Depends(get_session),
    admin_id: str = Depends(get_admin_user_id),
) -> list[AvailableDateRead]:
    ledger = SqlAlchemyAvailabilityLedger(session)
    settings = [
        availability_usecase.DaySetting(
            day=entry.day,
            normal_slots=entry.normal_slots,
            emergency_slots=entry.emergency_slots,
            emergency_slot_cost=entry.emergency_slot_cost,
            is_available=entry.is_available,
        )
        for entry in payload.days
    ]
    try:
        async with session.begin():
            rows = await availability_usecase.upsert_days(ledger, settings=settings)
    except (SchedulingError, ValueError, SQLAlchemyError) as exc:
        raise http_error(exc) from exc

    try:
        emit_audit_log(
            action="ledger.updated",
            initiator="admin",
            user_id=admin_id,
            extra={"days": [row.day.isoformat() for row in rows]},
        )
    except RuntimeError as exc:
        raise audit_failure(exc) from exc
    return [AvailableDateRead.from_db(row=row) for row in rows]


@admin_router.post("/month", response_model=List[AvailableDateRead])
async def apply_month_defaults(
    payload: MonthDefaults,
    session: AsyncSession = Depends(get_session),
    admin_id: str = Depends(get_admin_user_id),
) -> list[AvailableDateRead]:
    ledger = SqlAlchemyAvailabilityLedger(session)
    try:
        async with session.begin():
            rows = await availability_usecase.apply_month_defaults(
                ledger,
                year=payload.year,
                month=payload.month,
                normal_slots=payload.normal_slots,
                emergency_slots=payload.emergency_slots,
                emergency_slot_cost=payload.emergency_slot_cost,
                is_available=payload.is_available,
            )
    except (SchedulingError, ValueError, SQLAlchemyError) as exc:
        raise http_error(exc) from exc

    try:
        emit_audit_log(
            action="ledger.updated",
            initiator="admin",
            user_id=admin_id,
            extra={"year": payload.year, "month": payload.month, "day_count": len(rows)},
        )
    except RuntimeError as exc:
        raise audit_failure(exc) from exc
    return [AvailableDateRead.from_db(row=row) for row in rows]


@admin_router.delete("/past", response_model=PurgeResult, status_code=status.HTTP_200_OK)
async def purge_past_dates(
    before: Optional[date] = Query(default=None, description="Delete rows strictly before this UTC day"),
    session: AsyncSession = Depends(get_session),
    admin_id: str = Depends(get_admin_user_id),
) -> PurgeResult:
    ledger = SqlAlchemyAvailabilityLedger(session)
    try:
        async with session.begin():
            deleted = await availability_usecase.purge_past_dates(ledger, before=before)
    except SQLAlchemyError as exc:
        raise http_error(exc) from exc

    try:
        emit_audit_log(
            action="ledger.purged",
            initiator="admin",
            user_id=admin_id,
            extra={"deleted": deleted, "before": before.isoformat() if before else None},
        )
    except RuntimeError as exc:
        raise audit_failure(exc) from exc
    return PurgeResult(deleted=deleted)
