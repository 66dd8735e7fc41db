from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence

from ..domain.repositories import AvailabilityLedger
from ..models import AvailableDate
from ..utils.time import month_bounds, utc_today

DEFAULT_NORMAL_SLOTS = 4
DEFAULT_EMERGENCY_SLOTS = 1


@dataclass(frozen=True)
class DaySetting:
    day: date
    normal_slots: int = DEFAULT_NORMAL_SLOTS
    emergency_slots: int = DEFAULT_EMERGENCY_SLOTS
    emergency_slot_cost: Decimal = Decimal("0")
    is_available: bool = True


async def list_available_dates(
    ledger: AvailabilityLedger,
    *,
    year: Optional[int] = None,
    month: Optional[int] = None,
    include_unavailable: bool = False,
) -> List[AvailableDate]:
    """Days of one UTC calendar month, or from today onwards when no month is given."""
    if (year is None) != (month is None):
        raise ValueError("month and year must be given together")
    if year is not None and month is not None:
        start, end = month_bounds(year, month)
        return await ledger.list_range(start, end, only_available=not include_unavailable)
    return await ledger.list_range(utc_today(), None, only_available=not include_unavailable)


async def upsert_days(ledger: AvailabilityLedger, *, settings: Sequence[DaySetting]) -> List[AvailableDate]:
    for setting in settings:
        if setting.normal_slots < 0 or setting.emergency_slots < 0:
            raise ValueError("slot capacities must be >= 0")
        if setting.emergency_slot_cost < 0:
            raise ValueError("emergency_slot_cost must be >= 0")
    rows: List[AvailableDate] = []
    for setting in settings:
        rows.append(
            await ledger.upsert(
                setting.day,
                normal_slots=setting.normal_slots,
                emergency_slots=setting.emergency_slots,
                emergency_slot_cost=setting.emergency_slot_cost,
                is_available=setting.is_available,
            )
        )
    return rows


async def apply_month_defaults(
    ledger: AvailabilityLedger,
    *,
    year: int,
    month: int,
    normal_slots: int = DEFAULT_NORMAL_SLOTS,
    emergency_slots: int = DEFAULT_EMERGENCY_SLOTS,
    emergency_slot_cost: Decimal = Decimal("0"),
    is_available: bool = True,
) -> List[AvailableDate]:
    start, end = month_bounds(year, month)
    days = [start + timedelta(days=offset) for offset in range((end - start).days + 1)]
    return await upsert_days(
        ledger,
        settings=[
            DaySetting(
                day=day,
                normal_slots=normal_slots,
                emergency_slots=emergency_slots,
                emergency_slot_cost=emergency_slot_cost,
                is_available=is_available,
            )
            for day in days
        ],
    )


async def purge_past_dates(ledger: AvailabilityLedger, *, before: Optional[date] = None) -> int:
    """Delete ledger rows older than ``before`` (default: yesterday, UTC)."""
    cutoff = before or (utc_today() - timedelta(days=1))
    return await ledger.purge_before(cutoff)
