from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from itertools import count
from typing import AsyncIterator, Iterable

from ..domain.errors import CapacityExceededError, DateUnavailableError
from ..domain.repositories import AvailabilityLedger
from ..models import AvailableDate, SlotType
from ..utils.time import utc_now_naive


class InMemoryAvailabilityLedger(AvailabilityLedger):
    """Process-local ledger with the same guarantees as the SQL one; used by tests and demos."""

    def __init__(self, rows: Iterable[AvailableDate] = ()) -> None:
        rows = list(rows)
        self._rows: dict[int, AvailableDate] = {}
        self._ids = count(max((row.id for row in rows if row.id is not None), default=0) + 1)
        self._lock = asyncio.Lock()
        self._journal: list[tuple[int, int, int]] | None = None
        for row in rows:
            if row.id is None:
                row.id = next(self._ids)
            self._rows[row.id] = row

    def _by_day(self, day: date) -> AvailableDate | None:
        return next((row for row in self._rows.values() if row.day == day), None)

    async def get_day(self, day: date) -> AvailableDate | None:
        return self._by_day(day)

    async def get_days(self, days: Iterable[date]) -> dict[date, AvailableDate]:
        wanted = set(days)
        return {row.day: row for row in self._rows.values() if row.day in wanted}

    async def list_range(
        self,
        start: date,
        end: date | None,
        *,
        only_available: bool,
    ) -> list[AvailableDate]:
        rows = [
            row
            for row in self._rows.values()
            if row.day >= start and (end is None or row.day <= end) and (row.is_available or not only_available)
        ]
        return sorted(rows, key=lambda row: row.day)

    async def increment_booked(self, date_id: int, *, normal: int, emergency: int) -> AvailableDate:
        if normal < 0 or emergency < 0:
            raise ValueError("booked counts only grow through increment_booked")
        row = self._rows.get(date_id)
        if row is None:
            raise DateUnavailableError(date_id=date_id)
        if not row.is_available:
            raise DateUnavailableError(row.day, date_id=row.id)
        if row.normal_booked_slots + normal > row.normal_slots:
            raise CapacityExceededError(row.id, SlotType.NORMAL.value, row.normal_slots, row.normal_booked_slots, normal)
        if row.emergency_booked_slots + emergency > row.emergency_slots:
            raise CapacityExceededError(
                row.id, SlotType.EMERGENCY.value, row.emergency_slots, row.emergency_booked_slots, emergency
            )
        row.normal_booked_slots += normal
        row.emergency_booked_slots += emergency
        row.updated_at = utc_now_naive()
        if self._journal is not None:
            self._journal.append((date_id, normal, emergency))
        return row

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        async with self._lock:
            self._journal = []
            try:
                yield
            except BaseException:
                for date_id, normal, emergency in reversed(self._journal):
                    row = self._rows[date_id]
                    row.normal_booked_slots -= normal
                    row.emergency_booked_slots -= emergency
                raise
            finally:
                self._journal = None

    async def upsert(
        self,
        day: date,
        *,
        normal_slots: int,
        emergency_slots: int,
        emergency_slot_cost: Decimal,
        is_available: bool,
    ) -> AvailableDate:
        now = utc_now_naive()
        row = self._by_day(day)
        if row is None:
            row = AvailableDate(
                id=next(self._ids),
                day=day,
                normal_booked_slots=0,
                emergency_booked_slots=0,
                created_at=now,
            )
            self._rows[row.id] = row
        elif normal_slots < row.normal_booked_slots or emergency_slots < row.emergency_booked_slots:
            raise ValueError(f"capacity for {day.isoformat()} cannot drop below booked slots")
        row.normal_slots = normal_slots
        row.emergency_slots = emergency_slots
        row.emergency_slot_cost = emergency_slot_cost
        row.is_available = is_available
        row.updated_at = now
        return row

    async def purge_before(self, day: date) -> int:
        stale = [row_id for row_id, row in self._rows.items() if row.day < day]
        for row_id in stale:
            del self._rows[row_id]
        return len(stale)
