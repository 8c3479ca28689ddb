'''
Availability Service
'''
from datetime import date, datetime, timedelta
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import AvailabilityStatusEnum, BLOCKING_BOOKING_STATUSES
from ..models import availability as availability_models
from ..core.slots import CandidateSlot, day_of_week_for, day_window, generate_candidate_slots
from ..common.config import settings
from ..common.exceptions import ValidationError
from ..common.logger import log
from .asset_service import AssetService


class AvailabilityService:
    """
    Turns an asset's weekly recurrence rules, date exceptions and existing
    bookings into the concrete list of slots for one date.
    Read-only: nothing here writes, so it never raises ConflictError.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        asset_service: Annotated[AssetService, Depends(AssetService)]
    ):
        self.db = db
        self.asset_service = asset_service

    # --- Store Readers ---

    async def get_exception(self, asset_id: UUID, target_date: date) -> Optional[db_models.AssetUnavailabilityDates]:
        stmt = select(db_models.AssetUnavailabilityDates).filter(
            db_models.AssetUnavailabilityDates.asset_id == asset_id,
            db_models.AssetUnavailabilityDates.date == target_date
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_enabled_rules(self, asset_id: UUID, day_of_week: int) -> list[db_models.AvailabilitySchedules]:
        stmt = select(db_models.AvailabilitySchedules).filter(
            db_models.AvailabilitySchedules.asset_id == asset_id,
            db_models.AvailabilitySchedules.day_of_week == day_of_week,
            db_models.AvailabilitySchedules.is_enabled.is_(True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_blocking_bookings(
        self, asset_id: UUID, window_start: datetime, window_end: datetime
    ) -> list[db_models.Bookings]:
        """
        Bookings of the asset in a blocking status whose [start, end) intersects
        the [window_start, window_end) window.
        """
        stmt = select(db_models.Bookings).filter(
            db_models.Bookings.space_asset_id == asset_id,
            db_models.Bookings.booking_status.in_(BLOCKING_BOOKING_STATUSES),
            db_models.Bookings.start_date_time < window_end,
            db_models.Bookings.end_date_time > window_start
        ).order_by(db_models.Bookings.start_date_time)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # --- Resolution ---

    async def candidate_slots(self, asset_id: UUID, target_date: date) -> list[CandidateSlot]:
        """
        Slots the recurrence rules offer on `target_date`, before bookings are
        considered. An unavailability exception on the date wins over any rule.
        """
        if await self.get_exception(asset_id, target_date) is not None:
            log.info(f"Asset {asset_id} is blocked by an exception on {target_date}.")
            return []

        rules = await self.get_enabled_rules(asset_id, day_of_week_for(target_date))
        if not rules:
            return []
        return generate_candidate_slots(target_date, rules)

    async def resolve(self, asset_id: UUID, target_date: date) -> list[availability_models.Slot]:
        """
        Ordered slots for one asset and date, each marked available or booked.
        """
        log.info(f"Resolving availability for asset {asset_id} on {target_date}.")
        await self.asset_service.get_asset(asset_id)

        candidates = await self.candidate_slots(asset_id, target_date)
        if not candidates:
            return []

        window_start, window_end = day_window(target_date)
        bookings = await self.get_blocking_bookings(asset_id, window_start, window_end)

        slots = []
        for candidate in candidates:
            is_booked = any(
                candidate.overlaps(booking.start_date_time, booking.end_date_time)
                for booking in bookings
            )
            slots.append(availability_models.Slot(
                start_time=candidate.start_time,
                end_time=candidate.end_time,
                slot_type=candidate.slot_type,
                availability_status=(
                    AvailabilityStatusEnum.BOOKED if is_booked else AvailabilityStatusEnum.AVAILABLE
                )
            ))
        return slots

    async def get_day_availability_for_api(self, asset_id: UUID, target_date: date) -> availability_models.DayAvailability:
        slots = await self.resolve(asset_id, target_date)
        return availability_models.DayAvailability(
            asset_id=asset_id,
            date=target_date,
            day_of_week=day_of_week_for(target_date),
            slots=slots
        )

    async def get_range_availability_for_api(
        self, asset_id: UUID, from_date: date, to_date: date
    ) -> list[availability_models.DayAvailability]:
        """
        One DayAvailability per date in [from_date, to_date], for calendar views.
        """
        if to_date < from_date:
            raise ValidationError("to_date must not be before from_date.")
        days = (to_date - from_date).days + 1
        if days > settings.MAX_RANGE_DAYS:
            raise ValidationError(f"A range may span at most {settings.MAX_RANGE_DAYS} days.")

        return [
            await self.get_day_availability_for_api(asset_id, from_date + timedelta(days=offset))
            for offset in range(days)
        ]
