'''
Booking Service
'''
from datetime import date, datetime, timezone
from typing import Annotated, Optional, Sequence
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import BookingStatusEnum, PaymentStatusEnum, BLOCKING_BOOKING_STATUSES
from ..models import booking as booking_models
from ..core.slots import find_matching_slot, intervals_overlap, to_booking_time
from ..core.pricing import quote_booking
from ..core.booking_status import (
    booking_status_after_payment,
    check_booking_transition,
    check_payment_transition,
)
from ..common.config import settings
from ..common.exceptions import BookingDomainError, ConflictError, NotFoundError, ValidationError
from ..common.logger import log
from .asset_service import AssetService
from .availability_service import AvailabilityService
from .locks import AssetLockRegistry, get_asset_locks

Interval = tuple[datetime, datetime]


class BookingService:
    """
    Reserves slots without double booking and drives the booking lifecycle.

    A reservation is validated twice: once up front (cheap, gives clients a
    ValidationError for malformed or off-grid requests) and once inside the
    asset's serialization section, immediately before the insert. The second
    check, the insert and the commit happen while the asset lock is held, so
    two overlapping reservations can never both commit.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        asset_service: Annotated[AssetService, Depends(AssetService)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)],
        locks: Annotated[AssetLockRegistry, Depends(get_asset_locks)]
    ):
        self.db = db
        self.asset_service = asset_service
        self.availability_service = availability_service
        self.locks = locks

    # --- Validation Helpers ---

    def _normalize_intervals(self, intervals: Sequence[booking_models.BookingInterval]) -> list[Interval]:
        """
        Converts requested intervals to booking-timezone wall clock, checks
        each one is well formed, that they share a date and do not overlap
        each other. Returns them sorted by start.
        """
        if not intervals:
            raise ValidationError("At least one interval is required.")

        normalized = []
        for interval in intervals:
            start = to_booking_time(interval.start_date_time, settings.BOOKING_TIMEZONE)
            end = to_booking_time(interval.end_date_time, settings.BOOKING_TIMEZONE)
            if end <= start:
                raise ValidationError(f"Interval end {end} must be after its start {start}.")
            normalized.append((start, end))
        normalized.sort()

        target_date = normalized[0][0].date()
        if any(start.date() != target_date for start, _ in normalized):
            raise ValidationError("All intervals of one reservation must fall on the same date.")

        for (s1, e1), (s2, e2) in zip(normalized, normalized[1:]):
            if intervals_overlap(s1, e1, s2, e2):
                raise ValidationError(f"Requested intervals {s1}-{e1} and {s2}-{e2} overlap each other.")
        return normalized

    async def _check_on_grid(self, asset_id: UUID, target_date: date, intervals: list[Interval], error_cls: type[BookingDomainError]):
        """
        Every interval must be exactly one of the slots the resolver offers.
        Up front a miss is a ValidationError; inside the lock the same miss
        means the rules or exceptions changed underneath us, which is a conflict.
        """
        if await self.availability_service.get_exception(asset_id, target_date) is not None:
            raise ConflictError(f"Asset '{asset_id}' is unavailable on {target_date}.")

        candidates = await self.availability_service.candidate_slots(asset_id, target_date)
        if not candidates:
            raise error_cls(f"Asset '{asset_id}' offers no slots on {target_date}.")

        for start, end in intervals:
            if find_matching_slot(candidates, start, end) is None:
                raise error_cls(f"Interval {start}-{end} does not match any slot offered on {target_date}.")

    async def _find_blocking_overlap(self, asset_id: UUID, start: datetime, end: datetime) -> Optional[db_models.Bookings]:
        stmt = select(db_models.Bookings).filter(
            db_models.Bookings.space_asset_id == asset_id,
            db_models.Bookings.booking_status.in_(BLOCKING_BOOKING_STATUSES),
            db_models.Bookings.start_date_time < end,
            db_models.Bookings.end_date_time > start
        ).limit(1)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    # --- Reservation ---

    async def reserve(
        self,
        asset_id: UUID,
        interval: booking_models.BookingInterval,
        booker: booking_models.BookerInfo,
        actor_id: UUID
    ) -> booking_models.BookingRead:
        """Reserves a single slot. See reserve_many."""
        bookings = await self.reserve_many(asset_id, [interval], booker, actor_id)
        return bookings[0]

    async def reserve_many(
        self,
        asset_id: UUID,
        intervals: Sequence[booking_models.BookingInterval],
        booker: booking_models.BookerInfo,
        actor_id: UUID
    ) -> list[booking_models.BookingRead]:
        """
        Reserves one or more slots of one asset on one date, all or nothing.
        Raises ValidationError for malformed/off-grid requests and
        ConflictError when any slot is no longer available.
        """
        log.info(f"User {actor_id} reserving {len(intervals)} slot(s) on asset {asset_id}.")
        asset = await self.asset_service.get_asset(asset_id)
        normalized = self._normalize_intervals(intervals)
        target_date = normalized[0][0].date()
        await self._check_on_grid(asset_id, target_date, normalized, ValidationError)

        quotes = [
            quote_booking(asset.base_price, start, end, settings.TAX_RATE, booker.discount_applied)
            for start, end in normalized
        ]
        initial_status = (
            BookingStatusEnum.CONFIRMED if settings.AUTO_CONFIRM_BOOKINGS else BookingStatusEnum.PENDING
        )

        async with self.locks.hold(asset_id):
            try:
                await self.asset_service.lock_asset_row(asset_id)
                await self._check_on_grid(asset_id, target_date, normalized, ConflictError)

                for start, end in normalized:
                    clash = await self._find_blocking_overlap(asset_id, start, end)
                    if clash is not None:
                        log.warning(f"Reservation on asset {asset_id} for {start}-{end} lost to booking {clash.id}.")
                        raise ConflictError(f"Slot {start}-{end} is no longer available.")

                bookings = [
                    db_models.Bookings(
                        space_asset_id=asset_id,
                        contact_number=booker.contact_number,
                        start_date_time=start,
                        end_date_time=end,
                        booking_status=initial_status.value,
                        payment_status=PaymentStatusEnum.PENDING.value,
                        price=quote.price,
                        tax_amount=quote.tax_amount,
                        discount_applied=quote.discount_applied,
                        discount_id=booker.discount_id,
                        created_by=actor_id,
                        updated_by=actor_id
                    )
                    for (start, end), quote in zip(normalized, quotes)
                ]
                self.db.add_all(bookings)
                await self.db.flush()
                await self.db.commit()
            except BookingDomainError:
                await self.db.rollback()
                raise
            except IntegrityError as e:
                await self.db.rollback()
                log.warning(f"Integrity error while reserving on asset {asset_id}: {e}")
                raise ConflictError("Reservation conflicts with existing data.")
            except Exception as e:
                await self.db.rollback()
                log.error(f"Error in reserve_many for asset {asset_id}: {e}", exc_info=True)
                raise

        log.info(f"Reserved {len(bookings)} slot(s) on asset {asset_id}: {[str(b.id) for b in bookings]}")
        return [booking_models.BookingRead.model_validate(b) for b in bookings]

    # --- Lifecycle ---

    async def _get_booking_internal(self, booking_id: UUID) -> db_models.Bookings:
        booking = await self.db.get(db_models.Bookings, booking_id)
        if booking is None:
            log.warning(f"Tried to fetch non-existing booking: {booking_id}")
            raise NotFoundError(f"Booking '{booking_id}' not found.")
        return booking

    async def _update_under_lock(self, booking_id: UUID, apply) -> db_models.Bookings:
        """
        Re-reads the booking inside its asset's lock, lets `apply` mutate it,
        and commits if anything changed. Status reads and writes therefore
        share the serialization domain of reservations: the asset lock in
        this process, the asset and booking row locks across processes.
        """
        booking = await self._get_booking_internal(booking_id)
        async with self.locks.hold(booking.space_asset_id):
            try:
                await self.asset_service.lock_asset_row(booking.space_asset_id)
                await self.db.refresh(booking, with_for_update=True)
                if apply(booking):
                    await self.db.flush()
                    await self.db.commit()
            except BookingDomainError:
                await self.db.rollback()
                raise
            except Exception as e:
                await self.db.rollback()
                log.error(f"Error updating booking {booking_id}: {e}", exc_info=True)
                raise
        return booking

    async def update_booking_status(
        self, booking_id: UUID, status: BookingStatusEnum, actor_id: UUID
    ) -> booking_models.BookingRead:
        status = BookingStatusEnum(status)
        log.info(f"User {actor_id} moving booking {booking_id} to '{status.value}'.")

        def apply(booking: db_models.Bookings) -> bool:
            if not check_booking_transition(booking.booking_status, status.value):
                return False
            if status == BookingStatusEnum.COMPLETED:
                now = to_booking_time(datetime.now(timezone.utc), settings.BOOKING_TIMEZONE)
                if booking.end_date_time > now:
                    raise ValidationError(
                        f"Booking '{booking.id}' cannot be completed before it ends at {booking.end_date_time}."
                    )
            booking.booking_status = status.value
            booking.updated_by = actor_id
            return True

        booking = await self._update_under_lock(booking_id, apply)
        return booking_models.BookingRead.model_validate(booking)

    async def cancel(self, booking_id: UUID, actor_id: UUID) -> booking_models.BookingRead:
        """Cancels a booking; its interval is resolvable as available right away."""
        return await self.update_booking_status(booking_id, BookingStatusEnum.CANCELLED, actor_id)

    async def update_booking_payment_status(
        self, booking_id: UUID, payment_status: PaymentStatusEnum, actor_id: UUID
    ) -> booking_models.BookingRead:
        """
        Write surface for the payment collaborator. A paid booking that is
        still pending becomes confirmed; a failed payment cancels the booking.
        """
        payment_status = PaymentStatusEnum(payment_status)
        log.info(f"User {actor_id} setting payment of booking {booking_id} to '{payment_status.value}'.")

        def apply(booking: db_models.Bookings) -> bool:
            if not check_payment_transition(booking.payment_status, payment_status.value):
                return False
            booking.payment_status = payment_status.value
            follow_up = booking_status_after_payment(booking.booking_status, payment_status.value)
            if follow_up is not None:
                log.info(f"Payment '{payment_status.value}' moves booking {booking.id} to '{follow_up.value}'.")
                booking.booking_status = follow_up.value
            booking.updated_by = actor_id
            return True

        booking = await self._update_under_lock(booking_id, apply)
        return booking_models.BookingRead.model_validate(booking)

    # --- Reads ---

    async def get_booking_for_api(self, booking_id: UUID) -> booking_models.BookingRead:
        booking = await self._get_booking_internal(booking_id)
        return booking_models.BookingRead.model_validate(booking)

    async def list_bookings_for_api(
        self,
        booking_status: Optional[BookingStatusEnum] = None,
        asset_id: Optional[UUID] = None
    ) -> list[booking_models.BookingRead]:
        stmt = select(db_models.Bookings).order_by(db_models.Bookings.start_date_time.desc())
        if booking_status is not None:
            stmt = stmt.filter(db_models.Bookings.booking_status == BookingStatusEnum(booking_status).value)
        if asset_id is not None:
            stmt = stmt.filter(db_models.Bookings.space_asset_id == asset_id)

        result = await self.db.execute(stmt)
        return [booking_models.BookingRead.model_validate(b) for b in result.scalars().all()]
