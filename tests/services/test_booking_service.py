'''

'''
import asyncio
import random
import pytest
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import uuid4
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workspace_booking.common.config import settings
from workspace_booking.common.exceptions import ConflictError, NotFoundError, ValidationError
from workspace_booking.database import models as db_models
from workspace_booking.database.db_enums import (
    AvailabilityStatusEnum, BookingStatusEnum, PaymentStatusEnum, SlotTypeEnum, BLOCKING_BOOKING_STATUSES
)
from workspace_booking.models import booking as booking_models
from workspace_booking.models.availability import RecurrenceRulePayload
from workspace_booking.services.availability_service import AvailabilityService
from workspace_booking.services.booking_service import BookingService
from workspace_booking.services.schedule_service import ScheduleService
from tests.database import factories
from tests.constants import (
    TEST_ASSET_ID, TEST_HALL_ID, TEST_ADMIN_ID, TEST_CUSTOMER_ID,
    TEST_MONDAY, TEST_TUESDAY, TEST_WEDNESDAY
)


ELAPSED_DAY = date(2020, 6, 1)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute))

def interval(day: date, start_hour: int, end_hour: int) -> booking_models.BookingInterval:
    return booking_models.BookingInterval(start_date_time=at(day, start_hour), end_date_time=at(day, end_hour))

def booker(discount: str = "0") -> booking_models.BookerInfo:
    return booking_models.BookerInfo(contact_number="+15550001111", discount_applied=Decimal(discount))


@pytest.mark.anyio
class TestReserve:

    async def test_reserve_on_grid_slot(
        self, booking_service: BookingService, availability_service: AvailabilityService
    ):
        booking = await booking_service.reserve(
            TEST_ASSET_ID, interval(TEST_MONDAY, 10, 11), booker(), TEST_CUSTOMER_ID
        )

        assert isinstance(booking, booking_models.BookingRead)
        assert booking.space_asset_id == TEST_ASSET_ID
        assert booking.start_date_time == at(TEST_MONDAY, 10)
        assert booking.end_date_time == at(TEST_MONDAY, 11)
        assert booking.booking_status == BookingStatusEnum.PENDING
        assert booking.payment_status == PaymentStatusEnum.PENDING
        assert booking.price == Decimal("100.00")
        assert booking.tax_amount == Decimal("10.00")
        assert booking.created_by == TEST_CUSTOMER_ID
        assert booking.updated_by == TEST_CUSTOMER_ID

        slots = await availability_service.resolve(TEST_ASSET_ID, TEST_MONDAY)
        booked = [s for s in slots if s.availability_status == AvailabilityStatusEnum.BOOKED]
        assert [(s.start_time, s.end_time) for s in booked] == [(at(TEST_MONDAY, 10), at(TEST_MONDAY, 11))]

    async def test_reserve_daily_slot(self, booking_service: BookingService):
        booking = await booking_service.reserve(
            TEST_ASSET_ID, interval(TEST_TUESDAY, 8, 20), booker(), TEST_CUSTOMER_ID
        )
        assert booking.price == Decimal("1200.00")

    async def test_same_slot_twice_is_a_conflict(self, booking_service: BookingService):
        await booking_service.reserve(TEST_ASSET_ID, interval(TEST_MONDAY, 10, 11), booker(), TEST_CUSTOMER_ID)

        with pytest.raises(ConflictError) as e:
            await booking_service.reserve(TEST_ASSET_ID, interval(TEST_MONDAY, 10, 11), booker(), TEST_ADMIN_ID)
        assert e.value.retryable is True

    async def test_adjacent_slots_can_both_be_booked(self, booking_service: BookingService):
        await booking_service.reserve(TEST_ASSET_ID, interval(TEST_MONDAY, 10, 11), booker(), TEST_CUSTOMER_ID)
        await booking_service.reserve(TEST_ASSET_ID, interval(TEST_MONDAY, 11, 12), booker(), TEST_CUSTOMER_ID)

    @pytest.mark.parametrize("start, end", [
        (at(TEST_MONDAY, 10, 30), at(TEST_MONDAY, 11, 30)),   # off grid
        (at(TEST_MONDAY, 10), at(TEST_MONDAY, 12)),           # spans two hourly slots
        (at(TEST_MONDAY, 17), at(TEST_MONDAY, 18)),           # outside the rule window
        (at(TEST_TUESDAY, 9), at(TEST_TUESDAY, 10)),          # part of a daily slot
        (at(TEST_WEDNESDAY, 9), at(TEST_WEDNESDAY, 10)),      # no rule that day
        (at(TEST_MONDAY, 11), at(TEST_MONDAY, 10)),           # end before start
        (at(TEST_MONDAY, 10), at(TEST_MONDAY, 10)),           # empty
    ])
    async def test_invalid_interval_is_a_validation_error(self, booking_service: BookingService, start, end):
        request = booking_models.BookingInterval(start_date_time=start, end_date_time=end)
        with pytest.raises(ValidationError) as e:
            await booking_service.reserve(TEST_ASSET_ID, request, booker(), TEST_CUSTOMER_ID)
        assert e.value.retryable is False

    async def test_unknown_asset_is_a_validation_error(self, booking_service: BookingService):
        with pytest.raises(ValidationError):
            await booking_service.reserve(uuid4(), interval(TEST_MONDAY, 10, 11), booker(), TEST_CUSTOMER_ID)

    async def test_exception_date_is_a_conflict(
        self, booking_service: BookingService, schedule_service: ScheduleService
    ):
        await schedule_service.set_exception(TEST_ASSET_ID, TEST_MONDAY, "Closed", TEST_ADMIN_ID)
        with pytest.raises(ConflictError):
            await booking_service.reserve(TEST_ASSET_ID, interval(TEST_MONDAY, 10, 11), booker(), TEST_CUSTOMER_ID)

    async def test_aware_interval_is_converted_to_booking_time(self, booking_service: BookingService):
        plus_two = timezone(timedelta(hours=2))
        request = booking_models.BookingInterval(
            start_date_time=datetime(2030, 6, 3, 12, 0, tzinfo=plus_two),
            end_date_time=datetime(2030, 6, 3, 13, 0, tzinfo=plus_two),
        )
        booking = await booking_service.reserve(TEST_ASSET_ID, request, booker(), TEST_CUSTOMER_ID)
        assert booking.start_date_time == at(TEST_MONDAY, 10)

    async def test_discount_reduces_tax(self, booking_service: BookingService):
        booking = await booking_service.reserve(
            TEST_ASSET_ID, interval(TEST_MONDAY, 10, 11), booker("20"), TEST_CUSTOMER_ID
        )
        assert booking.discount_applied == Decimal("20.00")
        assert booking.tax_amount == Decimal("8.00")

    async def test_discount_above_price_is_rejected(self, booking_service: BookingService):
        with pytest.raises(ValidationError):
            await booking_service.reserve(
                TEST_ASSET_ID, interval(TEST_MONDAY, 10, 11), booker("150"), TEST_CUSTOMER_ID
            )

    async def test_auto_confirm(self, booking_service: BookingService, mocker):
        mocker.patch.object(settings, "AUTO_CONFIRM_BOOKINGS", True)
        booking = await booking_service.reserve(
            TEST_ASSET_ID, interval(TEST_MONDAY, 10, 11), booker(), TEST_CUSTOMER_ID
        )
        assert booking.booking_status == BookingStatusEnum.CONFIRMED

    async def test_schedule_change_makes_old_slot_invalid(
        self, booking_service: BookingService, schedule_service: ScheduleService
    ):
        await schedule_service.set_rule(
            TEST_ASSET_ID, 1, SlotTypeEnum.HOURLY,
            RecurrenceRulePayload(start_time=time(9), end_time=time(17), slot_duration=2),
            TEST_ADMIN_ID
        )
        with pytest.raises(ValidationError):
            await booking_service.reserve(TEST_ASSET_ID, interval(TEST_MONDAY, 10, 11), booker(), TEST_CUSTOMER_ID)
        await booking_service.reserve(TEST_ASSET_ID, interval(TEST_MONDAY, 9, 11), booker(), TEST_CUSTOMER_ID)


@pytest.mark.anyio
class TestReserveMany:

    async def test_reserve_several_slots(self, booking_service: BookingService):
        bookings = await booking_service.reserve_many(
            TEST_ASSET_ID,
            [interval(TEST_MONDAY, 14, 15), interval(TEST_MONDAY, 9, 10)],
            booker(),
            TEST_CUSTOMER_ID
        )
        assert [b.start_date_time for b in bookings] == [at(TEST_MONDAY, 9), at(TEST_MONDAY, 14)]

    async def test_one_taken_slot_books_nothing(self, booking_service: BookingService):
        await booking_service.reserve(TEST_ASSET_ID, interval(TEST_MONDAY, 14, 15), booker(), TEST_ADMIN_ID)

        with pytest.raises(ConflictError):
            await booking_service.reserve_many(
                TEST_ASSET_ID,
                [interval(TEST_MONDAY, 9, 10), interval(TEST_MONDAY, 14, 15)],
                booker(),
                TEST_CUSTOMER_ID
            )

        bookings = await booking_service.list_bookings_for_api(asset_id=TEST_ASSET_ID)
        assert len(bookings) == 1
        assert bookings[0].created_by == TEST_ADMIN_ID

    async def test_duplicate_intervals_are_rejected(self, booking_service: BookingService):
        with pytest.raises(ValidationError):
            await booking_service.reserve_many(
                TEST_ASSET_ID,
                [interval(TEST_MONDAY, 9, 10), interval(TEST_MONDAY, 9, 10)],
                booker(),
                TEST_CUSTOMER_ID
            )

    async def test_intervals_on_different_dates_are_rejected(self, booking_service: BookingService):
        with pytest.raises(ValidationError):
            await booking_service.reserve_many(
                TEST_ASSET_ID,
                [interval(TEST_MONDAY, 9, 10), interval(TEST_MONDAY + timedelta(days=7), 9, 10)],
                booker(),
                TEST_CUSTOMER_ID
            )

    async def test_empty_request_is_rejected(self, booking_service: BookingService):
        with pytest.raises(ValidationError):
            await booking_service.reserve_many(TEST_ASSET_ID, [], booker(), TEST_CUSTOMER_ID)


@pytest.mark.anyio
class TestLifecycle:

    async def _reserve(self, booking_service: BookingService, start_hour: int = 10):
        return await booking_service.reserve(
            TEST_ASSET_ID, interval(TEST_MONDAY, start_hour, start_hour + 1), booker(), TEST_CUSTOMER_ID
        )

    async def test_cancel_frees_the_slot(
        self, booking_service: BookingService, availability_service: AvailabilityService
    ):
        booking = await self._reserve(booking_service)
        cancelled = await booking_service.cancel(booking.id, TEST_ADMIN_ID)

        assert cancelled.booking_status == BookingStatusEnum.CANCELLED
        assert cancelled.updated_by == TEST_ADMIN_ID
        slots = await availability_service.resolve(TEST_ASSET_ID, TEST_MONDAY)
        assert all(s.availability_status == AvailabilityStatusEnum.AVAILABLE for s in slots)

        again = await self._reserve(booking_service)
        assert again.id != booking.id

    async def _add_elapsed_booking(self, db_session: AsyncSession, status: BookingStatusEnum):
        booking = factories.RawBookingFactory.create(
            space_asset_id=TEST_ASSET_ID,
            start_date_time=at(ELAPSED_DAY, 10),
            end_date_time=at(ELAPSED_DAY, 11),
            booking_status=status.value
        )
        await db_session.commit()
        return booking.id

    async def test_confirm_upcoming_booking(self, booking_service: BookingService):
        booking = await self._reserve(booking_service)

        confirmed = await booking_service.update_booking_status(booking.id, BookingStatusEnum.CONFIRMED, TEST_ADMIN_ID)
        assert confirmed.booking_status == BookingStatusEnum.CONFIRMED

        # Not over yet, so it cannot be completed
        with pytest.raises(ValidationError):
            await booking_service.update_booking_status(booking.id, BookingStatusEnum.COMPLETED, TEST_ADMIN_ID)

        fetched = await booking_service.get_booking_for_api(booking.id)
        assert fetched.booking_status == BookingStatusEnum.CONFIRMED

    async def test_elapsed_booking_completes(self, booking_service: BookingService, db_session: AsyncSession):
        booking_id = await self._add_elapsed_booking(db_session, BookingStatusEnum.CONFIRMED)

        completed = await booking_service.update_booking_status(booking_id, BookingStatusEnum.COMPLETED, TEST_ADMIN_ID)
        assert completed.booking_status == BookingStatusEnum.COMPLETED

        with pytest.raises(ValidationError):
            await booking_service.cancel(booking_id, TEST_ADMIN_ID)

    async def test_elapsed_pending_booking_cannot_complete(
        self, booking_service: BookingService, db_session: AsyncSession
    ):
        booking_id = await self._add_elapsed_booking(db_session, BookingStatusEnum.PENDING)
        with pytest.raises(ValidationError):
            await booking_service.update_booking_status(booking_id, BookingStatusEnum.COMPLETED, TEST_ADMIN_ID)

    async def test_pending_cannot_complete(self, booking_service: BookingService):
        booking = await self._reserve(booking_service)
        with pytest.raises(ValidationError):
            await booking_service.update_booking_status(booking.id, BookingStatusEnum.COMPLETED, TEST_ADMIN_ID)

    async def test_cancelled_is_terminal(self, booking_service: BookingService):
        booking = await self._reserve(booking_service)
        await booking_service.cancel(booking.id, TEST_ADMIN_ID)
        with pytest.raises(ValidationError):
            await booking_service.update_booking_status(booking.id, BookingStatusEnum.CONFIRMED, TEST_ADMIN_ID)

    async def test_repeating_status_is_a_noop(self, booking_service: BookingService):
        booking = await self._reserve(booking_service)
        unchanged = await booking_service.update_booking_status(booking.id, BookingStatusEnum.PENDING, TEST_ADMIN_ID)
        assert unchanged.booking_status == BookingStatusEnum.PENDING
        assert unchanged.updated_by == TEST_CUSTOMER_ID

    async def test_unknown_booking(self, booking_service: BookingService):
        with pytest.raises(NotFoundError):
            await booking_service.cancel(uuid4(), TEST_ADMIN_ID)
        with pytest.raises(NotFoundError):
            await booking_service.get_booking_for_api(uuid4())

    async def test_paid_confirms_booking(self, booking_service: BookingService):
        booking = await self._reserve(booking_service)
        paid = await booking_service.update_booking_payment_status(booking.id, PaymentStatusEnum.PAID, TEST_ADMIN_ID)

        assert paid.payment_status == PaymentStatusEnum.PAID
        assert paid.booking_status == BookingStatusEnum.CONFIRMED

        refunded = await booking_service.update_booking_payment_status(booking.id, PaymentStatusEnum.REFUNDED, TEST_ADMIN_ID)
        assert refunded.payment_status == PaymentStatusEnum.REFUNDED
        assert refunded.booking_status == BookingStatusEnum.CONFIRMED

    async def test_failed_payment_cancels_and_frees_slot(
        self, booking_service: BookingService, availability_service: AvailabilityService
    ):
        booking = await self._reserve(booking_service)
        failed = await booking_service.update_booking_payment_status(booking.id, PaymentStatusEnum.FAILED, TEST_ADMIN_ID)

        assert failed.payment_status == PaymentStatusEnum.FAILED
        assert failed.booking_status == BookingStatusEnum.CANCELLED
        slots = await availability_service.resolve(TEST_ASSET_ID, TEST_MONDAY)
        assert all(s.availability_status == AvailabilityStatusEnum.AVAILABLE for s in slots)

    async def test_refund_before_payment_is_rejected(self, booking_service: BookingService):
        booking = await self._reserve(booking_service)
        with pytest.raises(ValidationError):
            await booking_service.update_booking_payment_status(booking.id, PaymentStatusEnum.REFUNDED, TEST_ADMIN_ID)

    async def test_list_bookings_newest_first_with_filters(self, booking_service: BookingService):
        first = await self._reserve(booking_service, 9)
        second = await self._reserve(booking_service, 13)
        await booking_service.reserve(TEST_HALL_ID, interval(TEST_MONDAY, 10, 12), booker(), TEST_CUSTOMER_ID)
        await booking_service.cancel(first.id, TEST_ADMIN_ID)

        everything = await booking_service.list_bookings_for_api()
        assert len(everything) == 3
        starts = [b.start_date_time for b in everything]
        assert starts == sorted(starts, reverse=True)

        room = await booking_service.list_bookings_for_api(asset_id=TEST_ASSET_ID)
        assert {b.id for b in room} == {first.id, second.id}

        cancelled = await booking_service.list_bookings_for_api(booking_status=BookingStatusEnum.CANCELLED)
        assert [b.id for b in cancelled] == [first.id]

        fetched = await booking_service.get_booking_for_api(second.id)
        assert fetched.id == second.id



@pytest.mark.anyio
class TestRowLocks:

    async def _reserve(self, booking_service: BookingService, row_lock_calls: list):
        booking = await booking_service.reserve(
            TEST_ASSET_ID, interval(TEST_MONDAY, 10, 11), booker(), TEST_CUSTOMER_ID
        )
        row_lock_calls.clear()
        return booking

    async def test_reserve_locks_asset_row_inside_asset_lock(
        self, booking_service: BookingService, row_lock_calls: list
    ):
        await booking_service.reserve(TEST_ASSET_ID, interval(TEST_MONDAY, 10, 11), booker(), TEST_CUSTOMER_ID)
        assert row_lock_calls == [(TEST_ASSET_ID, True)]

    @pytest.mark.parametrize("update", [
        lambda service, booking_id: service.update_booking_status(booking_id, BookingStatusEnum.CONFIRMED, TEST_ADMIN_ID),
        lambda service, booking_id: service.update_booking_payment_status(booking_id, PaymentStatusEnum.FAILED, TEST_ADMIN_ID),
        lambda service, booking_id: service.cancel(booking_id, TEST_ADMIN_ID),
    ], ids=["status", "payment", "cancel"])
    async def test_booking_updates_lock_asset_and_booking_rows(
        self, booking_service: BookingService, db_session: AsyncSession, row_lock_calls: list, mocker, update
    ):
        booking = await self._reserve(booking_service, row_lock_calls)
        refresh = mocker.spy(db_session, "refresh")

        await update(booking_service, booking.id)

        assert row_lock_calls == [(TEST_ASSET_ID, True)]
        assert refresh.call_count == 1
        assert refresh.call_args.kwargs == {"with_for_update": True}

    async def test_rejected_update_leaves_booking_unchanged(
        self, booking_service: BookingService, row_lock_calls: list
    ):
        booking = await self._reserve(booking_service, row_lock_calls)
        with pytest.raises(ValidationError):
            await booking_service.update_booking_payment_status(booking.id, PaymentStatusEnum.REFUNDED, TEST_ADMIN_ID)

        assert row_lock_calls == [(TEST_ASSET_ID, True)]
        fetched = await booking_service.get_booking_for_api(booking.id)
        assert fetched.payment_status == PaymentStatusEnum.PENDING


@pytest.mark.anyio
class TestConcurrentReservations:

    async def _attempt(self, session_factory, booking_service_for, asset_id, request, delay: float = 0):
        await asyncio.sleep(delay)
        async with session_factory() as session:
            service = booking_service_for(session)
            try:
                return await service.reserve(asset_id, request, booker(), uuid4())
            except ConflictError as e:
                return e

    async def test_racing_reservations_for_one_slot_never_double_book(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        booking_service_for,
        db_session: AsyncSession
    ):
        rng = random.Random(20300603)
        hours = rng.sample(range(9, 17), 8)

        for hour in hours:
            contenders = rng.randint(2, 5)
            request = interval(TEST_MONDAY, hour, hour + 1)
            results = await asyncio.gather(*[
                self._attempt(session_factory, booking_service_for, TEST_ASSET_ID, request, rng.random() * 0.01)
                for _ in range(contenders)
            ])

            winners = [r for r in results if isinstance(r, booking_models.BookingRead)]
            losers = [r for r in results if isinstance(r, ConflictError)]
            assert len(winners) == 1, f"{len(winners)} reservations won the {hour}:00 slot"
            assert len(losers) == contenders - 1

        # No two blocking bookings of the asset overlap
        result = await db_session.execute(
            select(db_models.Bookings).filter(
                db_models.Bookings.space_asset_id == TEST_ASSET_ID,
                db_models.Bookings.booking_status.in_(BLOCKING_BOOKING_STATUSES)
            ).order_by(db_models.Bookings.start_date_time)
        )
        bookings = result.scalars().all()
        assert len(bookings) == len(hours)
        for previous, current in zip(bookings, bookings[1:]):
            assert previous.end_date_time <= current.start_date_time

    async def test_different_assets_do_not_block_each_other(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        booking_service_for
    ):
        results = await asyncio.gather(
            self._attempt(session_factory, booking_service_for, TEST_ASSET_ID, interval(TEST_MONDAY, 10, 11)),
            self._attempt(session_factory, booking_service_for, TEST_HALL_ID, interval(TEST_MONDAY, 10, 12)),
        )
        assert all(isinstance(r, booking_models.BookingRead) for r in results)

    async def test_cancel_and_rebook_race(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        booking_service_for,
        booking_service: BookingService
    ):
        original = await booking_service.reserve(
            TEST_ASSET_ID, interval(TEST_MONDAY, 15, 16), booker(), TEST_CUSTOMER_ID
        )

        async def cancel():
            async with session_factory() as session:
                return await booking_service_for(session).cancel(original.id, TEST_ADMIN_ID)

        cancelled, rebooked = await asyncio.gather(
            cancel(),
            self._attempt(session_factory, booking_service_for, TEST_ASSET_ID, interval(TEST_MONDAY, 15, 16)),
        )
        assert cancelled.booking_status == BookingStatusEnum.CANCELLED
        # Depending on ordering the rebook either lost to the original or won after the cancel
        assert isinstance(rebooked, (booking_models.BookingRead, ConflictError))

    async def test_confirm_and_failed_payment_race(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        booking_service_for,
        booking_service: BookingService
    ):
        rng = random.Random(20300604)

        for hour in rng.sample(range(9, 17), 4):
            booking = await booking_service.reserve(
                TEST_ASSET_ID, interval(TEST_MONDAY, hour, hour + 1), booker(), TEST_CUSTOMER_ID
            )

            async def run(update, delay: float):
                await asyncio.sleep(delay)
                async with session_factory() as session:
                    try:
                        return await update(booking_service_for(session))
                    except ValidationError as e:
                        return e

            confirm, payment = await asyncio.gather(
                run(lambda s: s.update_booking_status(booking.id, BookingStatusEnum.CONFIRMED, TEST_ADMIN_ID), rng.random() * 0.01),
                run(lambda s: s.update_booking_payment_status(booking.id, PaymentStatusEnum.FAILED, TEST_ADMIN_ID), rng.random() * 0.01),
            )
            # Whichever order they ran in, a failed payment leaves the booking cancelled
            assert isinstance(payment, booking_models.BookingRead)
            assert isinstance(confirm, (booking_models.BookingRead, ValidationError))

            async with session_factory() as session:
                final = await booking_service_for(session).get_booking_for_api(booking.id)
            assert final.booking_status == BookingStatusEnum.CANCELLED
            assert final.payment_status == PaymentStatusEnum.FAILED
