'''
Schedule Service: edits to weekly recurrence rules and date-level unavailability exceptions.
'''
from datetime import date
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import SlotTypeEnum
from ..models import availability as availability_models
from ..core.slots import count_full_slots
from ..common.exceptions import BookingDomainError, ConflictError, NotFoundError, ValidationError
from ..common.logger import log
from .asset_service import AssetService
from .locks import AssetLockRegistry, get_asset_locks

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


class ScheduleService:
    """
    Validates and persists recurrence rules and unavailability exceptions.

    Writes run inside the asset's lock and commit before releasing it, so the
    daily/hourly exclusivity check and the duplicate-exception check cannot
    interleave with another writer (or with a reservation) on the same asset.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        asset_service: Annotated[AssetService, Depends(AssetService)],
        locks: Annotated[AssetLockRegistry, Depends(get_asset_locks)]
    ):
        self.db = db
        self.asset_service = asset_service
        self.locks = locks

    # --- Validation Helpers ---

    def _validate_rule(
        self, day_of_week: int, slot_type: SlotTypeEnum, payload: availability_models.RecurrenceRulePayload
    ) -> int:
        """
        Checks the bounds of a single rule and returns the slot_duration to store.
        """
        if not 0 <= day_of_week <= 6:
            raise ValidationError(f"day_of_week must be between 0 (Sunday) and 6 (Saturday), got {day_of_week}.")
        if payload.start_time >= payload.end_time:
            raise ValidationError(
                f"start_time {payload.start_time} must be before end_time {payload.end_time}."
            )
        if slot_type == SlotTypeEnum.DAILY:
            return 0

        if payload.slot_duration < 1:
            raise ValidationError("Hourly rules need a slot_duration of at least 1 hour.")
        if count_full_slots(payload.start_time, payload.end_time, payload.slot_duration) < 1:
            raise ValidationError(
                f"A {payload.slot_duration}h slot does not fit between "
                f"{payload.start_time} and {payload.end_time}."
            )
        return payload.slot_duration

    async def _get_rule(self, asset_id: UUID, day_of_week: int, slot_type: SlotTypeEnum) -> Optional[db_models.AvailabilitySchedules]:
        stmt = select(db_models.AvailabilitySchedules).filter(
            db_models.AvailabilitySchedules.asset_id == asset_id,
            db_models.AvailabilitySchedules.day_of_week == day_of_week,
            db_models.AvailabilitySchedules.slot_type == slot_type.value
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    def _other_type(self, slot_type: SlotTypeEnum) -> SlotTypeEnum:
        return SlotTypeEnum.HOURLY if slot_type == SlotTypeEnum.DAILY else SlotTypeEnum.DAILY

    def _exclusivity_error(self, day_of_week: int, slot_type: SlotTypeEnum) -> ValidationError:
        other = self._other_type(slot_type)
        return ValidationError(
            f"Cannot enable a {slot_type.value} rule on {DAY_NAMES[day_of_week]}: "
            f"a {other.value} rule is already enabled for that day. Disable it first."
        )

    def _apply_rule(
        self,
        rule: Optional[db_models.AvailabilitySchedules],
        asset_id: UUID,
        day_of_week: int,
        slot_type: SlotTypeEnum,
        slot_duration: int,
        payload: availability_models.RecurrenceRulePayload,
        actor_id: UUID
    ) -> db_models.AvailabilitySchedules:
        """Upserts one rule row keyed on (asset, day, slot type)."""
        if rule is None:
            rule = db_models.AvailabilitySchedules(
                asset_id=asset_id,
                day_of_week=day_of_week,
                slot_type=slot_type.value,
                created_by=actor_id
            )
            self.db.add(rule)
        rule.slot_duration = slot_duration
        rule.start_time = payload.start_time
        rule.end_time = payload.end_time
        rule.is_enabled = payload.is_enabled
        rule.updated_by = actor_id
        return rule

    async def _commit_or_translate(self, what: str):
        try:
            await self.db.flush()
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            log.warning(f"Integrity error while saving {what}: {e}")
            raise ConflictError(f"{what} conflicts with existing data.")

    # --- Recurrence Rules ---

    async def set_rule(
        self,
        asset_id: UUID,
        day_of_week: int,
        slot_type: SlotTypeEnum,
        payload: availability_models.RecurrenceRulePayload,
        actor_id: UUID
    ) -> availability_models.RecurrenceRuleRead:
        """
        Creates or replaces the rule for (asset, day_of_week, slot_type).
        Enabling a rule while the other slot type is enabled on the same day is
        rejected and leaves the existing rule untouched.
        """
        slot_type = SlotTypeEnum(slot_type)
        log.info(f"User {actor_id} setting {slot_type.value} rule for asset {asset_id} on day {day_of_week}.")
        slot_duration = self._validate_rule(day_of_week, slot_type, payload)
        await self.asset_service.get_asset(asset_id)

        async with self.locks.hold(asset_id):
            try:
                await self.asset_service.lock_asset_row(asset_id)
                if payload.is_enabled:
                    other = await self._get_rule(asset_id, day_of_week, self._other_type(slot_type))
                    if other is not None and other.is_enabled:
                        log.warning(f"Rejected {slot_type.value} rule for asset {asset_id} day {day_of_week}: other type enabled.")
                        raise self._exclusivity_error(day_of_week, slot_type)

                existing = await self._get_rule(asset_id, day_of_week, slot_type)
                rule = self._apply_rule(existing, asset_id, day_of_week, slot_type, slot_duration, payload, actor_id)
                await self._commit_or_translate("Recurrence rule")
            except BookingDomainError:
                await self.db.rollback()
                raise
            except Exception as e:
                await self.db.rollback()
                log.error(f"Error in set_rule for asset {asset_id}: {e}", exc_info=True)
                raise

        return availability_models.RecurrenceRuleRead.model_validate(rule)

    async def set_weekly_schedule(
        self,
        asset_id: UUID,
        rules: list[availability_models.WeeklyRule],
        actor_id: UUID
    ) -> list[availability_models.RecurrenceRuleRead]:
        """
        Applies a whole week of rules at once. The batch is validated as a
        unit against itself and against the rules it does not touch; either
        every rule is saved or none is.
        """
        log.info(f"User {actor_id} setting {len(rules)} weekly rules for asset {asset_id}.")
        durations = {}
        for entry in rules:
            key = (entry.day_of_week, SlotTypeEnum(entry.slot_type))
            if key in durations:
                raise ValidationError(
                    f"Duplicate {key[1].value} rule for {DAY_NAMES[entry.day_of_week]} in the same request."
                )
            durations[key] = self._validate_rule(entry.day_of_week, key[1], entry)

        enabled_in_batch = {key for key, entry in zip(durations, rules) if entry.is_enabled}
        for day_of_week, slot_type in enabled_in_batch:
            if (day_of_week, self._other_type(slot_type)) in enabled_in_batch:
                raise self._exclusivity_error(day_of_week, slot_type)

        await self.asset_service.get_asset(asset_id)

        async with self.locks.hold(asset_id):
            try:
                await self.asset_service.lock_asset_row(asset_id)
                saved = []
                for entry, (key, slot_duration) in zip(rules, durations.items()):
                    day_of_week, slot_type = key
                    other_key = (day_of_week, self._other_type(slot_type))
                    if entry.is_enabled and other_key not in durations:
                        other = await self._get_rule(asset_id, day_of_week, other_key[1])
                        if other is not None and other.is_enabled:
                            raise self._exclusivity_error(day_of_week, slot_type)

                    existing = await self._get_rule(asset_id, day_of_week, slot_type)
                    saved.append(self._apply_rule(existing, asset_id, day_of_week, slot_type, slot_duration, entry, actor_id))
                await self._commit_or_translate("Weekly schedule")
            except BookingDomainError:
                await self.db.rollback()
                raise
            except Exception as e:
                await self.db.rollback()
                log.error(f"Error in set_weekly_schedule for asset {asset_id}: {e}", exc_info=True)
                raise

        return [availability_models.RecurrenceRuleRead.model_validate(rule) for rule in saved]

    async def _get_rule_by_id_internal(self, rule_id: UUID) -> db_models.AvailabilitySchedules:
        rule = await self.db.get(db_models.AvailabilitySchedules, rule_id)
        if rule is None:
            log.warning(f"Tried to fetch non-existing recurrence rule: {rule_id}")
            raise NotFoundError(f"Recurrence rule '{rule_id}' not found.")
        return rule

    async def get_rule_for_api(self, rule_id: UUID) -> availability_models.RecurrenceRuleRead:
        rule = await self._get_rule_by_id_internal(rule_id)
        return availability_models.RecurrenceRuleRead.model_validate(rule)

    async def list_rules_for_api(
        self,
        asset_id: Optional[UUID] = None,
        day_of_week: Optional[int] = None,
        slot_type: Optional[SlotTypeEnum] = None
    ) -> list[availability_models.RecurrenceRuleRead]:
        stmt = select(db_models.AvailabilitySchedules).order_by(
            db_models.AvailabilitySchedules.day_of_week,
            db_models.AvailabilitySchedules.start_time
        )
        if asset_id is not None:
            stmt = stmt.filter(db_models.AvailabilitySchedules.asset_id == asset_id)
        if day_of_week is not None:
            stmt = stmt.filter(db_models.AvailabilitySchedules.day_of_week == day_of_week)
        if slot_type is not None:
            stmt = stmt.filter(db_models.AvailabilitySchedules.slot_type == SlotTypeEnum(slot_type).value)

        result = await self.db.execute(stmt)
        return [availability_models.RecurrenceRuleRead.model_validate(rule) for rule in result.scalars().all()]

    async def delete_rule(self, rule_id: UUID, actor_id: UUID) -> bool:
        log.info(f"User {actor_id} deleting recurrence rule {rule_id}.")
        rule = await self._get_rule_by_id_internal(rule_id)
        async with self.locks.hold(rule.asset_id):
            try:
                await self.asset_service.lock_asset_row(rule.asset_id)
                await self.db.delete(rule)
                await self.db.flush()
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                log.error(f"Error deleting recurrence rule {rule_id}: {e}", exc_info=True)
                raise
        return True

    # --- Unavailability Exceptions ---

    async def set_exception(
        self, asset_id: UUID, target_date: date, description: Optional[str], actor_id: UUID
    ) -> availability_models.UnavailabilityRead:
        """
        Blocks the asset for a whole date. A second exception for the same
        date is a conflict, never an upsert.
        """
        log.info(f"User {actor_id} blocking asset {asset_id} on {target_date}.")
        await self.asset_service.get_asset(asset_id)

        async with self.locks.hold(asset_id):
            try:
                await self.asset_service.lock_asset_row(asset_id)
                stmt = select(db_models.AssetUnavailabilityDates.id).filter(
                    db_models.AssetUnavailabilityDates.asset_id == asset_id,
                    db_models.AssetUnavailabilityDates.date == target_date
                )
                if (await self.db.execute(stmt)).scalar() is not None:
                    log.warning(f"Duplicate unavailability exception for asset {asset_id} on {target_date}.")
                    raise ConflictError(f"Asset '{asset_id}' is already marked unavailable on {target_date}.")

                exception = db_models.AssetUnavailabilityDates(
                    asset_id=asset_id,
                    date=target_date,
                    description=description,
                    created_by=actor_id,
                    updated_by=actor_id
                )
                self.db.add(exception)
                await self._commit_or_translate("Unavailability exception")
            except BookingDomainError:
                await self.db.rollback()
                raise
            except Exception as e:
                await self.db.rollback()
                log.error(f"Error in set_exception for asset {asset_id}: {e}", exc_info=True)
                raise

        return availability_models.UnavailabilityRead.model_validate(exception)

    async def remove_exception(self, exception_id: UUID, actor_id: UUID) -> bool:
        log.info(f"User {actor_id} removing unavailability exception {exception_id}.")
        exception = await self.db.get(db_models.AssetUnavailabilityDates, exception_id)
        if exception is None:
            log.warning(f"Tried to remove non-existing unavailability exception: {exception_id}")
            raise NotFoundError(f"Unavailability exception '{exception_id}' not found.")

        async with self.locks.hold(exception.asset_id):
            try:
                await self.asset_service.lock_asset_row(exception.asset_id)
                await self.db.delete(exception)
                await self.db.flush()
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                log.error(f"Error removing unavailability exception {exception_id}: {e}", exc_info=True)
                raise
        return True

    async def list_exceptions_for_api(self, asset_id: UUID) -> list[availability_models.UnavailabilityRead]:
        await self.asset_service.get_asset(asset_id)
        stmt = select(db_models.AssetUnavailabilityDates).filter(
            db_models.AssetUnavailabilityDates.asset_id == asset_id
        ).order_by(db_models.AssetUnavailabilityDates.date)
        result = await self.db.execute(stmt)
        return [availability_models.UnavailabilityRead.model_validate(row) for row in result.scalars().all()]
