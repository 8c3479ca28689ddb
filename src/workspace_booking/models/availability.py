'''
Availability API Models: recurrence rules, unavailability exceptions and resolved slots.
'''
from datetime import date, datetime, time
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..database.db_enums import SlotTypeEnum, AvailabilityStatusEnum


# --- Recurrence Rules ---

class RecurrenceRulePayload(BaseModel):
    """
    The editable part of a rule. `slot_duration` is in whole hours and only
    meaningful for hourly rules; it is stored as 0 for daily rules.
    """
    start_time: time
    end_time: time
    slot_duration: int = Field(0, ge=0, le=24)
    is_enabled: bool = True


class RecurrenceRuleSet(RecurrenceRulePayload):
    """
    Request body for PUT /schedules/ (upsert keyed on asset, day and slot type).
    """
    asset_id: UUID
    day_of_week: int = Field(..., ge=0, le=6, description="0=Sunday, 6=Saturday")
    slot_type: SlotTypeEnum


class WeeklyRule(RecurrenceRulePayload):
    """One day entry of a weekly schedule submitted in bulk."""
    day_of_week: int = Field(..., ge=0, le=6, description="0=Sunday, 6=Saturday")
    slot_type: SlotTypeEnum


class WeeklyScheduleSet(BaseModel):
    """
    Request body for POST /schedules/bulk.
    """
    asset_id: UUID
    schedules: list[WeeklyRule] = Field(..., min_length=1)


class RecurrenceRuleRead(BaseModel):
    id: UUID
    asset_id: UUID
    day_of_week: int
    slot_type: SlotTypeEnum
    slot_duration: int
    start_time: time
    end_time: time
    is_enabled: bool
    created_by: UUID
    updated_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- Unavailability Exceptions ---

class UnavailabilityCreate(BaseModel):
    date: date
    description: Optional[str] = Field(None, max_length=1000)


class UnavailabilityRead(BaseModel):
    id: UUID
    asset_id: UUID
    date: date
    description: Optional[str] = None
    created_by: UUID
    updated_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- Resolved Slots ---

class Slot(BaseModel):
    """A derived, never persisted, bookable interval on one date."""
    start_time: datetime
    end_time: datetime
    slot_type: SlotTypeEnum
    availability_status: AvailabilityStatusEnum


class DayAvailability(BaseModel):
    asset_id: UUID
    date: date
    day_of_week: int = Field(..., description="0=Sunday, 6=Saturday")
    slots: list[Slot]

