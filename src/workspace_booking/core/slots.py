'''
Slot arithmetic used by the availability resolver and the booking coordinator.

Everything in here is pure: no database, no clock. Datetimes are naive
wall-clock values in the configured booking timezone.
'''
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Protocol
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict

from ..database.db_enums import SlotTypeEnum


class RuleLike(Protocol):
    """The subset of a recurrence rule the slicer needs (ORM row or API model)."""
    slot_type: str
    slot_duration: int
    start_time: time
    end_time: time


class CandidateSlot(BaseModel):
    """A concrete interval on one date, produced from a single recurrence rule."""
    start_time: datetime
    end_time: datetime
    slot_type: SlotTypeEnum

    model_config = ConfigDict(frozen=True)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return intervals_overlap(self.start_time, self.end_time, start, end)

    def matches(self, start: datetime, end: datetime) -> bool:
        return self.start_time == start and self.end_time == end


# --- Calendar helpers ---

def day_of_week_for(target_date: date) -> int:
    """0=Sunday .. 6=Saturday, the encoding used by recurrence rules."""
    return target_date.isoweekday() % 7

def day_window(target_date: date) -> tuple[datetime, datetime]:
    """The half-open [00:00, next day 00:00) window of a calendar date."""
    start = datetime.combine(target_date, time.min)
    return start, start + timedelta(days=1)

def intervals_overlap(s1: datetime, e1: datetime, s2: datetime, e2: datetime) -> bool:
    """Half-open intervals [s1,e1) and [s2,e2) overlap iff s1 < e2 and s2 < e1."""
    return s1 < e2 and s2 < e1

def to_booking_time(value: datetime, tz_name: str) -> datetime:
    """
    Normalizes a datetime to a naive wall-clock value in the booking timezone.
    Naive inputs are assumed to already be in that timezone.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)


# --- Slicing ---

def count_full_slots(start_time: time, end_time: time, slot_duration: int) -> int:
    """Number of whole `slot_duration`-hour slots that fit in [start_time, end_time)."""
    if slot_duration < 1:
        return 0
    span = datetime.combine(date.min, end_time) - datetime.combine(date.min, start_time)
    if span <= timedelta(0):
        return 0
    return int(span // timedelta(hours=slot_duration))

def slots_for_rule(target_date: date, rule: RuleLike) -> list[CandidateSlot]:
    """
    Expands one rule into the candidate slots it offers on `target_date`.
    daily  -> a single slot spanning the rule's bounds.
    hourly -> consecutive slots of `slot_duration` hours; a trailing partial
              slot is dropped.
    """
    slot_type = SlotTypeEnum(rule.slot_type)
    start = datetime.combine(target_date, rule.start_time)
    end = datetime.combine(target_date, rule.end_time)
    if end <= start:
        return []

    if slot_type == SlotTypeEnum.DAILY:
        return [CandidateSlot(start_time=start, end_time=end, slot_type=slot_type)]

    if rule.slot_duration < 1:
        return []
    step = timedelta(hours=rule.slot_duration)
    slots = []
    cursor = start
    while cursor + step <= end:
        slots.append(CandidateSlot(start_time=cursor, end_time=cursor + step, slot_type=slot_type))
        cursor += step
    return slots

def generate_candidate_slots(target_date: date, rules: Iterable[RuleLike]) -> list[CandidateSlot]:
    """
    Candidate slots of every rule, ordered by start ascending.
    If both a daily and an hourly rule are present both sets are emitted.
    """
    candidates = []
    for rule in rules:
        candidates.extend(slots_for_rule(target_date, rule))
    candidates.sort(key=lambda slot: (slot.start_time, slot.end_time))
    return candidates

def find_matching_slot(
    candidates: Iterable[CandidateSlot], start: datetime, end: datetime
) -> Optional[CandidateSlot]:
    return next((slot for slot in candidates if slot.matches(start, end)), None)
