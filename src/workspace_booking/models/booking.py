'''
Booking API Models
'''
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..database.db_enums import BookingStatusEnum, PaymentStatusEnum


class BookingInterval(BaseModel):
    """A requested [start, end) interval. Must coincide with a resolved slot."""
    start_date_time: datetime
    end_date_time: datetime


class BookerInfo(BaseModel):
    """
    Who the booking is for, supplied by the identity/contact collaborator.
    No identity validation happens here.
    """
    contact_number: str = Field(..., min_length=3, max_length=32)
    discount_applied: Decimal = Field(Decimal("0"), ge=0)
    discount_id: Optional[UUID] = None


class BookingCreate(BookerInfo):
    """
    Request body for POST /bookings/.
    Several slots of the same asset and date can be reserved at once; either
    all of them are booked or none is.
    """
    space_asset_id: UUID
    slots: list[BookingInterval] = Field(..., min_length=1)


class BookingStatusUpdate(BaseModel):
    booking_status: BookingStatusEnum


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatusEnum


class BookingRead(BaseModel):
    id: UUID
    space_asset_id: UUID
    contact_number: str
    start_date_time: datetime
    end_date_time: datetime
    booking_status: BookingStatusEnum
    payment_status: PaymentStatusEnum
    price: Decimal
    tax_amount: Decimal
    discount_applied: Decimal
    discount_id: Optional[UUID] = None
    created_by: UUID
    updated_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
