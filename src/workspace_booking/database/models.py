from typing import Optional

from sqlalchemy import (
    Boolean, CheckConstraint, Date, DateTime, Enum, ForeignKeyConstraint, Index,
    Numeric, PrimaryKeyConstraint, SmallInteger, String, Text, Time, UniqueConstraint, Uuid, func, text
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import datetime
import decimal
import uuid

from .db_enums import SlotTypeEnum, BookingStatusEnum, PaymentStatusEnum, AssetTypeEnum

def utcnow() -> datetime.datetime:
    """Naive UTC timestamp for audit columns."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class SpaceAssets(Base):
    __tablename__ = 'space_assets'
    __table_args__ = (
        CheckConstraint('base_price >= 0', name='space_assets_base_price_check'),
        PrimaryKeyConstraint('id', name='space_assets_pkey'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255))
    asset_type: Mapped[str] = mapped_column(Enum(*AssetTypeEnum.get_all_names(), name='asset_type_enum'))
    base_price: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2), server_default=text('0'))
    currency: Mapped[str] = mapped_column(String(3), server_default=text("'USD'"))
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now(), default=utcnow)

    availability_schedules: Mapped[list['AvailabilitySchedules']] = relationship('AvailabilitySchedules', back_populates='asset', cascade='all, delete-orphan')
    unavailability_dates: Mapped[list['AssetUnavailabilityDates']] = relationship('AssetUnavailabilityDates', back_populates='asset', cascade='all, delete-orphan')
    bookings: Mapped[list['Bookings']] = relationship('Bookings', back_populates='asset')


class AvailabilitySchedules(Base):
    __tablename__ = 'availability_schedules'
    __table_args__ = (
        CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='availability_schedules_day_of_week_check'),
        CheckConstraint('start_time < end_time', name='availability_schedules_time_range_check'),
        CheckConstraint('slot_duration >= 0', name='availability_schedules_slot_duration_check'),
        ForeignKeyConstraint(['asset_id'], ['space_assets.id'], ondelete='CASCADE', name='availability_schedules_asset_id_fkey'),
        PrimaryKeyConstraint('id', name='availability_schedules_pkey'),
        UniqueConstraint('asset_id', 'day_of_week', 'slot_type', name='availability_schedules_asset_day_type_key'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    asset_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    day_of_week: Mapped[int] = mapped_column(SmallInteger)
    slot_type: Mapped[str] = mapped_column(Enum(*SlotTypeEnum.get_all_names(), name='slot_type_enum'))
    slot_duration: Mapped[int] = mapped_column(SmallInteger, server_default=text('0'))
    start_time: Mapped[datetime.time] = mapped_column(Time)
    end_time: Mapped[datetime.time] = mapped_column(Time)
    is_enabled: Mapped[bool] = mapped_column(Boolean, server_default=text('true'), default=True)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now(), default=utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now(), default=utcnow, onupdate=utcnow)

    asset: Mapped['SpaceAssets'] = relationship('SpaceAssets', back_populates='availability_schedules')


class AssetUnavailabilityDates(Base):
    __tablename__ = 'asset_unavailability_dates'
    __table_args__ = (
        ForeignKeyConstraint(['asset_id'], ['space_assets.id'], ondelete='CASCADE', name='asset_unavailability_dates_asset_id_fkey'),
        PrimaryKeyConstraint('id', name='asset_unavailability_dates_pkey'),
        UniqueConstraint('asset_id', 'date', name='asset_unavailability_dates_asset_date_key'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    asset_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    date: Mapped[datetime.date] = mapped_column(Date)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now(), default=utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now(), default=utcnow, onupdate=utcnow)

    asset: Mapped['SpaceAssets'] = relationship('SpaceAssets', back_populates='unavailability_dates')


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        CheckConstraint('end_date_time > start_date_time', name='bookings_interval_check'),
        CheckConstraint('discount_applied >= 0', name='bookings_discount_check'),
        ForeignKeyConstraint(['space_asset_id'], ['space_assets.id'], name='bookings_space_asset_id_fkey'),
        PrimaryKeyConstraint('id', name='bookings_pkey'),
        Index('idx_bookings_asset_interval', 'space_asset_id', 'start_date_time', 'end_date_time'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    space_asset_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    contact_number: Mapped[str] = mapped_column(String(32))
    start_date_time: Mapped[datetime.datetime] = mapped_column(DateTime)
    end_date_time: Mapped[datetime.datetime] = mapped_column(DateTime)
    booking_status: Mapped[str] = mapped_column(Enum(*BookingStatusEnum.get_all_names(), name='booking_status_enum'), server_default=text("'pending'"))
    payment_status: Mapped[str] = mapped_column(Enum(*PaymentStatusEnum.get_all_names(), name='payment_status_enum'), server_default=text("'pending'"))
    price: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2))
    tax_amount: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2), server_default=text('0'))
    discount_applied: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2), server_default=text('0'))
    discount_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now(), default=utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now(), default=utcnow, onupdate=utcnow)

    asset: Mapped['SpaceAssets'] = relationship('SpaceAssets', back_populates='bookings')
