'''
Static enums shared by the ORM models and the API models.
Values are the wire contract of the booking storefront.
'''
import enum

# --- Base Enum Class ---
class ListableEnum(str, enum.Enum):
    """A custom Enum base class that can list all member names."""
    @classmethod
    def get_all_names(cls) -> list[str]:
        return [member.value for member in cls]


class SlotTypeEnum(ListableEnum):
    DAILY = "daily"
    HOURLY = "hourly"


class BookingStatusEnum(ListableEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatusEnum(ListableEnum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class AvailabilityStatusEnum(ListableEnum):
    AVAILABLE = "available"
    BOOKED = "booked"


class AssetTypeEnum(ListableEnum):
    MEETING_ROOM = "meeting_room"
    HALL = "hall"
    AUDITORIUM = "auditorium"
    WORKSPACE = "workspace"


# Only these statuses hold a slot. Cancelled and completed bookings never block.
BLOCKING_BOOKING_STATUSES = (
    BookingStatusEnum.PENDING.value,
    BookingStatusEnum.CONFIRMED.value,
)
