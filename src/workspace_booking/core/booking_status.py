'''
Booking lifecycle rules.

booking_status:  pending -> confirmed -> completed
                 pending -> cancelled, confirmed -> cancelled
payment_status:  pending -> paid | failed, paid -> refunded

The two axes are independent; only booking_status decides whether a slot is held.
'''
from typing import Optional

from ..common.exceptions import ValidationError
from ..database.db_enums import BookingStatusEnum, PaymentStatusEnum, BLOCKING_BOOKING_STATUSES

BOOKING_TRANSITIONS: dict[BookingStatusEnum, set[BookingStatusEnum]] = {
    BookingStatusEnum.PENDING: {BookingStatusEnum.CONFIRMED, BookingStatusEnum.CANCELLED},
    BookingStatusEnum.CONFIRMED: {BookingStatusEnum.COMPLETED, BookingStatusEnum.CANCELLED},
    BookingStatusEnum.CANCELLED: set(),
    BookingStatusEnum.COMPLETED: set(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatusEnum, set[PaymentStatusEnum]] = {
    PaymentStatusEnum.PENDING: {PaymentStatusEnum.PAID, PaymentStatusEnum.FAILED},
    PaymentStatusEnum.PAID: {PaymentStatusEnum.REFUNDED},
    PaymentStatusEnum.FAILED: set(),
    PaymentStatusEnum.REFUNDED: set(),
}


def is_blocking(booking_status: str) -> bool:
    return booking_status in BLOCKING_BOOKING_STATUSES

def is_terminal(booking_status: str) -> bool:
    return not BOOKING_TRANSITIONS[BookingStatusEnum(booking_status)]

def check_booking_transition(current: str, target: str) -> bool:
    """
    Returns True if `current -> target` changes the status, False if it is a no-op.
    Raises ValidationError for a transition the lifecycle does not allow.
    """
    current_status, target_status = BookingStatusEnum(current), BookingStatusEnum(target)
    if current_status == target_status:
        return False
    if target_status not in BOOKING_TRANSITIONS[current_status]:
        raise ValidationError(
            f"Booking cannot move from '{current_status.value}' to '{target_status.value}'."
        )
    return True

def check_payment_transition(current: str, target: str) -> bool:
    """Same contract as check_booking_transition, for the payment axis."""
    current_status, target_status = PaymentStatusEnum(current), PaymentStatusEnum(target)
    if current_status == target_status:
        return False
    if target_status not in PAYMENT_TRANSITIONS[current_status]:
        raise ValidationError(
            f"Payment cannot move from '{current_status.value}' to '{target_status.value}'."
        )
    return True

def booking_status_after_payment(booking_status: str, payment_status: str) -> Optional[BookingStatusEnum]:
    """
    Side effect of a payment update on the booking itself:
    a successful payment confirms a pending booking, a failed one cancels it.
    Returns None when the booking status should stay as it is.
    """
    current = BookingStatusEnum(booking_status)
    payment = PaymentStatusEnum(payment_status)
    if payment == PaymentStatusEnum.PAID and current == BookingStatusEnum.PENDING:
        return BookingStatusEnum.CONFIRMED
    if payment == PaymentStatusEnum.FAILED and not is_terminal(current.value):
        return BookingStatusEnum.CANCELLED
    return None
