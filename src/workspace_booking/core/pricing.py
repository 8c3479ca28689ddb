'''
Price quote for a reserved interval: hourly base price, flat discount, tax on the discounted amount.
'''
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from pydantic import BaseModel

from ..common.exceptions import ValidationError

CENTS = Decimal("0.01")
SECONDS_PER_HOUR = Decimal(3600)


class BookingQuote(BaseModel):
    price: Decimal
    tax_amount: Decimal
    discount_applied: Decimal


def _to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)

def quote_booking(
    base_price: Decimal,
    start: datetime,
    end: datetime,
    tax_rate: float,
    discount: Decimal = Decimal("0"),
) -> BookingQuote:
    hours = Decimal(int((end - start).total_seconds())) / SECONDS_PER_HOUR
    price = _to_cents(Decimal(base_price) * hours)
    discount = _to_cents(Decimal(discount))
    if discount < 0 or discount > price:
        raise ValidationError(f"Discount {discount} must be between 0 and the booking price {price}.")
    tax_amount = _to_cents((price - discount) * Decimal(str(tax_rate)))
    return BookingQuote(price=price, tax_amount=tax_amount, discount_applied=discount)
