"""
Money / line-item calculator.

Turns raw line inputs into priced lines and document totals. Pure functions:
no database access, no counters, same input -> same output.

All arithmetic is Decimal. Currency is kept at 2 places and quantities at
3 places, both rounded half-up, so totals never drift however many lines a
document carries.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, Mapping, Optional

from .exceptions import ValidationError

CENT = Decimal("0.01")
QTY_STEP = Decimal("0.001")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_quantity(value) -> Decimal:
    return Decimal(value).quantize(QTY_STEP, rounding=ROUND_HALF_UP)


def to_decimal(value, field: str, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Parse user input into a Decimal; floats go through str() to keep their printed value."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        if isinstance(value, float):
            value = str(value)
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


@dataclass(frozen=True)
class PricedItem:
    quantity: Decimal
    rate: Decimal
    subtotal: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    amount: Decimal  # subtotal - discount + tax


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def calculate_item(raw: Mapping) -> PricedItem:
    """
    Price one line.

    `raw` keys: quantity, rate, and optionally discount_amount or
    discount_percent, tax_amount or tax_rate. An explicit, non-zero
    discount_amount wins over discount_percent; an explicit tax_amount wins
    over tax_rate.
    """
    quantity = to_decimal(raw.get("quantity"), "quantity")
    rate = to_decimal(raw.get("rate"), "rate")
    if quantity is None:
        raise ValidationError("quantity is required")
    if rate is None:
        raise ValidationError("rate is required")

    quantity = to_quantity(quantity)
    if quantity <= 0:
        raise ValidationError("quantity must be greater than 0")
    if rate < 0:
        raise ValidationError("rate cannot be negative")
    rate = to_money(rate)

    subtotal = to_money(quantity * rate)

    discount_percent = to_decimal(raw.get("discount_percent"), "discount_percent", ZERO)
    if not (0 <= discount_percent <= HUNDRED):
        raise ValidationError("discount_percent must be between 0 and 100")
    discount_amount = to_decimal(raw.get("discount_amount"), "discount_amount", ZERO)
    if discount_amount < 0:
        raise ValidationError("discount_amount cannot be negative")
    if discount_amount:
        discount = to_money(discount_amount)
    else:
        discount = to_money(subtotal * discount_percent / HUNDRED)
    if discount > subtotal:
        raise ValidationError("discount cannot exceed the line subtotal")

    tax_amount = to_decimal(raw.get("tax_amount"), "tax_amount")
    tax_rate = to_decimal(raw.get("tax_rate"), "tax_rate")
    if tax_amount is not None:
        if tax_amount < 0:
            raise ValidationError("tax_amount cannot be negative")
        tax = to_money(tax_amount)
    elif tax_rate is not None:
        if tax_rate < 0:
            raise ValidationError("tax_rate cannot be negative")
        tax = to_money((subtotal - discount) * tax_rate / HUNDRED)
    else:
        tax = ZERO

    return PricedItem(
        quantity=quantity,
        rate=rate,
        subtotal=subtotal,
        discount_percent=to_money(discount_percent),
        discount_amount=discount,
        tax_amount=tax,
        amount=subtotal - discount + tax,
    )


def calculate_totals(items: Iterable[PricedItem]) -> DocumentTotals:
    items: List[PricedItem] = list(items)
    subtotal = sum((i.subtotal for i in items), ZERO)
    discount = sum((i.discount_amount for i in items), ZERO)
    tax = sum((i.tax_amount for i in items), ZERO)
    return DocumentTotals(
        subtotal=subtotal,
        discount_amount=discount,
        tax_amount=tax,
        total_amount=subtotal - discount + tax,
    )


def price_document(raw_items: Iterable[Mapping]):
    """Price every line in order, then total them. Returns (items, totals)."""
    items = [calculate_item(raw) for raw in raw_items]
    return items, calculate_totals(items)
