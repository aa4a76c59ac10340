import logging
from collections import defaultdict
from decimal import Decimal

from django.db import models, transaction

from .calculator import to_decimal, to_quantity
from .exceptions import InsufficientStockError, ValidationError
from .models import Product, StockMovement, TransactionType

logger = logging.getLogger(__name__)

QTY_ZERO = Decimal("0.000")

# Direction a document moves stock in when it is posted
DOCUMENT_DIRECTIONS = {
    TransactionType.INVOICE: "OUT",
    TransactionType.BILL: "IN",
}


def move_stock(product, quantity, movement_type, *, txn=None, notes=None, cost_price=None):
    """
    Record one stock movement and update the product's on-hand quantity.

    IN adds, OUT subtracts, ADJUSTMENT sets the absolute quantity.
    Locks the product row; must run inside the caller's atomic block.
    Returns (product, movement).
    """
    quantity = to_decimal(quantity, "quantity")
    if quantity is None:
        raise ValidationError("quantity is required")
    quantity = to_quantity(quantity)
    if movement_type not in ("IN", "OUT", "ADJUSTMENT"):
        raise ValidationError(f"Unknown movement type {movement_type!r}")
    if movement_type == "ADJUSTMENT":
        if quantity < 0:
            raise ValidationError("Adjusted stock cannot be negative")
    elif quantity <= 0:
        raise ValidationError("quantity must be greater than 0")

    # Lock the product until the surrounding transaction finishes
    locked = Product.objects.select_for_update().get(pk=product.pk)
    if locked.is_service:
        raise ValidationError(f"{locked.sku} is a service and does not track stock")

    current = locked.current_stock
    if movement_type == "IN":
        new_stock = current + quantity
    elif movement_type == "OUT":
        new_stock = current - quantity
        if new_stock < 0:
            logger.warning(
                "Refused stock OUT of %s for %s: only %s on hand",
                quantity, locked.sku, current,
            )
            raise InsufficientStockError(
                f"Insufficient stock for {locked.sku}: available {current}, requested {quantity}"
            )
    else:
        new_stock = quantity

    if cost_price is not None:
        cost_price = to_decimal(cost_price, "cost_price")
        if cost_price < 0:
            raise ValidationError("cost_price cannot be negative")

    # queryset update keeps Product.save() validation out of the hot path
    Product.objects.filter(pk=locked.pk).update(current_stock=new_stock)
    locked.current_stock = new_stock
    product.current_stock = new_stock

    movement = StockMovement.objects.create(
        company_id=locked.company_id,
        product=locked,
        transaction=txn,
        movement_type=movement_type,
        quantity=quantity,
        cost_price=cost_price,
        balance_quantity=new_stock,
        notes=notes,
    )
    return locked, movement


def record_document_movements(txn):
    """Move stock for every stock-tracked line of a posted INVOICE or BILL."""
    direction = DOCUMENT_DIRECTIONS.get(TransactionType(txn.type))
    if direction is None:
        return []

    movements = []
    with transaction.atomic():
        items = (
            txn.items.select_related("product")
            .filter(product__isnull=False, product__is_service=False)
            .order_by("product_id", "sort_order", "id")
        )
        for item in items:
            _product, movement = move_stock(
                item.product,
                item.quantity,
                direction,
                txn=txn,
                notes=f"{txn.get_type_display()} {txn.transaction_number}",
                cost_price=item.rate if direction == "IN" else item.product.purchase_price,
            )
            movements.append(movement)
    return movements


def reverse_document_movements(txn):
    """Move back whatever stock the document still holds moved."""
    net = defaultdict(lambda: QTY_ZERO)
    rows = (
        StockMovement.objects.filter(transaction=txn, movement_type__in=("IN", "OUT"))
        .values("product", "movement_type")
        .annotate(total=models.Sum("quantity"))
    )
    for row in rows:
        sign = 1 if row["movement_type"] == "IN" else -1
        net[row["product"]] += sign * row["total"]

    movements = []
    with transaction.atomic():
        for product in Product.objects.filter(pk__in=[pk for pk, qty in net.items() if qty]).order_by("pk"):
            qty = net[product.pk]
            _product, movement = move_stock(
                product,
                abs(qty),
                "OUT" if qty > 0 else "IN",
                txn=txn,
                notes=f"Reversal of {txn.transaction_number}",
            )
            movements.append(movement)
    return movements
