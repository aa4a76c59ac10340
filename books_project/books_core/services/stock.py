import logging

from django.db import models, transaction

from ..exceptions import NotFoundError, ValidationError, translate_errors
from ..inventory import move_stock
from ..models import MOVEMENT_TYPES, Product, StockMovement

logger = logging.getLogger(__name__)


@translate_errors
def adjust_stock(company, user, product_id, quantity, movement_type, notes=None, cost_price=None):
    """
    Manual stock movement. IN adds, OUT removes (never below zero),
    ADJUSTMENT sets the counted on-hand quantity.
    Returns {"product": Product, "movement": StockMovement}.
    """
    if movement_type not in dict(MOVEMENT_TYPES):
        raise ValidationError(f"movement_type must be one of IN, OUT, ADJUSTMENT; got {movement_type!r}")

    with transaction.atomic():
        try:
            product = Product.objects.active(company).get(pk=product_id)
        except (Product.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"Product {product_id} not found")
        product, movement = move_stock(
            product, quantity, movement_type, notes=notes, cost_price=cost_price
        )

    logger.info(
        "Stock %s of %s for %s by %s, now %s",
        movement_type, movement.quantity, product.sku, getattr(user, "pk", None),
        movement.balance_quantity,
    )
    return {"product": product, "movement": movement}


@translate_errors
def low_stock_products(company):
    """Active stock-tracked products at or below their minimum level."""
    return (
        Product.objects.active(company)
        .filter(is_service=False, min_stock_level__isnull=False)
        .filter(current_stock__lte=models.F("min_stock_level"))
        .order_by("sku")
    )


@translate_errors
def stock_history(company, product_id):
    """Movements of one product, oldest first."""
    try:
        product = Product.objects.for_company(company).get(pk=product_id)
    except (Product.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"Product {product_id} not found")
    return StockMovement.objects.for_company(company).filter(product=product)
