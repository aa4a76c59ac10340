from django.db import models
from django.utils import timezone
from ..managers import TenantManager
from .entitymembership import Company
from .product import Product
from .transaction import Transaction

MOVEMENT_TYPES = [
    ("IN", "In"),                  # goods received
    ("OUT", "Out"),                # goods issued
    ("ADJUSTMENT", "Adjustment"),  # stock count: sets the absolute quantity
]


class StockMovement(models.Model):
    """Quantity ledger for a product; balance_quantity is the running total."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    product = models.ForeignKey(
        Product, on_delete=models.CASCADE, related_name="stock_movements"
    )
    # Document that caused the movement (None for manual adjustments)
    transaction = models.ForeignKey(
        Transaction,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="stock_movements",
    )
    movement_type = models.CharField(max_length=20, choices=MOVEMENT_TYPES)
    quantity = models.DecimalField(max_digits=14, decimal_places=3)
    cost_price = models.DecimalField(max_digits=18, decimal_places=2, null=True, blank=True)
    # On-hand quantity right after this movement
    balance_quantity = models.DecimalField(max_digits=14, decimal_places=3)
    movement_date = models.DateTimeField(default=timezone.now)
    notes = models.TextField(null=True, blank=True)

    objects = TenantManager()

    class Meta:
        ordering = ("movement_date", "id")
        indexes = [
            models.Index(fields=["product", "movement_date"], name="stock_product_date_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(balance_quantity__gte=0),
                name="stock_balance_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.product_id} {self.movement_type} {self.quantity} → {self.balance_quantity}"
