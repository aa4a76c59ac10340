from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .account import Account
from .entitymembership import Company
from .tax import Tax


# ---------- Products (goods and services) ----------
class Product(models.Model):  # Something a company sells & purchases

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    # Stock Keeping Unit, unique per company
    sku = models.CharField(max_length=80)
    name = models.CharField(max_length=200)
    description = models.TextField(null=True, blank=True)
    unit = models.CharField(max_length=20, default="Nos")

    # store standard prices per product
    sale_price = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00")
    )
    purchase_price = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00")
    )

    # Stock levels (services never track inventory)
    opening_stock = models.DecimalField(
        max_digits=14, decimal_places=3, default=Decimal("0.000")
    )
    current_stock = models.DecimalField(
        max_digits=14, decimal_places=3, default=Decimal("0.000")
    )
    min_stock_level = models.DecimalField(
        max_digits=14, decimal_places=3, null=True, blank=True
    )
    is_service = models.BooleanField(default=False)

    default_tax = models.ForeignKey(
        Tax, null=True, blank=True, on_delete=models.SET_NULL
    )

    # If an Account is set, invoices for this product post revenue to it
    """ Example: Product "Web Hosting" → posts to "4001: Sales Revenue". """
    sales_account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="products_sales_account",
    )
    # Expense account used when the product appears on a bill
    purchase_account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="products_purchase_account",
    )

    is_active = models.BooleanField(default=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        # Ensure each SKU is unique within a company
        constraints = [
            models.UniqueConstraint(
                fields=["company", "sku"], name="uq_company_product_sku"
            ),
            models.CheckConstraint(
                condition=models.Q(current_stock__gte=0),
                name="product_stock_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.sku} {self.name}"

    @property
    def tracks_inventory(self):
        return not self.is_service

    @property
    def is_low_stock(self):
        if self.min_stock_level is None or self.is_service:
            return False
        return self.current_stock <= self.min_stock_level

    """ Can’t create a Product for Company A
    but point it to an Account or Tax from Company B """

    def clean(self):
        for field in ("sales_account", "purchase_account", "default_tax"):
            related = getattr(self, field)
            if related is not None and related.company_id != self.company_id:
                raise ValidationError(
                    f"{field} must belong to the same company as the product."
                )
        if self.sale_price is not None and self.sale_price < 0:
            raise ValidationError("Sale price must be >= 0")
        if self.purchase_price is not None and self.purchase_price < 0:
            raise ValidationError("Purchase price must be >= 0")
        if self.current_stock is not None and self.current_stock < 0:
            raise ValidationError("Stock cannot be negative")

    def save(self, *args, **kwargs):
        self.full_clean()  # run validations before saving
        return super().save(*args, **kwargs)
