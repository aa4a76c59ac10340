from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .entitymembership import Company


# ---------- Tax ----------
class Tax(models.Model):
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    name = models.CharField(max_length=100)  # e.g. "GST 18%"
    type = models.CharField(max_length=20, default="GST")
    # Percentage applied to the discounted line subtotal
    rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    description = models.TextField(null=True, blank=True)
    is_compound = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        verbose_name_plural = "taxes"

    def __str__(self):
        return self.name

    def clean(self):
        if self.rate is not None and not (Decimal("0") <= self.rate <= Decimal("100")):
            raise ValidationError("Tax rate must be between 0 and 100")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
