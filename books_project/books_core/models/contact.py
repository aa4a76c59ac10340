from django.db import models

from ..managers import TenantManager
from .entitymembership import Company


# ---------- Contact ----------
# A customer (receives invoices) and/or vendor (sends bills)
class Contact(models.Model):
    company = models.ForeignKey(Company, on_delete=models.CASCADE)

    name = models.CharField(max_length=200)
    email = models.EmailField(null=True, blank=True)

    is_customer = models.BooleanField(default=True)
    is_vendor = models.BooleanField(default=False)

    # Standard credit terms
    payment_terms_days = models.IntegerField(default=30)
    """ Example: If terms = 30 → invoice due 30 days after issue. """

    is_active = models.BooleanField(default=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "name"], name="contact_company_name_idx"),
        ]

    def __str__(self):
        return self.name
