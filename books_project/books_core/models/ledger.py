from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .account import Account
from .entitymembership import Company
from .transaction import Transaction


class LedgerEntry(models.Model):
    """
    One debit-or-credit row tying a monetary movement to an account and a
    transaction. Rows are written once by the poster and never edited;
    corrections go through a new reversing transaction.
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    # Must point to one Account (can’t delete account if entries exist → PROTECT)
    account = models.ForeignKey(
        Account, on_delete=models.PROTECT, related_name="ledger_entries"
    )
    transaction = models.ForeignKey(
        Transaction, on_delete=models.CASCADE, related_name="ledger_entries"
    )
    date = models.DateField()
    debit_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    description = models.CharField(max_length=400, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["account", "date"], name="ledger_account_date_idx"),
            models.Index(fields=["company", "date"], name="ledger_company_date_idx"),
        ]
        ordering = ("date", "id")

        # Exactly one side carries a positive amount
        constraints = [
            models.CheckConstraint(
                condition=models.Q(debit_amount__gte=0) & models.Q(credit_amount__gte=0),
                name="ledger_non_negative_amounts",
            ),
            models.CheckConstraint(
                condition=~(models.Q(debit_amount=0) & models.Q(credit_amount=0)),
                name="ledger_one_side_nonzero",
            ),
            models.CheckConstraint(
                condition=~(models.Q(debit_amount__gt=0) & models.Q(credit_amount__gt=0)),
                name="ledger_not_both_sides",
            ),
        ]

    def __str__(self):
        return f"{self.transaction_id} | {self.account_id} | D:{self.debit_amount} C:{self.credit_amount}"

    def clean(self):
        if self.debit_amount < 0 or self.credit_amount < 0:
            raise ValidationError("Debit and credit must be >= 0")
        if self.debit_amount > 0 and self.credit_amount > 0:
            raise ValidationError("LedgerEntry should not have both debit and credit > 0")
        if self.debit_amount == 0 and self.credit_amount == 0:
            raise ValidationError("LedgerEntry requires a non-0 amount on either debit or credit")
        if self.account.company_id != self.company_id:
            raise ValidationError("LedgerEntry.account must belong to the same company.")
        if self.transaction.company_id != self.company_id:
            raise ValidationError("LedgerEntry.transaction must belong to the same company.")

    def save(self, *args, **kwargs):
        if self.pk:
            raise ValidationError("Ledger entries are immutable once written.")
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        # Removal only happens through deleting the owning (modifiable) transaction
        raise ValidationError("Ledger entries cannot be deleted individually.")
