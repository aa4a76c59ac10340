from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .entitymembership import Company


class AccountType(models.TextChoices):
    # Classify account into the basic accounting types;
    # contra types offset the section they sit in
    ASSET = "ASSET", "Asset"
    LIABILITY = "LIABILITY", "Liability"
    EQUITY = "EQUITY", "Equity"
    REVENUE = "REVENUE", "Revenue"
    EXPENSE = "EXPENSE", "Expense"
    CONTRA_ASSET = "CONTRA_ASSET", "Contra asset"
    CONTRA_LIABILITY = "CONTRA_LIABILITY", "Contra liability"


# Accounts whose balance grows on the debit side.
# Everything else grows on the credit side.
DEBIT_NORMAL_TYPES = frozenset(
    {AccountType.ASSET, AccountType.EXPENSE, AccountType.CONTRA_LIABILITY}
)


def signed_movement(ac_type, debit, credit):
    """Balance change produced by a debit/credit pair on an account of `ac_type`."""
    debit = debit or Decimal("0.00")
    credit = credit or Decimal("0.00")
    if ac_type in DEBIT_NORMAL_TYPES:
        return debit - credit
    return credit - debit


class Account(models.Model):
    """
    Ledger account in the Chart of Accounts.
    - code is unique per company
    - type determines reporting (balance sheet vs P&L) and the sign convention
    - current_balance is maintained incrementally by the ledger poster
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    code = models.CharField(max_length=32)
    name = models.CharField(max_length=200)
    type = models.CharField(max_length=20, choices=AccountType.choices)
    description = models.TextField(null=True, blank=True)

    # Optional hierarchy (e.g. 1000 Cash, 1001 Petty Cash, 1002 Bank Account)
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,  # you can’t delete a parent if children exist
        related_name="children",
    )

    # Amount brought in when the account was opened (informational;
    # the opening journal carries the ledger effect)
    opening_balance = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00")
    )
    # Running balance in the account's normal-side terms
    current_balance = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00")
    )

    # System accounts are created with the company and can never be deleted
    is_system_account = models.BooleanField(default=False)
    # “soft deactivate” accounts without deleting history
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "type"], name="account_company_type_idx"),
        ]
        # Codes repeat across companies but must be unique within one
        constraints = [
            models.UniqueConstraint(
                fields=["company", "code"], name="uq_company_account_code"
            )
        ]
        ordering = ("company", "code")

    def __str__(self):
        return f"{self.code} – {self.name}"

    @property
    def is_debit_normal(self):
        return self.type in DEBIT_NORMAL_TYPES

    def movement(self, debit, credit):
        return signed_movement(self.type, debit, credit)

    def clean(self):
        """Enforce company consistency and an acyclic hierarchy"""
        if self.parent_id is None:
            return
        parent = self.parent
        if parent.company_id != self.company_id:
            raise ValidationError(
                "Parent & child accounts must belong to the same company"
            )
        if self.pk and parent.pk == self.pk:
            raise ValidationError("Account cannot be its own parent")

        # Walk up from the new parent; meeting self means a cycle
        seen = set()
        node = parent
        while node is not None:
            if self.pk and node.pk == self.pk:
                raise ValidationError(
                    "Parent assignment would create a cycle in the chart of accounts"
                )
            if node.pk in seen:  # pre-existing corrupt loop
                raise ValidationError("Chart of accounts contains a cycle")
            seen.add(node.pk)
            node = node.parent

    def save(self, *args, **kwargs):
        self.full_clean()  # run validations before saving
        return super().save(*args, **kwargs)
