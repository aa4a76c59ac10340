import datetime
from decimal import Decimal
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from ..managers import OVERDUE_STATUSES, TenantManager, TransactionManager
from .account import Account
from .contact import Contact
from .entitymembership import Company
from .product import Product
from .tax import Tax


class TransactionType(models.TextChoices):
    SALES_ORDER = "SALES_ORDER", "Sales order"
    PURCHASE_ORDER = "PURCHASE_ORDER", "Purchase order"
    INVOICE = "INVOICE", "Invoice"
    BILL = "BILL", "Bill"
    PAYMENT = "PAYMENT", "Payment"
    RECEIPT = "RECEIPT", "Receipt"
    JOURNAL = "JOURNAL", "Journal"


class TransactionStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    PENDING_APPROVAL = "PENDING_APPROVAL", "Pending approval"
    APPROVED = "APPROVED", "Approved"
    SENT = "SENT", "Sent"
    CHANGES_REQUESTED = "CHANGES_REQUESTED", "Changes requested"
    REJECTED = "REJECTED", "Rejected"
    ACCEPTED = "ACCEPTED", "Accepted"
    PARTIALLY_PAID = "PARTIALLY_PAID", "Partially paid"
    PAID = "PAID", "Paid"
    CANCELLED = "CANCELLED", "Cancelled"
    # Derived on read only, never persisted (see Transaction.display_status)
    OVERDUE = "OVERDUE", "Overdue"


# Items/contact/date editable and the document deletable only here
MODIFIABLE_STATUSES = frozenset(
    {
        TransactionStatus.DRAFT,
        TransactionStatus.PENDING_APPROVAL,
        TransactionStatus.APPROVED,
        TransactionStatus.CHANGES_REQUESTED,
    }
)


class EntrySide(models.TextChoices):
    DEBIT = "DEBIT", "Debit"
    CREDIT = "CREDIT", "Credit"


# ---------- Transaction (header) ----------
class Transaction(models.Model):
    """
    One commercial document: order, invoice, bill, payment, receipt or journal.
    Totals are derived from the items by the calculator and stored.
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    # human-readable (e.g. "INV-2025-001"), assigned by numbering
    transaction_number = models.CharField(max_length=40)
    type = models.CharField(max_length=20, choices=TransactionType.choices)
    status = models.CharField(
        max_length=20,
        choices=TransactionStatus.choices,
        default=TransactionStatus.DRAFT,
    )

    contact = models.ForeignKey(
        Contact,
        null=True,
        blank=True,
        on_delete=models.PROTECT,  # prevent deleting a contact with documents
    )

    date = models.DateField()
    due_date = models.DateField(null=True, blank=True)
    reference_number = models.CharField(max_length=100, null=True, blank=True)

    # Document links (e.g. invoice ← sales order, receipt ← invoice)
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="children",
    )
    # Set on reversing journals; they go away with the document they undo
    reverses = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name="reversals",
    )

    # Money
    subtotal = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    discount_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    tax_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    total_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    paid_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    # Always total_amount - paid_amount
    balance_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    notes = models.TextField(null=True, blank=True)
    terms = models.TextField(null=True, blank=True)

    # Who / when per transition
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL,
        related_name="created_transactions",
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL,
        related_name="approved_transactions",
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(null=True, blank=True)
    # Set while the ledger effect of this document is live
    posted_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Enforce tenant scoping
    objects = TransactionManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "type", "status"], name="txn_company_type_status_idx"),
            models.Index(fields=["company", "date"], name="txn_company_date_idx"),
        ]
        constraints = [
            # Within one company and type, each number must be unique
            models.UniqueConstraint(
                fields=["company", "type", "transaction_number"],
                name="uq_txn_company_type_number",
            ),
            models.CheckConstraint(
                condition=models.Q(paid_amount__gte=0),
                name="txn_paid_non_negative",
            ),
        ]

    def __str__(self):
        return self.transaction_number or f"Txn {self.pk}"

    @property
    def is_modifiable(self):
        return self.status in MODIFIABLE_STATUSES

    @property
    def is_posted(self):
        return self.posted_at is not None

    def display_status(self, today=None):
        """
        Status as reported to readers. An unpaid invoice past its due date
        reads as OVERDUE; the stored status is left untouched.
        """
        today = today or datetime.date.today()
        if (
            self.type == TransactionType.INVOICE
            and self.status in OVERDUE_STATUSES
            and self.due_date is not None
            and self.due_date < today
        ):
            return TransactionStatus.OVERDUE
        return self.status

    def clean(self):
        if self.due_date and self.date and self.due_date < self.date:
            raise ValidationError("Due date cannot be before the document date")
        # Prevent cross-company contamination
        if self.contact_id and self.contact.company_id != self.company_id:
            raise ValidationError("Contact must belong to the same company.")
        if self.parent_id and self.parent.company_id != self.company_id:
            raise ValidationError("Parent transaction must belong to the same company.")
        if self.balance_amount != self.total_amount - self.paid_amount:
            raise ValidationError("balance_amount must equal total_amount - paid_amount")


# ---------- Transaction items ----------
class TransactionItem(models.Model):
    """One priced line. `amount` is computed by the calculator, never typed."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    transaction = models.ForeignKey(
        Transaction, on_delete=models.CASCADE, related_name="items"
    )
    product = models.ForeignKey(
        Product,
        null=True,
        blank=True,
        on_delete=models.PROTECT,  # can't delete a product that was invoiced
    )
    description = models.TextField(null=True, blank=True)

    quantity = models.DecimalField(max_digits=14, decimal_places=3, default=Decimal("1.000"))
    unit = models.CharField(max_length=20, default="Nos")
    rate = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    discount_percent = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    discount_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    tax = models.ForeignKey(Tax, null=True, blank=True, on_delete=models.PROTECT)
    tax_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    # Ledger account override for this line (revenue/expense, or any account on journals)
    account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
    )
    # Journal lines only: which side of `account` the amount lands on
    side = models.CharField(max_length=6, choices=EntrySide.choices, null=True, blank=True)

    notes = models.TextField(null=True, blank=True)
    sort_order = models.PositiveIntegerField(default=0)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        ordering = ("sort_order", "id")
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0) & models.Q(rate__gte=0),
                name="txn_item_positive_qty_non_negative_rate",
            ),
        ]

    def __str__(self):
        return f"{self.transaction_id} #{self.sort_order}: {self.description or ''} = {self.amount}"

    @property
    def net_amount(self):
        """Line value before tax (what lands on revenue/expense)."""
        return self.amount - self.tax_amount


# ---------- Numbering counter ----------
class TransactionSequence(models.Model):
    """Next free sequence number per (company, type). Locked while read."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    type = models.CharField(max_length=20, choices=TransactionType.choices)
    next_value = models.PositiveIntegerField(default=1)

    objects = TenantManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["company", "type"], name="uq_txn_sequence_company_type"
            ),
        ]

    def __str__(self):
        return f"{self.company_id}:{self.type} -> {self.next_value}"


PAYMENT_METHODS = [
    ("CASH", "Cash"),
    ("BANK_TRANSFER", "Bank Transfer"),
    ("CHEQUE", "Cheque"),
    ("CARD", "Card"),
    ("OTHER", "Other"),
]


# ---------- Payment application ----------
class Payment(models.Model):
    """
    Bridge between a settled document (invoice/bill) and the receipt/payment
    transaction that settled (part of) it.
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    transaction = models.ForeignKey(
        Transaction, on_delete=models.CASCADE, related_name="payments"
    )
    settlement = models.ForeignKey(
        Transaction, on_delete=models.CASCADE, related_name="applied_payments"
    )
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    payment_date = models.DateField()
    method = models.CharField(max_length=20, choices=PAYMENT_METHODS, default="BANK_TRANSFER")
    reference = models.CharField(max_length=200, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()

    class Meta:
        ordering = ("-payment_date", "-id")
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payment_amount_positive",
            ),
        ]

    def __str__(self):
        return f"{self.settlement} → {self.transaction}: {self.amount}"


# ---------- Approval history ----------
class ApprovalHistory(models.Model):
    """Append-only log of status transitions. Rows are never updated."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    transaction = models.ForeignKey(
        Transaction, on_delete=models.CASCADE, related_name="approval_history"
    )
    # The status the transaction moved to
    action = models.CharField(max_length=20, choices=TransactionStatus.choices)
    from_status = models.CharField(max_length=20, choices=TransactionStatus.choices, null=True, blank=True)
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL,
    )
    performed_by_name = models.CharField(max_length=150, blank=True, default="")
    performed_by_role = models.CharField(max_length=20, blank=True, default="")
    comments = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()

    class Meta:
        ordering = ("created_at", "id")
        verbose_name_plural = "approval history"

    def __str__(self):
        return f"{self.transaction_id}: {self.from_status} → {self.action} by {self.performed_by_name}"

    def save(self, *args, **kwargs):
        if self.pk:
            raise ValidationError("Approval history is append-only.")
        return super().save(*args, **kwargs)
