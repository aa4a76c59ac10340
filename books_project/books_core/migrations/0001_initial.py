import django.db.models.deletion
import django.utils.timezone
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


ACCOUNT_TYPES = [
    ("ASSET", "Asset"),
    ("LIABILITY", "Liability"),
    ("EQUITY", "Equity"),
    ("REVENUE", "Revenue"),
    ("EXPENSE", "Expense"),
    ("CONTRA_ASSET", "Contra asset"),
    ("CONTRA_LIABILITY", "Contra liability"),
]

TRANSACTION_TYPES = [
    ("SALES_ORDER", "Sales order"),
    ("PURCHASE_ORDER", "Purchase order"),
    ("INVOICE", "Invoice"),
    ("BILL", "Bill"),
    ("PAYMENT", "Payment"),
    ("RECEIPT", "Receipt"),
    ("JOURNAL", "Journal"),
]

TRANSACTION_STATUSES = [
    ("DRAFT", "Draft"),
    ("PENDING_APPROVAL", "Pending approval"),
    ("APPROVED", "Approved"),
    ("SENT", "Sent"),
    ("CHANGES_REQUESTED", "Changes requested"),
    ("REJECTED", "Rejected"),
    ("ACCEPTED", "Accepted"),
    ("PARTIALLY_PAID", "Partially paid"),
    ("PAID", "Paid"),
    ("CANCELLED", "Cancelled"),
    ("OVERDUE", "Overdue"),
]


def money(**kwargs):
    return models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18, **kwargs)


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Company",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("slug", models.SlugField(max_length=80, unique=True)),
                ("currency_code", models.CharField(default="USD", max_length=10)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("owner", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                                            related_name="owned_companies", to=settings.AUTH_USER_MODEL)),
            ],
            options={"verbose_name_plural": "companies"},
        ),
        migrations.CreateModel(
            name="EntityMembership",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("role", models.CharField(choices=[("ADMIN", "Admin"), ("ACCOUNTANT", "Accountant"), ("VIEWER", "Viewer")],
                                          default="VIEWER", max_length=20)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                              related_name="memberships", to="books_core.company")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                           related_name="memberships", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("user", "company"), name="uq_user_company_membership"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Account",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=32)),
                ("name", models.CharField(max_length=200)),
                ("type", models.CharField(choices=ACCOUNT_TYPES, max_length=20)),
                ("description", models.TextField(blank=True, null=True)),
                ("opening_balance", money()),
                ("current_balance", money()),
                ("is_system_account", models.BooleanField(default=False)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("parent", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                                             related_name="children", to="books_core.account")),
            ],
            options={
                "ordering": ("company", "code"),
                "indexes": [models.Index(fields=["company", "type"], name="account_company_type_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "code"), name="uq_company_account_code"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Contact",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("email", models.EmailField(blank=True, max_length=254, null=True)),
                ("is_customer", models.BooleanField(default=True)),
                ("is_vendor", models.BooleanField(default=False)),
                ("payment_terms_days", models.IntegerField(default=30)),
                ("is_active", models.BooleanField(default=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
            ],
            options={
                "indexes": [models.Index(fields=["company", "name"], name="contact_company_name_idx")],
            },
        ),
        migrations.CreateModel(
            name="Tax",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("type", models.CharField(default="GST", max_length=20)),
                ("rate", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=5)),
                ("description", models.TextField(blank=True, null=True)),
                ("is_compound", models.BooleanField(default=False)),
                ("is_active", models.BooleanField(default=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
            ],
            options={"verbose_name_plural": "taxes"},
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sku", models.CharField(max_length=80)),
                ("name", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True, null=True)),
                ("unit", models.CharField(default="Nos", max_length=20)),
                ("sale_price", money()),
                ("purchase_price", money()),
                ("opening_stock", models.DecimalField(decimal_places=3, default=Decimal("0.000"), max_digits=14)),
                ("current_stock", models.DecimalField(decimal_places=3, default=Decimal("0.000"), max_digits=14)),
                ("min_stock_level", models.DecimalField(blank=True, decimal_places=3, max_digits=14, null=True)),
                ("is_service", models.BooleanField(default=False)),
                ("is_active", models.BooleanField(default=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("default_tax", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                                                  to="books_core.tax")),
                ("purchase_account", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                                                       related_name="products_purchase_account", to="books_core.account")),
                ("sales_account", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                                                    related_name="products_sales_account", to="books_core.account")),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("company", "sku"), name="uq_company_product_sku"),
                    models.CheckConstraint(condition=models.Q(current_stock__gte=0), name="product_stock_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Transaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("transaction_number", models.CharField(max_length=40)),
                ("type", models.CharField(choices=TRANSACTION_TYPES, max_length=20)),
                ("status", models.CharField(choices=TRANSACTION_STATUSES, default="DRAFT", max_length=20)),
                ("date", models.DateField()),
                ("due_date", models.DateField(blank=True, null=True)),
                ("reference_number", models.CharField(blank=True, max_length=100, null=True)),
                ("subtotal", money()),
                ("discount_amount", money()),
                ("tax_amount", money()),
                ("total_amount", money()),
                ("paid_amount", money()),
                ("balance_amount", money()),
                ("notes", models.TextField(blank=True, null=True)),
                ("terms", models.TextField(blank=True, null=True)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                ("accepted_at", models.DateTimeField(blank=True, null=True)),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                ("rejection_reason", models.TextField(blank=True, null=True)),
                ("posted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("contact", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                                              to="books_core.contact")),
                ("parent", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                                             related_name="children", to="books_core.transaction")),
                ("reverses", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE,
                                               related_name="reversals", to="books_core.transaction")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                                                 related_name="created_transactions", to=settings.AUTH_USER_MODEL)),
                ("approved_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                                                  related_name="approved_transactions", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["company", "type", "status"], name="txn_company_type_status_idx"),
                    models.Index(fields=["company", "date"], name="txn_company_date_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "type", "transaction_number"),
                                            name="uq_txn_company_type_number"),
                    models.CheckConstraint(condition=models.Q(paid_amount__gte=0), name="txn_paid_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="TransactionItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("description", models.TextField(blank=True, null=True)),
                ("quantity", models.DecimalField(decimal_places=3, default=Decimal("1.000"), max_digits=14)),
                ("unit", models.CharField(default="Nos", max_length=20)),
                ("rate", money()),
                ("discount_percent", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=5)),
                ("discount_amount", money()),
                ("tax_amount", money()),
                ("amount", money()),
                ("side", models.CharField(blank=True, choices=[("DEBIT", "Debit"), ("CREDIT", "Credit")],
                                          max_length=6, null=True)),
                ("notes", models.TextField(blank=True, null=True)),
                ("sort_order", models.PositiveIntegerField(default=0)),
                ("account", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                                              to="books_core.account")),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("product", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                                              to="books_core.product")),
                ("tax", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                                          to="books_core.tax")),
                ("transaction", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                                  related_name="items", to="books_core.transaction")),
            ],
            options={
                "ordering": ("sort_order", "id"),
                "constraints": [
                    models.CheckConstraint(condition=models.Q(quantity__gt=0) & models.Q(rate__gte=0),
                                           name="txn_item_positive_qty_non_negative_rate"),
                ],
            },
        ),
        migrations.CreateModel(
            name="TransactionSequence",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("type", models.CharField(choices=TRANSACTION_TYPES, max_length=20)),
                ("next_value", models.PositiveIntegerField(default=1)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("company", "type"), name="uq_txn_sequence_company_type"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("payment_date", models.DateField()),
                ("method", models.CharField(choices=[("CASH", "Cash"), ("BANK_TRANSFER", "Bank Transfer"),
                                                     ("CHEQUE", "Cheque"), ("CARD", "Card"), ("OTHER", "Other")],
                                            default="BANK_TRANSFER", max_length=20)),
                ("reference", models.CharField(blank=True, max_length=200, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("settlement", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                                 related_name="applied_payments", to="books_core.transaction")),
                ("transaction", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                                  related_name="payments", to="books_core.transaction")),
            ],
            options={
                "ordering": ("-payment_date", "-id"),
                "constraints": [
                    models.CheckConstraint(condition=models.Q(amount__gt=0), name="payment_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("date", models.DateField()),
                ("debit_amount", money()),
                ("credit_amount", money()),
                ("description", models.CharField(blank=True, max_length=400, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT,
                                              related_name="ledger_entries", to="books_core.account")),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("transaction", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                                  related_name="ledger_entries", to="books_core.transaction")),
            ],
            options={
                "ordering": ("date", "id"),
                "indexes": [
                    models.Index(fields=["account", "date"], name="ledger_account_date_idx"),
                    models.Index(fields=["company", "date"], name="ledger_company_date_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(debit_amount__gte=0) & models.Q(credit_amount__gte=0),
                                           name="ledger_non_negative_amounts"),
                    models.CheckConstraint(condition=~(models.Q(debit_amount=0) & models.Q(credit_amount=0)),
                                           name="ledger_one_side_nonzero"),
                    models.CheckConstraint(condition=~(models.Q(debit_amount__gt=0) & models.Q(credit_amount__gt=0)),
                                           name="ledger_not_both_sides"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("movement_type", models.CharField(choices=[("IN", "In"), ("OUT", "Out"), ("ADJUSTMENT", "Adjustment")],
                                                   max_length=20)),
                ("quantity", models.DecimalField(decimal_places=3, max_digits=14)),
                ("cost_price", models.DecimalField(blank=True, decimal_places=2, max_digits=18, null=True)),
                ("balance_quantity", models.DecimalField(decimal_places=3, max_digits=14)),
                ("movement_date", models.DateTimeField(default=django.utils.timezone.now)),
                ("notes", models.TextField(blank=True, null=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                              related_name="stock_movements", to="books_core.product")),
                ("transaction", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                                                  related_name="stock_movements", to="books_core.transaction")),
            ],
            options={
                "ordering": ("movement_date", "id"),
                "indexes": [models.Index(fields=["product", "movement_date"], name="stock_product_date_idx")],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(balance_quantity__gte=0),
                                           name="stock_balance_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ApprovalHistory",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(choices=TRANSACTION_STATUSES, max_length=20)),
                ("from_status", models.CharField(blank=True, choices=TRANSACTION_STATUSES, max_length=20, null=True)),
                ("performed_by_name", models.CharField(blank=True, default="", max_length=150)),
                ("performed_by_role", models.CharField(blank=True, default="", max_length=20)),
                ("comments", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("performed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                                                   to=settings.AUTH_USER_MODEL)),
                ("transaction", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                                  related_name="approval_history", to="books_core.transaction")),
            ],
            options={
                "ordering": ("created_at", "id"),
                "verbose_name_plural": "approval history",
            },
        ),
    ]
