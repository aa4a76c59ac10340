from decimal import Decimal

from django.core.exceptions import ValidationError as DjangoValidationError
from django.test import override_settings

from .. import services
from ..chart import (CASH_CODE, COGS_CODE, GENERAL_EXPENSE_CODE, INPUT_TAX_CODE,
                     INVENTORY_CODE, PAYABLE_CODE, RECEIVABLE_CODE,
                     SALES_REVENUE_CODE, TAX_PAYABLE_CODE)
from ..exceptions import UnbalancedLedgerError, ValidationError
from ..models import (LedgerEntry, Product, Tax, Transaction, TransactionItem,
                      TransactionStatus)
from ..posting import build_entries, post_transaction, verify_account_balances
from .base import BooksTestCase


def entry_map(txn):
    """{account code: (debit, credit)} for one transaction."""
    return {
        e.account.code: (e.debit_amount, e.credit_amount)
        for e in LedgerEntry.objects.filter(transaction=txn).select_related("account")
    }


class InvoiceAndBillPostingTests(BooksTestCase):

    def setUp(self):
        super().setUp()
        self.gst = Tax.objects.create(company=self.company, name="GST 10%", rate=Decimal("10.00"))

    def test_invoice_debits_receivable_credits_revenue_and_tax(self):
        inv = self.make_invoice(items=[{"quantity": 2, "rate": "50", "tax_id": self.gst.pk}])
        self.assertEqual(inv.total_amount, Decimal("110.00"))
        self.assertEqual(entry_map(inv), {
            RECEIVABLE_CODE: (Decimal("110.00"), Decimal("0.00")),
            SALES_REVENUE_CODE: (Decimal("0.00"), Decimal("100.00")),
            TAX_PAYABLE_CODE: (Decimal("0.00"), Decimal("10.00")),
        })
        self.assertEqual(self.balance(TAX_PAYABLE_CODE), Decimal("10.00"))

    def test_bill_debits_expense_and_input_tax(self):
        bill = self.make_bill(items=[{"quantity": 1, "rate": "200", "tax_id": self.gst.pk}])
        self.assertEqual(entry_map(bill), {
            GENERAL_EXPENSE_CODE: (Decimal("200.00"), Decimal("0.00")),
            INPUT_TAX_CODE: (Decimal("20.00"), Decimal("0.00")),
            PAYABLE_CODE: (Decimal("0.00"), Decimal("220.00")),
        })

    def test_zero_tax_line_is_not_written(self):
        inv = self.make_invoice("75.00")
        self.assertNotIn(TAX_PAYABLE_CODE, entry_map(inv))

    def test_product_and_line_accounts_override_defaults(self):
        consulting = services.create_account(self.company, self.user, "4100", "Consulting Income", "REVENUE")
        hosting = services.create_account(self.company, self.user, "4200", "Hosting Income", "REVENUE")
        product = Product.objects.create(company=self.company, sku="SRV", name="Consulting",
                                         sale_price=Decimal("120.00"), is_service=True,
                                         sales_account=consulting)
        inv = self.make_invoice(items=[
            {"product_id": product.pk, "quantity": 1},
            {"product_id": product.pk, "quantity": 1, "account_id": hosting.pk},
            {"description": "misc", "quantity": 1, "rate": "10"},
        ])
        entries = entry_map(inv)
        self.assertEqual(entries["4100"], (Decimal("0.00"), Decimal("120.00")))
        self.assertEqual(entries["4200"], (Decimal("0.00"), Decimal("120.00")))
        self.assertEqual(entries[SALES_REVENUE_CODE], (Decimal("0.00"), Decimal("10.00")))

    def test_discounted_line_posts_net_amount(self):
        inv = self.make_invoice(items=[{"quantity": 1, "rate": "100", "discount_percent": "20",
                                        "tax_id": self.gst.pk}])
        self.assertEqual(entry_map(inv), {
            RECEIVABLE_CODE: (Decimal("88.00"), Decimal("0.00")),
            SALES_REVENUE_CODE: (Decimal("0.00"), Decimal("80.00")),
            TAX_PAYABLE_CODE: (Decimal("0.00"), Decimal("8.00")),
        })

    @override_settings(BOOKS_POST_COGS=True)
    def test_cogs_posted_for_tracked_products(self):
        widget = Product.objects.create(company=self.company, sku="W1", name="Widget",
                                        sale_price=Decimal("25"), purchase_price=Decimal("10"),
                                        opening_stock=Decimal("5"))
        bill = self.make_bill(items=[{"product_id": widget.pk, "quantity": 3}])
        self.assertIn(INVENTORY_CODE, entry_map(bill))

        inv = self.make_invoice(items=[{"product_id": widget.pk, "quantity": 4}])
        entries = entry_map(inv)
        self.assertEqual(entries[COGS_CODE], (Decimal("40.00"), Decimal("0.00")))
        self.assertEqual(entries[INVENTORY_CODE], (Decimal("0.00"), Decimal("40.00")))
        self.assertEqual(self.balance(INVENTORY_CODE), Decimal("-10.00"))


class StandaloneDocumentTests(BooksTestCase):

    def test_receipt_and_payment_move_cash(self):
        receipt = self.make_doc("RECEIPT", "60.00", status="ACCEPTED")
        payment = self.make_doc("PAYMENT", "25.00", status="ACCEPTED")
        self.assertEqual(entry_map(receipt)[CASH_CODE], (Decimal("60.00"), Decimal("0.00")))
        self.assertEqual(entry_map(payment)[CASH_CODE], (Decimal("0.00"), Decimal("25.00")))
        self.assertEqual(self.balance(CASH_CODE), Decimal("35.00"))
        self.assertEqual(self.balance(SALES_REVENUE_CODE), Decimal("60.00"))
        self.assertEqual(self.balance(GENERAL_EXPENSE_CODE), Decimal("25.00"))

    def test_journal_posts_each_line_on_its_side(self):
        journal = self.make_journal(GENERAL_EXPENSE_CODE, CASH_CODE, "42.50")
        self.assertEqual(entry_map(journal), {
            GENERAL_EXPENSE_CODE: (Decimal("42.50"), Decimal("0.00")),
            CASH_CODE: (Decimal("0.00"), Decimal("42.50")),
        })

    def test_unbalanced_journal_is_refused_at_creation(self):
        items = [
            {"account_id": self.account(CASH_CODE).pk, "side": "DEBIT", "quantity": 1, "rate": "10"},
            {"account_id": self.account("3001").pk, "side": "CREDIT", "quantity": 1, "rate": "9"},
        ]
        with self.assertRaises(ValidationError):
            services.create_transaction(self.company, self.user, "JOURNAL", items)
        with self.assertRaises(ValidationError):
            services.create_transaction(self.company, self.user, "JOURNAL", [{"quantity": 1, "rate": "1"}])
        with self.assertRaises(ValidationError):
            services.create_transaction(self.company, self.user, "INVOICE",
                                        [{"quantity": 1, "rate": "1", "side": "DEBIT"}])


class PosterGuardTests(BooksTestCase):

    def test_unbalanced_entries_are_never_written(self):
        journal = self.make_journal(CASH_CODE, "3001", "10.00")
        # tamper with a stored line so the document no longer balances
        journal_item = journal.items.get(side="CREDIT")
        TransactionItem.objects.filter(pk=journal_item.pk).update(amount=Decimal("9.00"))
        Transaction.objects.filter(pk=journal.pk).update(posted_at=None)
        journal.refresh_from_db()

        with self.assertRaises(UnbalancedLedgerError):
            build_entries(journal)
        with self.assertRaises(UnbalancedLedgerError):
            post_transaction(journal)
        self.assertEqual(LedgerEntry.objects.filter(transaction=journal).count(), 2)

    def test_posting_twice_is_a_no_op(self):
        inv = self.make_invoice("30.00")
        self.assertEqual(post_transaction(inv), [])
        self.assertEqual(self.balance(RECEIVABLE_CODE), Decimal("30.00"))

    def test_ledger_entries_are_immutable(self):
        inv = self.make_invoice("30.00")
        entry = LedgerEntry.objects.filter(transaction=inv).first()
        entry.debit_amount = Decimal("1.00")
        with self.assertRaises(DjangoValidationError):
            entry.save()
        with self.assertRaises(DjangoValidationError):
            entry.delete()

    def test_every_posted_transaction_balances(self):
        self.make_invoice("10.00")
        self.make_bill("7.00")
        self.make_journal(CASH_CODE, "3001", "3.00")
        inv = self.make_invoice("8.00")
        services.apply_payment(self.company, self.user, inv.pk, "8.00")
        result = verify_account_balances(self.company)
        self.assertGreaterEqual(result["accounts_checked"], 11)
        self.assertEqual(
            Transaction.objects.filter(company=self.company, status=TransactionStatus.PAID).count(), 2
        )
