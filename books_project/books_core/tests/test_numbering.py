import datetime
import threading
from unittest import skipUnless

from django.db import connection, connections
from django.test import SimpleTestCase, TransactionTestCase

from .. import services
from ..models import Company, TransactionSequence
from ..numbering import format_number, next_transaction_number, prefix_for
from .base import BooksTestCase, day


class FormatNumberTests(SimpleTestCase):

    def test_every_type_has_a_prefix(self):
        self.assertEqual(
            [prefix_for(t) for t in ("SALES_ORDER", "PURCHASE_ORDER", "INVOICE", "BILL",
                                     "PAYMENT", "RECEIPT", "JOURNAL")],
            ["SO", "PO", "INV", "BILL", "PAY", "RCP", "JRN"],
        )

    def test_sequence_is_zero_padded_to_three(self):
        self.assertEqual(format_number("INVOICE", 2025, 7), "INV-2025-007")
        self.assertEqual(format_number("BILL", 2025, 1234), "BILL-2025-1234")


class SequentialNumberingTests(BooksTestCase):

    def test_numbers_follow_each_other_per_type(self):
        first = self.make_invoice(status=None, date=day(2025, 3, 1))
        second = self.make_invoice(status=None, date=day(2025, 3, 2))
        bill = self.make_bill(status=None, date=day(2025, 3, 2))
        self.assertEqual(first.transaction_number, "INV-2025-001")
        self.assertEqual(second.transaction_number, "INV-2025-002")
        self.assertEqual(bill.transaction_number, "BILL-2025-001")

    def test_year_comes_from_document_date(self):
        txn = self.make_invoice(status=None, date=day(2023, 12, 31))
        self.assertTrue(txn.transaction_number.startswith("INV-2023-"))

    def test_deleted_numbers_are_not_reused(self):
        self.make_invoice(status=None, date=day(2025, 1, 1))
        doomed = self.make_invoice(status=None, date=day(2025, 1, 1))
        services.delete_transaction(self.company, self.user, doomed.pk)
        third = self.make_invoice(status=None, date=day(2025, 1, 1))
        self.assertEqual(third.transaction_number, "INV-2025-003")

    def test_counter_starts_after_existing_documents(self):
        self.make_invoice(status=None, date=day(2025, 1, 1))
        self.make_invoice(status=None, date=day(2025, 1, 1))
        # counter row lost: the next number must still not collide
        TransactionSequence.objects.filter(company=self.company).delete()
        txn = self.make_invoice(status=None, date=day(2025, 1, 1))
        self.assertEqual(txn.transaction_number, "INV-2025-003")


class OutsideAtomicTests(TransactionTestCase):

    def test_refuses_to_run_outside_a_transaction(self):
        company = Company.objects.create(name="Loose Co", slug="loose-co")
        with self.assertRaises(RuntimeError):
            next_transaction_number(company, "INVOICE", datetime.date(2025, 1, 1))


@skipUnless(connection.vendor == "postgresql", "row locks need PostgreSQL")
class ConcurrentNumberingTests(TransactionTestCase):

    def test_parallel_creates_get_distinct_numbers(self):
        company = Company.objects.create(name="Race Co", slug="race-co")
        numbers, errors = [], []

        def create_one():
            try:
                txn = services.create_transaction(
                    company, None, "INVOICE", [{"quantity": 1, "rate": "10"}],
                    date=datetime.date(2025, 6, 1),
                )
                numbers.append(txn.transaction_number)
            except Exception as exc:
                errors.append(exc)
            finally:
                connections.close_all()

        threads = [threading.Thread(target=create_one) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(sorted(numbers), [f"INV-2025-{n:03d}" for n in range(1, 9)])
