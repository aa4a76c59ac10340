import datetime
from decimal import Decimal

import pytest

from books_core import services
from books_core.exceptions import NotFoundError
from books_core.models import Company, EntityMembership, Product, Transaction

from .base import BooksTestCase


class TenantIsolationTests(BooksTestCase):

    def setUp(self):
        super().setUp()
        self.other = Company.objects.create(name="Company B", slug="com-b")
        self.inv_a = self.make_invoice("200.00")
        self.inv_b = self.make_invoice("100.00", company=self.other)
        self.product_b = Product.objects.create(company=self.other, sku="B-1", name="B widget",
                                                opening_stock=Decimal("3"))

    def test_for_company_returns_only_that_company_objects(self):
        self.assertListEqual(
            list(Transaction.objects.for_company(self.company).values_list("pk", flat=True)),
            [self.inv_a.pk],
        )
        self.assertListEqual(
            list(Transaction.objects.for_company(self.other).values_list("pk", flat=True)),
            [self.inv_b.pk],
        )

    def test_numbering_is_per_company(self):
        self.assertEqual(self.inv_a.transaction_number, self.inv_b.transaction_number)

    def test_other_company_references_are_not_found(self):
        calls = [
            lambda: services.get_transaction(self.company, self.inv_b.pk),
            lambda: services.transition_status(self.company, self.user, self.inv_b.pk, "CANCELLED"),
            lambda: services.apply_payment(self.company, self.user, self.inv_b.pk, "10"),
            lambda: services.delete_transaction(self.company, self.user, self.inv_b.pk),
            lambda: services.adjust_stock(self.company, self.user, self.product_b.pk, "1", "IN"),
            lambda: services.create_transaction(self.company, self.user, "INVOICE",
                                                [{"product_id": self.product_b.pk, "quantity": 1}]),
            lambda: services.get_account_balance(self.company, self.account("1001", self.other).pk),
        ]
        for call in calls:
            with self.assertRaises(NotFoundError):
                call()

        self.inv_b.refresh_from_db()
        self.assertEqual(self.inv_b.status, "SENT")
        self.assertEqual(self.inv_b.paid_amount, Decimal("0.00"))

    def test_ledgers_stay_apart(self):
        self.assertEqual(self.balance("1200"), Decimal("200.00"))
        self.assertEqual(self.balance("1200", self.other), Decimal("100.00"))
        today = datetime.date.today()
        report = services.get_profit_loss(self.other, today, today)
        self.assertEqual(report["total_revenue"], Decimal("100.00"))

    def test_role_is_per_company(self):
        self.assertEqual(EntityMembership.role_for(self.user, self.company), "ACCOUNTANT")
        self.assertEqual(EntityMembership.role_for(self.user, self.other), "")


@pytest.mark.django_db
def test_listing_returns_only_tenant_data(django_user_model):
    user = django_user_model.objects.create_user(username="bob", password="pw")
    c1 = Company.objects.create(name="Company A", slug="com-a")
    c2 = Company.objects.create(name="Company B", slug="com-b")

    services.create_transaction(c1, user, "INVOICE", [{"quantity": 1, "rate": "100"}])
    services.create_transaction(c2, user, "INVOICE", [{"quantity": 1, "rate": "200"}])
    services.create_transaction(c2, user, "BILL", [{"quantity": 1, "rate": "50"}])

    listed = list(services.list_transactions(c1))
    assert [t.total_amount for t in listed] == [Decimal("100.00")]
    assert services.list_transactions(c2, txn_type="INVOICE").count() == 1
