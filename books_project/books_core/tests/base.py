import datetime
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase

from .. import services
from ..models import Account, Company, EntityMembership, TransactionStatus

User = get_user_model()


class BooksTestCase(TestCase):
    """One company with its system chart, an accountant and helpers to raise documents."""

    def setUp(self):
        self.user = User.objects.create_user(username="alice", password="pw", first_name="Alice")
        self.company = Company.objects.create(name="Test Co", slug="test-co", owner=self.user)
        EntityMembership.objects.create(user=self.user, company=self.company, role="ACCOUNTANT")

    def account(self, code, company=None):
        return Account.objects.get(company=company or self.company, code=code)

    def balance(self, code, company=None):
        return self.account(code, company).current_balance

    def make_doc(self, txn_type, amount="100.00", status=None, company=None, **kwargs):
        """
        Create a one-line document of `amount` (no tax) and optionally move
        it to `status`.
        """
        items = kwargs.pop("items", None) or [{"description": "Line", "quantity": 1, "rate": amount}]
        txn = services.create_transaction(company or self.company, self.user, txn_type, items, **kwargs)
        if status is not None:
            services.transition_status(company or self.company, self.user, txn.pk, status)
            txn.refresh_from_db()
        return txn

    def make_invoice(self, amount="100.00", status=TransactionStatus.SENT, **kwargs):
        return self.make_doc("INVOICE", amount, status, **kwargs)

    def make_bill(self, amount="100.00", status=TransactionStatus.SENT, **kwargs):
        return self.make_doc("BILL", amount, status, **kwargs)

    def make_journal(self, debit_code, credit_code, amount, date=None):
        items = [
            {"account_id": self.account(debit_code).pk, "side": "DEBIT", "quantity": 1, "rate": amount},
            {"account_id": self.account(credit_code).pk, "side": "CREDIT", "quantity": 1, "rate": amount},
        ]
        return self.make_doc("JOURNAL", status=TransactionStatus.ACCEPTED, items=items, date=date)


def d(value):
    return Decimal(value)


def day(year, month, dom):
    return datetime.date(year, month, dom)
