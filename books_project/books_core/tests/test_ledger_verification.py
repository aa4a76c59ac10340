from decimal import Decimal
from unittest import mock

from .. import services
from ..chart import CASH_CODE, RECEIVABLE_CODE
from ..exceptions import IntegrityError
from ..models import Account, Company
from ..posting import replay_balances, verify_account_balances
from ..tasks import verify_all_ledgers, verify_ledger_balances
from .base import BooksTestCase


class LedgerVerificationTests(BooksTestCase):

    def setUp(self):
        super().setUp()
        inv = self.make_invoice("120.00")
        services.apply_payment(self.company, self.user, inv.pk, "20.00")

    def test_replay_matches_stored_balances(self):
        replayed = replay_balances(self.company)
        self.assertEqual(replayed[self.account(RECEIVABLE_CODE).pk], Decimal("100.00"))
        self.assertEqual(replayed[self.account(CASH_CODE).pk], Decimal("20.00"))
        result = verify_account_balances(self.company)
        self.assertEqual(result["company"], self.company.pk)

    def test_tampered_balance_is_detected(self):
        Account.objects.filter(pk=self.account(CASH_CODE).pk).update(current_balance=Decimal("999.00"))
        with self.assertLogs("books_core.posting", level="ERROR"):
            with self.assertRaises(IntegrityError) as ctx:
                verify_account_balances(self.company)
        self.assertIn(CASH_CODE, str(ctx.exception))

    def test_task_runs_the_check(self):
        result = verify_ledger_balances(self.company.pk)
        self.assertEqual(result["accounts_checked"], Account.objects.for_company(self.company).count())

    def test_beat_task_fans_out_per_company(self):
        Company.objects.create(name="Other Co", slug="other-co")
        with mock.patch("books_core.tasks.verify_ledger_balances") as task:
            self.assertEqual(verify_all_ledgers(), 2)
        self.assertEqual(task.delay.call_count, 2)
