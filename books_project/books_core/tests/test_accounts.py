from decimal import Decimal

from django.contrib.admin.sites import AdminSite
from django.contrib.auth import get_user_model
from django.test import RequestFactory

from .. import services
from ..admin import AccountAdmin
from ..chart import CASH_CODE, OPENING_EQUITY_CODE, SYSTEM_ACCOUNTS
from ..exceptions import InvalidStateError, NotFoundError, ValidationError
from ..models import Account, ApprovalHistory, Transaction
from .base import BooksTestCase, day


class ChartOfAccountsTests(BooksTestCase):

    def test_company_starts_with_system_accounts(self):
        codes = set(Account.objects.for_company(self.company).values_list("code", flat=True))
        self.assertEqual(codes, {code for code, _name, _type in SYSTEM_ACCOUNTS})
        self.assertTrue(self.account(CASH_CODE).is_system_account)

    def test_opening_balance_is_posted_against_opening_equity(self):
        bank = services.create_account(self.company, self.user, "1010", "Bank Account", "ASSET",
                                       opening_balance="2500.00", opening_date=day(2024, 1, 1))
        self.assertEqual(bank.opening_balance, Decimal("2500.00"))
        self.assertEqual(bank.current_balance, Decimal("2500.00"))
        self.assertEqual(self.balance(OPENING_EQUITY_CODE), Decimal("2500.00"))

        journal = Transaction.objects.get(company=self.company, type="JOURNAL")
        self.assertEqual(journal.date, day(2024, 1, 1))
        self.assertIsNotNone(journal.posted_at)
        self.assertTrue(ApprovalHistory.objects.filter(transaction=journal, action="ACCEPTED").exists())

    def test_liability_opening_balance_sits_on_the_credit_side(self):
        loan = services.create_account(self.company, self.user, "2500", "Bank Loan", "LIABILITY",
                                       opening_balance="800")
        self.assertEqual(loan.current_balance, Decimal("800.00"))
        self.assertEqual(self.balance(OPENING_EQUITY_CODE), Decimal("-800.00"))

    def test_code_is_unique_per_company_and_type_is_known(self):
        with self.assertRaises(ValidationError):
            services.create_account(self.company, self.user, CASH_CODE, "Another cash", "ASSET")
        with self.assertRaises(ValidationError):
            services.create_account(self.company, self.user, "9999", "Odd", "SUSPENSE")

    def test_tree_nests_children_under_parents(self):
        fixed = services.create_account(self.company, self.user, "1500", "Fixed Assets", "ASSET")
        services.create_account(self.company, self.user, "1510", "Equipment", "ASSET", parent_id=fixed.pk)
        services.create_account(self.company, self.user, "1520", "Vehicles", "ASSET", parent_id=fixed.pk)

        tree = services.get_account_tree(self.company)
        roots = {node["code"]: node for node in tree}
        self.assertNotIn("1510", roots)
        self.assertEqual([c["code"] for c in roots["1500"]["children"]], ["1510", "1520"])
        self.assertEqual(len(tree), len(SYSTEM_ACCOUNTS) + 1)

    def test_parent_cycles_are_refused(self):
        parent = services.create_account(self.company, self.user, "1500", "Fixed Assets", "ASSET")
        child = services.create_account(self.company, self.user, "1510", "Equipment", "ASSET", parent_id=parent.pk)
        with self.assertRaises(ValidationError):
            services.update_account(self.company, self.user, parent.pk, parent_id=child.pk)
        with self.assertRaises(ValidationError):
            services.update_account(self.company, self.user, parent.pk, parent_id=parent.pk)

    def test_system_accounts_keep_code_and_type(self):
        cash = self.account(CASH_CODE)
        with self.assertRaises(InvalidStateError):
            services.update_account(self.company, self.user, cash.pk, type="EXPENSE")
        with self.assertRaises(InvalidStateError):
            services.update_account(self.company, self.user, cash.pk, code="1099")
        renamed = services.update_account(self.company, self.user, cash.pk, name="Petty Cash")
        self.assertEqual(renamed.name, "Petty Cash")

    def test_type_is_frozen_once_posted(self):
        misc = services.create_account(self.company, self.user, "6100", "Misc", "EXPENSE")
        self.make_journal("6100", CASH_CODE, "5.00")
        with self.assertRaises(InvalidStateError):
            services.update_account(self.company, self.user, misc.pk, type="ASSET")
        with self.assertRaises(ValidationError):
            services.update_account(self.company, self.user, misc.pk, current_balance="0")


class AccountRemovalTests(BooksTestCase):

    def test_delete_rules(self):
        with self.assertRaises(InvalidStateError):
            services.delete_account(self.company, self.user, self.account(CASH_CODE).pk)

        parent = services.create_account(self.company, self.user, "1500", "Fixed Assets", "ASSET")
        services.create_account(self.company, self.user, "1510", "Equipment", "ASSET", parent_id=parent.pk)
        with self.assertRaises(InvalidStateError):
            services.delete_account(self.company, self.user, parent.pk)

        used = services.create_account(self.company, self.user, "6100", "Misc", "EXPENSE")
        self.make_journal("6100", CASH_CODE, "5.00")
        with self.assertRaises(InvalidStateError):
            services.delete_account(self.company, self.user, used.pk)

        unused = services.create_account(self.company, self.user, "6200", "Unused", "EXPENSE")
        self.assertEqual(services.delete_account(self.company, self.user, unused.pk), "6200")
        self.assertFalse(Account.objects.filter(pk=unused.pk).exists())

        with self.assertRaises(NotFoundError):
            services.delete_account(self.company, self.user, unused.pk)

    def test_deactivate_rules(self):
        with self.assertRaises(InvalidStateError):
            services.deactivate_account(self.company, self.user, self.account(CASH_CODE).pk)

        misc = services.create_account(self.company, self.user, "6100", "Misc", "EXPENSE")
        self.make_journal("6100", CASH_CODE, "5.00")
        with self.assertRaises(InvalidStateError):
            services.deactivate_account(self.company, self.user, misc.pk)

        self.make_journal(CASH_CODE, "6100", "5.00")
        account = services.deactivate_account(self.company, self.user, misc.pk)
        self.assertFalse(account.is_active)
        self.assertNotIn("6100", [n["code"] for n in services.get_account_tree(self.company)])
        self.assertIn("6100", [n["code"] for n in services.get_account_tree(self.company, include_inactive=True)])

        # inactive accounts are not offered on new lines
        with self.assertRaises(ValidationError):
            self.make_journal("6100", CASH_CODE, "1.00")

    def test_update_cannot_bypass_deactivation_rules(self):
        with self.assertRaises(InvalidStateError):
            services.update_account(self.company, self.user, self.account(CASH_CODE).pk, is_active=False)

        funded = services.create_account(self.company, self.user, "1010", "Bank Account", "ASSET",
                                         opening_balance="50")
        with self.assertRaises(InvalidStateError):
            services.update_account(self.company, self.user, funded.pk, is_active=False)
        funded.refresh_from_db()
        self.assertTrue(funded.is_active)

        parent = services.create_account(self.company, self.user, "1500", "Fixed Assets", "ASSET")
        services.create_account(self.company, self.user, "1510", "Equipment", "ASSET", parent_id=parent.pk)
        with self.assertRaises(InvalidStateError):
            services.update_account(self.company, self.user, parent.pk, is_active=False)

        spare = services.create_account(self.company, self.user, "6200", "Spare", "EXPENSE")
        self.assertFalse(services.update_account(self.company, self.user, spare.pk, is_active=False).is_active)
        self.assertTrue(services.update_account(self.company, self.user, spare.pk, is_active=True).is_active)


class AccountBalanceTests(BooksTestCase):

    def test_period_balance_from_ledger(self):
        bank = services.create_account(self.company, self.user, "1010", "Bank Account", "ASSET",
                                       opening_balance="100", opening_date=day(2024, 1, 1))
        self.make_doc("JOURNAL", status="ACCEPTED", date=day(2024, 2, 10), items=[
            {"account_id": bank.pk, "side": "DEBIT", "quantity": 1, "rate": "40"},
            {"account_id": self.account("3001").pk, "side": "CREDIT", "quantity": 1, "rate": "40"},
        ])
        self.make_doc("JOURNAL", status="ACCEPTED", date=day(2024, 3, 10), items=[
            {"account_id": self.account("5001").pk, "side": "DEBIT", "quantity": 1, "rate": "15"},
            {"account_id": bank.pk, "side": "CREDIT", "quantity": 1, "rate": "15"},
        ])

        result = services.get_account_balance(self.company, bank.pk, start=day(2024, 2, 1), end=day(2024, 2, 29))
        self.assertEqual(result["opening_balance"], Decimal("100.00"))
        self.assertEqual(result["debit_total"], Decimal("40.00"))
        self.assertEqual(result["credit_total"], Decimal("0.00"))
        self.assertEqual(result["closing_balance"], Decimal("140.00"))
        self.assertEqual(result["current_balance"], Decimal("125.00"))

        by_string = services.get_account_balance(self.company, bank.pk, start="2024-02-01", end="2024-02-29")
        self.assertEqual(by_string["closing_balance"], Decimal("140.00"))

    def test_bad_dates_and_ids(self):
        cash = self.account(CASH_CODE)
        with self.assertRaises(ValidationError):
            services.get_account_balance(self.company, cash.pk, start="not-a-date")
        with self.assertRaises(NotFoundError):
            services.get_account_balance(self.company, "abc")


class AccountAdminTests(BooksTestCase):

    def setUp(self):
        super().setUp()
        self.model_admin = AccountAdmin(Account, AdminSite())
        self.request = RequestFactory().get("/admin/books_core/account/")
        self.request.user = get_user_model().objects.create_superuser("root", "root@example.com", "pw")

    def test_system_accounts_cannot_be_deleted_or_recoded(self):
        cash = self.account(CASH_CODE)
        self.assertFalse(self.model_admin.has_delete_permission(self.request, cash))
        readonly = self.model_admin.get_readonly_fields(self.request, cash)
        for field in ("code", "type", "is_active", "current_balance"):
            self.assertIn(field, readonly)

    def test_type_is_readonly_once_posted(self):
        misc = services.create_account(self.company, self.user, "6100", "Misc", "EXPENSE")
        self.assertNotIn("type", self.model_admin.get_readonly_fields(self.request, misc))
        self.assertTrue(self.model_admin.has_delete_permission(self.request, misc))

        self.make_journal("6100", CASH_CODE, "5.00")
        self.assertIn("type", self.model_admin.get_readonly_fields(self.request, misc))
        self.assertNotIn("code", self.model_admin.get_readonly_fields(self.request, misc))
