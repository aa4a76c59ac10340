from .exceptions import IntegrityError
from .models import Account, AccountType

CASH_CODE = "1001"
RECEIVABLE_CODE = "1200"
INPUT_TAX_CODE = "1300"
INVENTORY_CODE = "1400"
PAYABLE_CODE = "2001"
TAX_PAYABLE_CODE = "2100"
OWNER_EQUITY_CODE = "3001"
OPENING_EQUITY_CODE = "3900"
SALES_REVENUE_CODE = "4001"
GENERAL_EXPENSE_CODE = "5001"
COGS_CODE = "5100"


# (code, name, type): created for every company, never deletable
SYSTEM_ACCOUNTS = [
    (CASH_CODE, "Cash in Hand", AccountType.ASSET),
    (RECEIVABLE_CODE, "Accounts Receivable", AccountType.ASSET),
    (INPUT_TAX_CODE, "Input Tax Receivable", AccountType.ASSET),
    (INVENTORY_CODE, "Inventory", AccountType.ASSET),
    (PAYABLE_CODE, "Accounts Payable", AccountType.LIABILITY),
    (TAX_PAYABLE_CODE, "Tax Payable", AccountType.LIABILITY),
    (OWNER_EQUITY_CODE, "Owner's Equity", AccountType.EQUITY),
    (OPENING_EQUITY_CODE, "Opening Balance Equity", AccountType.EQUITY),
    (SALES_REVENUE_CODE, "Sales Revenue", AccountType.REVENUE),
    (GENERAL_EXPENSE_CODE, "General Expenses", AccountType.EXPENSE),
    (COGS_CODE, "Cost of Goods Sold", AccountType.EXPENSE),
]


def ensure_chart_of_accounts(company):
    """Create any missing system account for `company`; returns {code: Account}."""
    accounts = {}
    for code, name, ac_type in SYSTEM_ACCOUNTS:
        acc, _ = Account.objects.get_or_create(
            company=company,
            code=code,
            defaults={"name": name, "type": ac_type, "is_system_account": True},
        )
        accounts[code] = acc
    return accounts


def system_account(company, code):
    """
    Look up a system account by code, creating the chart on first use.
    A system code that resolves to a non-system account means the chart was
    tampered with.
    """
    acc = Account.objects.filter(company=company, code=code).first()
    if acc is None:
        acc = ensure_chart_of_accounts(company)[code]
    if not acc.is_system_account:
        raise IntegrityError(
            f"Account {code} of company {company.pk} is not a system account"
        )
    return acc
