import logging
from decimal import Decimal

from django.db import models, transaction
from django.utils import timezone

from .. import chart, posting, state_machine
from ..calculator import ZERO, to_decimal, to_money
from ..exceptions import (InvalidStateError, NotFoundError, ValidationError,
                          translate_errors)
from ..models import (Account, AccountType, LedgerEntry, TransactionStatus,
                      signed_movement)
from .transactions import to_date

logger = logging.getLogger(__name__)

_UPDATABLE = ("code", "name", "type", "description", "parent_id", "is_active")


def _get_account(company, account_id, lock=False):
    qs = Account.objects.for_company(company)
    if lock:
        qs = qs.select_for_update()
    try:
        return qs.get(pk=account_id)
    except (Account.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"Account {account_id} not found")


def _post_opening_balance(account, user, amount, entry_date):
    """Bring `amount` onto `account` against Opening Balance Equity."""
    equity = chart.system_account(account.company, chart.OPENING_EQUITY_CODE)
    description = f"Opening balance {account.code} {account.name}"
    # a positive opening balance sits on the account's normal side
    on_debit = account.is_debit_normal == (amount > 0)
    amount = abs(amount)
    if on_debit:
        lines = [posting.debit_line(account, amount, description), posting.credit_line(equity, amount, description)]
    else:
        lines = [posting.debit_line(equity, amount, description), posting.credit_line(account, amount, description)]
    journal = posting.create_system_journal(
        account.company, user, entry_date, lines, description=description
    )
    state_machine.record_history(journal, TransactionStatus.ACCEPTED, None, user, comments=description)
    return journal


def _check_deactivation(account):
    if account.is_system_account:
        raise InvalidStateError(f"System account {account.code} cannot be deactivated")
    if account.children.filter(is_active=True).exists():
        raise InvalidStateError(f"Account {account.code} has active sub-accounts")
    if account.current_balance != 0:
        raise InvalidStateError(
            f"Account {account.code} still carries a balance of {account.current_balance}"
        )


@translate_errors
def create_account(company, user, code, name, type, *, parent_id=None, description=None,
                   opening_balance=None, opening_date=None):
    if type not in AccountType.values:
        raise ValidationError(f"Unknown account type {type!r}")
    opening = to_money(to_decimal(opening_balance, "opening_balance", ZERO))

    with transaction.atomic():
        parent = _get_account(company, parent_id) if parent_id else None
        account = Account(
            company=company,
            code=code,
            name=name,
            type=type,
            description=description,
            parent=parent,
            opening_balance=opening,
        )
        account.save()  # full_clean: code uniqueness, parent company
        if opening:
            _post_opening_balance(account, user, opening, opening_date or timezone.localdate())
            account.refresh_from_db()

    logger.info("Created account %s %s (%s)", account.code, account.name, account.type)
    return account


@translate_errors
def update_account(company, user, account_id, **changes):
    unknown = set(changes) - set(_UPDATABLE)
    if unknown:
        raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

    with transaction.atomic():
        account = _get_account(company, account_id, lock=True)
        renames = any(changes.get(f, getattr(account, f)) != getattr(account, f) for f in ("code", "type"))
        if account.is_system_account and renames:
            raise InvalidStateError(f"System account {account.code} keeps its code and type")
        if changes.get("is_active") is False and account.is_active:
            _check_deactivation(account)
        if "type" in changes and changes["type"] != account.type and account.ledger_entries.exists():
            raise InvalidStateError(f"Account {account.code} has ledger entries; its type cannot change")

        if "parent_id" in changes:
            parent_id = changes.pop("parent_id")
            account.parent = _get_account(company, parent_id) if parent_id else None
        for field, value in changes.items():
            setattr(account, field, value)
        # full_clean: same-company parent, no cycles, unique code
        account.save()

    logger.info("Updated account %s", account.code)
    return account


@translate_errors
def deactivate_account(company, user, account_id):
    """Soft delete: the account and its history stay, it just stops being offered."""
    with transaction.atomic():
        account = _get_account(company, account_id, lock=True)
        _check_deactivation(account)
        Account.objects.filter(pk=account.pk).update(is_active=False)
        account.is_active = False

    logger.info("Deactivated account %s", account.code)
    return account


@translate_errors
def delete_account(company, user, account_id):
    """Hard delete, only for accounts nothing refers to."""
    with transaction.atomic():
        account = _get_account(company, account_id, lock=True)
        if account.is_system_account:
            raise InvalidStateError(f"System account {account.code} cannot be deleted")
        if account.children.exists():
            raise InvalidStateError(f"Account {account.code} has sub-accounts; deactivate it instead")
        if account.ledger_entries.exists():
            raise InvalidStateError(f"Account {account.code} has ledger entries; deactivate it instead")
        code = account.code
        account.delete()

    logger.info("Deleted account %s", code)
    return code


@translate_errors
def get_account_tree(company, include_inactive=False):
    """Chart of accounts as nested dicts, roots and children ordered by code."""
    qs = Account.objects.for_company(company)
    if not include_inactive:
        qs = qs.filter(is_active=True)
    nodes = {}
    for acc in qs.order_by("code"):
        nodes[acc.pk] = {
            "id": acc.pk,
            "code": acc.code,
            "name": acc.name,
            "type": acc.type,
            "balance": acc.current_balance,
            "is_system_account": acc.is_system_account,
            "parent_id": acc.parent_id,
            "children": [],
        }
    roots = []
    for node in nodes.values():
        parent = nodes.get(node["parent_id"])
        if parent is not None:
            parent["children"].append(node)
        else:
            roots.append(node)
    return roots


@translate_errors
def get_account_balance(company, account_id, start=None, end=None):
    """
    Ledger-derived balance for one account: opening (before `start`),
    period debits/credits, closing. `current_balance` is included so a
    reader can see both.
    """
    start, end = to_date(start, "start"), to_date(end, "end")
    account = _get_account(company, account_id)
    entries = LedgerEntry.objects.for_company(company).filter(account=account)

    opening = ZERO
    if start is not None:
        before = entries.filter(date__lt=start).aggregate(
            debit=models.Sum("debit_amount"), credit=models.Sum("credit_amount")
        )
        opening = signed_movement(account.type, before["debit"], before["credit"])
        entries = entries.filter(date__gte=start)
    if end is not None:
        entries = entries.filter(date__lte=end)

    period = entries.aggregate(
        debit=models.Sum("debit_amount"), credit=models.Sum("credit_amount")
    )
    debit = period["debit"] or Decimal("0.00")
    credit = period["credit"] or Decimal("0.00")
    movement = signed_movement(account.type, debit, credit)
    return {
        "account": account,
        "opening_balance": opening,
        "debit_total": debit,
        "credit_total": credit,
        "movement": movement,
        "closing_balance": opening + movement,
        "current_balance": account.current_balance,
    }
