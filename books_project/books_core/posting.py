"""
Ledger poster.

Turns a priced transaction into balanced LedgerEntry rows and keeps
Account.current_balance in step with them. Entries are append-only; a
document's effect is undone by a reversing JOURNAL, never by editing rows.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings
from django.db import models, transaction
from django.utils import timezone

from . import chart
from .calculator import ZERO, to_money
from .exceptions import IntegrityError, UnbalancedLedgerError, ValidationError
from .models import (Account, EntrySide, LedgerEntry, Transaction,
                     TransactionItem, TransactionStatus, TransactionType,
                     signed_movement)
from .numbering import next_transaction_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryLine:
    account: Account
    debit: Decimal
    credit: Decimal
    description: str = ""


def debit_line(account, amount, description=""):
    return EntryLine(account, to_money(amount), ZERO, description)


def credit_line(account, amount, description=""):
    return EntryLine(account, ZERO, to_money(amount), description)


def _label(txn):
    return txn.transaction_number or f"#{txn.pk}"


def _post_cogs():
    return getattr(settings, "BOOKS_POST_COGS", False)


# ----------------------------
# Line account resolution
# ----------------------------
def _sales_account(item):
    if item.account_id:
        return item.account
    if item.product_id and item.product.sales_account_id:
        return item.product.sales_account
    return chart.system_account(item.company, chart.SALES_REVENUE_CODE)


def _purchase_account(item):
    if item.account_id:
        return item.account
    if item.product_id:
        if item.product.purchase_account_id:
            return item.product.purchase_account
        if _post_cogs() and item.product.tracks_inventory:
            # stock bought for resale is capitalised, expensed on sale as COGS
            return chart.system_account(item.company, chart.INVENTORY_CODE)
    return chart.system_account(item.company, chart.GENERAL_EXPENSE_CODE)


def _items(txn):
    return list(
        txn.items.select_related("account", "product", "company").order_by("sort_order", "id")
    )


def _grouped(items, resolve):
    """Net line value per resolved account, in first-seen order."""
    totals = {}
    for item in items:
        acc = resolve(item)
        totals[acc] = totals.get(acc, ZERO) + item.net_amount
    return totals.items()


def _tax_total(items):
    return sum((i.tax_amount for i in items), ZERO)


# ----------------------------
# Entry builders, one per transaction type
# ----------------------------
def _invoice_entries(txn):
    company, label = txn.company, _label(txn)
    items = _items(txn)
    lines = [debit_line(chart.system_account(company, chart.RECEIVABLE_CODE), txn.total_amount, f"Invoice {label}")]
    for acc, amount in _grouped(items, _sales_account):
        lines.append(credit_line(acc, amount, f"Revenue: invoice {label}"))
    lines.append(credit_line(chart.system_account(company, chart.TAX_PAYABLE_CODE), _tax_total(items), f"Tax: invoice {label}"))

    if _post_cogs():
        cost = sum(
            (
                to_money(i.quantity * i.product.purchase_price)
                for i in items
                if i.product_id and i.product.tracks_inventory
            ),
            ZERO,
        )
        lines.append(debit_line(chart.system_account(company, chart.COGS_CODE), cost, f"COGS: invoice {label}"))
        lines.append(credit_line(chart.system_account(company, chart.INVENTORY_CODE), cost, f"COGS: invoice {label}"))
    return lines


def _bill_entries(txn):
    company, label = txn.company, _label(txn)
    items = _items(txn)
    lines = [debit_line(acc, amount, f"Expense: bill {label}") for acc, amount in _grouped(items, _purchase_account)]
    lines.append(debit_line(chart.system_account(company, chart.INPUT_TAX_CODE), _tax_total(items), f"Tax: bill {label}"))
    lines.append(credit_line(chart.system_account(company, chart.PAYABLE_CODE), txn.total_amount, f"Bill {label}"))
    return lines


def _receipt_entries(txn):
    company, label = txn.company, _label(txn)
    cash = chart.system_account(company, chart.CASH_CODE)
    if txn.parent_id and txn.parent.type == TransactionType.INVOICE:
        # settles a receivable
        return [
            debit_line(cash, txn.total_amount, f"Receipt {label}"),
            credit_line(chart.system_account(company, chart.RECEIVABLE_CODE), txn.total_amount,
                f"Clear AR for {_label(txn.parent)}"),
        ]
    items = _items(txn)
    lines = [debit_line(cash, txn.total_amount, f"Receipt {label}")]
    lines += [credit_line(acc, amount, f"Receipt {label}") for acc, amount in _grouped(items, _sales_account)]
    lines.append(credit_line(chart.system_account(company, chart.TAX_PAYABLE_CODE), _tax_total(items), f"Tax: receipt {label}"))
    return lines


def _payment_entries(txn):
    company, label = txn.company, _label(txn)
    cash = chart.system_account(company, chart.CASH_CODE)
    if txn.parent_id and txn.parent.type == TransactionType.BILL:
        # settles a payable
        return [
            debit_line(chart.system_account(company, chart.PAYABLE_CODE), txn.total_amount,
                f"Clear AP for {_label(txn.parent)}"),
            credit_line(cash, txn.total_amount, f"Payment {label}"),
        ]
    items = _items(txn)
    lines = [debit_line(acc, amount, f"Payment {label}") for acc, amount in _grouped(items, _purchase_account)]
    lines.append(debit_line(chart.system_account(company, chart.INPUT_TAX_CODE), _tax_total(items), f"Tax: payment {label}"))
    lines.append(credit_line(cash, txn.total_amount, f"Payment {label}"))
    return lines


def _journal_entries(txn):
    lines = []
    for item in _items(txn):
        if not item.account_id or item.side not in EntrySide.values:
            raise ValidationError(f"Journal line {item.pk} needs an account and a side")
        description = item.description or f"Journal {_label(txn)}"
        if item.side == EntrySide.DEBIT:
            lines.append(debit_line(item.account, item.amount, description))
        else:
            lines.append(credit_line(item.account, item.amount, description))
    return lines


def _no_entries(txn):
    # orders are commitments, not money movements
    return []


_BUILDERS = {
    TransactionType.SALES_ORDER: _no_entries,
    TransactionType.PURCHASE_ORDER: _no_entries,
    TransactionType.INVOICE: _invoice_entries,
    TransactionType.BILL: _bill_entries,
    TransactionType.RECEIPT: _receipt_entries,
    TransactionType.PAYMENT: _payment_entries,
    TransactionType.JOURNAL: _journal_entries,
}
assert set(_BUILDERS) == set(TransactionType), "every transaction type needs a ledger builder"

NON_POSTING_TYPES = frozenset({TransactionType.SALES_ORDER, TransactionType.PURCHASE_ORDER})


def posts_to_ledger(txn_type):
    return TransactionType(txn_type) not in NON_POSTING_TYPES


def build_entries(txn):
    """Balanced entry lines for `txn`; zero lines dropped. Raises if unbalanced."""
    lines = [
        line for line in _BUILDERS[TransactionType(txn.type)](txn)
        if line.debit != 0 or line.credit != 0
    ]
    for line in lines:
        if line.debit < 0 or line.credit < 0:
            raise ValidationError(f"Negative ledger amount on account {line.account.code}")
    debits = sum((line.debit for line in lines), ZERO)
    credits = sum((line.credit for line in lines), ZERO)
    if debits != credits:
        raise UnbalancedLedgerError(
            f"{_label(txn)}: debits {debits} != credits {credits}"
        )
    return lines


# ----------------------------
# Writing
# ----------------------------
def _write_entries(txn, lines, entry_date):
    """Insert the rows and move balances. Accounts are locked in id order."""
    deltas = defaultdict(lambda: ZERO)
    for line in lines:
        if line.account.company_id != txn.company_id:
            raise IntegrityError(f"Account {line.account.pk} is outside company {txn.company_id}")
        deltas[line.account.pk] += signed_movement(line.account.type, line.debit, line.credit)

    # fixed lock order, so two posters touching the same accounts cannot deadlock
    list(Account.objects.select_for_update().filter(pk__in=deltas).order_by("pk"))

    for line in lines:
        LedgerEntry.objects.create(
            company_id=txn.company_id,
            account=line.account,
            transaction=txn,
            date=entry_date,
            debit_amount=line.debit,
            credit_amount=line.credit,
            description=line.description[:400] or None,
        )
    for account_id, delta in deltas.items():
        if delta:
            Account.objects.filter(pk=account_id).update(
                current_balance=models.F("current_balance") + delta
            )


def post_transaction(txn):
    """
    Write the ledger effect of `txn` once. A transaction whose posted_at is
    already set is left alone and [] is returned.
    """
    with transaction.atomic():
        locked = Transaction.objects.select_for_update().get(pk=txn.pk)
        if locked.posted_at is not None:
            logger.info("Transaction %s already posted, skipping", _label(locked))
            return []

        lines = build_entries(locked)
        _write_entries(locked, lines, locked.date)

        locked.posted_at = timezone.now()
        locked.save(update_fields=["posted_at", "updated_at"])
        txn.posted_at = locked.posted_at

    logger.info(
        "Posted %s (%s): %d entries, total %s",
        _label(txn), txn.type, len(lines), sum((line.debit for line in lines), ZERO),
    )
    return lines


def create_system_journal(company, user, entry_date, lines, *, description="", parent=None, reverses=None):
    """
    Record `lines` as an ACCEPTED JOURNAL transaction and post it.
    Used for opening balances and reversals.
    """
    total = sum((line.debit for line in lines), ZERO)
    now = timezone.now()
    journal = Transaction.objects.create(
        company=company,
        transaction_number=next_transaction_number(company, TransactionType.JOURNAL, entry_date),
        type=TransactionType.JOURNAL,
        status=TransactionStatus.ACCEPTED,
        date=entry_date,
        parent=parent,
        reverses=reverses,
        subtotal=total,
        total_amount=total,
        balance_amount=total,
        notes=description or None,
        created_by=user,
        accepted_at=now,
    )
    TransactionItem.objects.bulk_create(
        [
            TransactionItem(
                company=company,
                transaction=journal,
                description=line.description or description,
                quantity=Decimal("1.000"),
                rate=line.debit or line.credit,
                amount=line.debit or line.credit,
                account=line.account,
                side=EntrySide.DEBIT if line.debit else EntrySide.CREDIT,
                sort_order=index,
            )
            for index, line in enumerate(lines)
        ]
    )
    post_transaction(journal)
    return journal


def reverse_posting(txn, user=None, reason=""):
    """
    Undo the live ledger effect of `txn` with a mirror JOURNAL.

    The mirror is built from the net of the document's own entries and the
    entries of earlier reversals, so a document posted, reversed and posted
    again is reversed exactly once more. Returns the journal, or None when
    nothing is posted.
    """
    with transaction.atomic():
        locked = Transaction.objects.select_for_update().get(pk=txn.pk)
        if locked.posted_at is None:
            return None

        net = defaultdict(lambda: ZERO)
        live = LedgerEntry.objects.filter(
            models.Q(transaction=locked) | models.Q(transaction__reverses=locked)
        ).values("account").annotate(
            debit=models.Sum("debit_amount"), credit=models.Sum("credit_amount")
        )
        for row in live:
            net[row["account"]] += (row["debit"] or ZERO) - (row["credit"] or ZERO)

        accounts = Account.objects.in_bulk([pk for pk, amount in net.items() if amount])
        label = _label(locked)
        lines = []
        for pk in sorted(accounts):
            amount = net[pk]
            if amount > 0:
                lines.append(credit_line(accounts[pk], amount, f"Reversal of {label}"))
            else:
                lines.append(debit_line(accounts[pk], -amount, f"Reversal of {label}"))

        journal = None
        if lines:
            entry_date = max(timezone.localdate(), locked.date)
            journal = create_system_journal(
                locked.company, user, entry_date, lines,
                description=f"Reversal of {label}" + (f": {reason}" if reason else ""),
                parent=locked,
                reverses=locked,
            )

        locked.posted_at = None
        locked.save(update_fields=["posted_at", "updated_at"])
        txn.posted_at = None

    logger.info("Reversed %s with %s", label, _label(journal) if journal else "no entries")
    return journal


# ----------------------------
# Verification (read-side replay)
# ----------------------------
def replay_balances(company, as_of=None):
    """{account_id: balance} recomputed from ledger rows alone."""
    qs = LedgerEntry.objects.for_company(company)
    if as_of is not None:
        qs = qs.filter(date__lte=as_of)
    rows = qs.values("account", "account__type").annotate(
        debit=models.Sum("debit_amount"), credit=models.Sum("credit_amount")
    )
    return {
        row["account"]: signed_movement(row["account__type"], row["debit"], row["credit"])
        for row in rows
    }


def verify_account_balances(company):
    """
    Replay the ledger and compare with the stored balances.
    Raises IntegrityError (and logs it) on any divergence or any
    transaction whose entries do not balance.
    """
    problems = []

    unbalanced = (
        LedgerEntry.objects.for_company(company)
        .values("transaction")
        .annotate(debit=models.Sum("debit_amount"), credit=models.Sum("credit_amount"))
        .exclude(debit=models.F("credit"))
    )
    for row in unbalanced:
        problems.append(
            f"transaction {row['transaction']}: debits {row['debit']} != credits {row['credit']}"
        )

    replayed = replay_balances(company)
    accounts = Account.objects.for_company(company).only("pk", "code", "current_balance")
    for acc in accounts:
        expected = replayed.get(acc.pk, ZERO)
        if acc.current_balance != expected:
            problems.append(
                f"account {acc.code}: stored {acc.current_balance} != ledger {expected}"
            )

    if problems:
        logger.error(
            "Ledger verification failed for company %s: %s", company.pk, "; ".join(problems)
        )
        raise IntegrityError(
            f"Ledger verification failed for company {company.pk}: " + "; ".join(problems)
        )
    return {"company": company.pk, "accounts_checked": len(accounts)}
