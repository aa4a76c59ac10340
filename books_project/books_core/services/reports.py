"""
Report builder.

Every function here is a read-side replay over ledger entries and
transactions of one company. Nothing in this module writes.

Balances follow the account's normal side (see models.account): debit
normal for assets, expenses and contra-liabilities, credit normal for the
rest. Contra accounts reduce the section they sit in.
"""
import calendar
import datetime
import logging
from collections import OrderedDict
from decimal import Decimal
from operator import itemgetter

from django.conf import settings
from django.db import models
from django.utils import timezone

from .. import chart
from ..calculator import ZERO
from ..exceptions import (IntegrityError, NotFoundError, ValidationError,
                          translate_errors)
from ..managers import SETTLED_STATUSES
from ..models import (Account, AccountType, Contact, LedgerEntry, Product,
                      Transaction, TransactionStatus, TransactionType)
from ..posting import replay_balances
from .transactions import to_date

logger = logging.getLogger(__name__)

PENDING_INVOICE_STATUSES = (
    TransactionStatus.DRAFT,
    TransactionStatus.SENT,
    TransactionStatus.CHANGES_REQUESTED,
)

AGING_BUCKETS = (
    ("current", 30),
    ("days_31_60", 60),
    ("days_61_90", 90),
    ("over_90", None),
)

SALES_GROUPINGS = ("day", "week", "month", "all")


def _epsilon():
    return Decimal(str(getattr(settings, "BOOKS_BALANCE_EPSILON", "0.01")))


def _require_range(start, end):
    start, end = to_date(start, "start"), to_date(end, "end")
    if start is None or end is None:
        raise ValidationError("Start date and end date are required")
    if end < start:
        raise ValidationError("End date cannot be before start date")
    return start, end


def _line(acc, amount):
    return {"account_id": acc.pk, "code": acc.code, "name": acc.name, "type": acc.type, "amount": amount}


# ----------------------------
# Dashboard
# ----------------------------
@translate_errors
def get_dashboard(company, start=None, end=None, today=None):
    """Headline numbers for a period, the current month by default."""
    today = today or timezone.localdate()
    start = to_date(start, "start") or today.replace(day=1)
    end = to_date(end, "end") or today.replace(day=calendar.monthrange(today.year, today.month)[1])

    docs = Transaction.objects.for_company(company).in_range(start, end).settled()
    revenue = docs.of_type(TransactionType.SALES_ORDER, TransactionType.INVOICE).aggregate(
        total=models.Sum("total_amount"))["total"] or ZERO
    expenses = docs.of_type(TransactionType.PURCHASE_ORDER, TransactionType.BILL).aggregate(
        total=models.Sum("total_amount"))["total"] or ZERO

    invoices = Transaction.objects.for_company(company).of_type(TransactionType.INVOICE)
    return {
        "total_revenue": revenue,
        "total_expenses": expenses,
        "net_profit": revenue - expenses,
        "pending_invoices": invoices.filter(status__in=PENDING_INVOICE_STATUSES).count(),
        "overdue_invoices": invoices.overdue(today).count(),
        "total_customers": Contact.objects.active(company).filter(is_customer=True).count(),
        "total_products": Product.objects.active(company).count(),
        "period": {"start": start, "end": end},
    }


# ----------------------------
# Profit & loss
# ----------------------------
@translate_errors
def get_profit_loss(company, start, end):
    """Revenue and expense accounts over [start, end], from ledger entries."""
    start, end = _require_range(start, end)

    rows = (
        LedgerEntry.objects.for_company(company)
        .filter(date__gte=start, date__lte=end,
                account__type__in=(AccountType.REVENUE, AccountType.EXPENSE))
        .values("account")
        .annotate(debit=models.Sum("debit_amount"), credit=models.Sum("credit_amount"))
    )
    sums = {row["account"]: (row["debit"] or ZERO, row["credit"] or ZERO) for row in rows}
    accounts = Account.objects.for_company(company).filter(pk__in=sums).order_by("code")

    revenue, expenses = [], []
    for acc in accounts:
        debit, credit = sums[acc.pk]
        if acc.type == AccountType.REVENUE:
            revenue.append(_line(acc, credit - debit))
        else:
            expenses.append(_line(acc, debit - credit))

    total_revenue = sum((r["amount"] for r in revenue), ZERO)
    total_expenses = sum((e["amount"] for e in expenses), ZERO)
    return {
        "period": {"start": start, "end": end},
        "revenue": revenue,
        "total_revenue": total_revenue,
        "expenses": expenses,
        "total_expenses": total_expenses,
        "net_profit": total_revenue - total_expenses,
    }


# ----------------------------
# Balance sheet
# ----------------------------
@translate_errors
def get_balance_sheet(company, as_of=None, strict=False):
    """
    Assets, liabilities and equity as of a date. Current earnings (revenue
    less expenses to date) are shown as an equity line so the sheet closes.
    An imbalance is logged and reported; with strict=True it raises.
    """
    as_of = to_date(as_of, "as_of") or timezone.localdate()
    balances = replay_balances(company, as_of)
    accounts = Account.objects.for_company(company).filter(pk__in=balances).order_by("code")

    assets, liabilities, equity = [], [], []
    total_assets = total_liabilities = total_equity = earnings = ZERO
    for acc in accounts:
        amount = balances[acc.pk]
        if acc.type == AccountType.ASSET:
            assets.append(_line(acc, amount))
            total_assets += amount
        elif acc.type == AccountType.CONTRA_ASSET:
            assets.append(_line(acc, -amount))
            total_assets -= amount
        elif acc.type == AccountType.LIABILITY:
            liabilities.append(_line(acc, amount))
            total_liabilities += amount
        elif acc.type == AccountType.CONTRA_LIABILITY:
            liabilities.append(_line(acc, -amount))
            total_liabilities -= amount
        elif acc.type == AccountType.EQUITY:
            equity.append(_line(acc, amount))
            total_equity += amount
        elif acc.type == AccountType.REVENUE:
            earnings += amount
        elif acc.type == AccountType.EXPENSE:
            earnings -= amount

    equity.append({"account_id": None, "code": None, "name": "Current earnings",
                   "type": AccountType.EQUITY, "amount": earnings})
    total_equity += earnings

    difference = total_assets - (total_liabilities + total_equity)
    is_balanced = abs(difference) <= _epsilon()
    warnings = []
    if not is_balanced:
        message = (
            f"Balance sheet for company {company.pk} as of {as_of} is out of balance by {difference}"
        )
        logger.warning(message)
        warnings.append(message)
        if strict:
            raise IntegrityError(message)

    return {
        "as_of": as_of,
        "assets": assets,
        "total_assets": total_assets,
        "liabilities": liabilities,
        "total_liabilities": total_liabilities,
        "equity": equity,
        "total_equity": total_equity,
        "total_liabilities_and_equity": total_liabilities + total_equity,
        "difference": difference,
        "is_balanced": is_balanced,
        "warnings": warnings,
    }


# ----------------------------
# Cash flow
# ----------------------------
def cash_accounts(company):
    """Asset accounts named like cash or bank, plus the system cash account."""
    return Account.objects.for_company(company).filter(
        models.Q(type=AccountType.ASSET)
        & (models.Q(name__icontains="cash") | models.Q(name__icontains="bank")
           | models.Q(code=chart.CASH_CODE, is_system_account=True))
    )


# Activity a cash movement is reported under, by the type of the document
# that moved it
CASH_FLOW_ACTIVITY = {
    TransactionType.SALES_ORDER: "operating",
    TransactionType.INVOICE: "operating",
    TransactionType.PURCHASE_ORDER: "operating",
    TransactionType.BILL: "operating",
    TransactionType.RECEIPT: "financing",
    TransactionType.PAYMENT: "financing",
    TransactionType.JOURNAL: "investing",
}
assert set(CASH_FLOW_ACTIVITY) == set(TransactionType), "every transaction type needs a cash flow activity"


@translate_errors
def get_cash_flow(company, start, end):
    start, end = _require_range(start, end)
    cash_ids = list(cash_accounts(company).values_list("pk", flat=True))
    entries = LedgerEntry.objects.for_company(company).filter(account_id__in=cash_ids)

    before = entries.filter(date__lt=start).aggregate(
        debit=models.Sum("debit_amount"), credit=models.Sum("credit_amount"))
    opening = (before["debit"] or ZERO) - (before["credit"] or ZERO)

    period = list(
        entries.filter(date__gte=start, date__lte=end)
        .select_related("transaction")
        .order_by("date", "id")
    )

    activities = OrderedDict(
        (name, {"inflows": ZERO, "outflows": ZERO, "net": ZERO, "entries": []})
        for name in ("operating", "investing", "financing")
    )
    for entry in period:
        bucket = CASH_FLOW_ACTIVITY[entry.transaction.type]
        amount = entry.debit_amount - entry.credit_amount
        section = activities[bucket]
        if amount >= 0:
            section["inflows"] += amount
        else:
            section["outflows"] += -amount
        section["net"] += amount
        section["entries"].append({
            "date": entry.date,
            "transaction_number": entry.transaction.transaction_number,
            "transaction_type": entry.transaction.type,
            "description": entry.description,
            "amount": amount,
        })

    net_change = sum((a["net"] for a in activities.values()), ZERO)
    return {
        "period": {"start": start, "end": end},
        "cash_accounts": cash_ids,
        "opening_cash": opening,
        "operating": activities["operating"],
        "investing": activities["investing"],
        "financing": activities["financing"],
        "net_change": net_change,
        "closing_cash": opening + net_change,
    }


# ----------------------------
# Aging
# ----------------------------
def _bucket_for(days_past_due):
    for name, limit in AGING_BUCKETS:
        if limit is None or days_past_due <= limit:
            return name


@translate_errors
def get_aging(company, as_of=None):
    """Outstanding invoices bucketed by days past due (due date, else document date)."""
    as_of = to_date(as_of, "as_of") or timezone.localdate()
    invoices = (
        Transaction.objects.for_company(company)
        .of_type(TransactionType.INVOICE)
        .outstanding()
        .filter(date__lte=as_of)
        .select_related("contact")
        .order_by("due_date", "date", "id")
    )

    aging = OrderedDict((name, {"invoices": [], "total": ZERO}) for name, _ in AGING_BUCKETS)
    for inv in invoices:
        days = (as_of - (inv.due_date or inv.date)).days
        bucket = aging[_bucket_for(days)]
        bucket["invoices"].append({
            "id": inv.pk,
            "transaction_number": inv.transaction_number,
            "contact": inv.contact.name if inv.contact_id else None,
            "date": inv.date,
            "due_date": inv.due_date,
            "status": inv.display_status(as_of),
            "balance_amount": inv.balance_amount,
            "days_past_due": days,
        })
        bucket["total"] += inv.balance_amount

    totals = {name: bucket["total"] for name, bucket in aging.items()}
    totals["grand_total"] = sum(totals.values(), ZERO)
    return {"as_of": as_of, "aging": aging, "totals": totals}


# ----------------------------
# Contact summary
# ----------------------------
@translate_errors
def get_contact_summary(company, contact_id, recent=5):
    """
    Document count, totals and outstanding balance for one active contact,
    with its most recently created documents.
    """
    try:
        contact = Contact.objects.active(company).get(pk=contact_id)
    except (Contact.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"Contact {contact_id} not found")

    docs = Transaction.objects.for_company(company).filter(contact=contact)
    stats = docs.aggregate(
        count=models.Count("id"),
        total=models.Sum("total_amount"),
        paid=models.Sum("paid_amount"),
    )
    total = stats["total"] or ZERO
    paid = stats["paid"] or ZERO
    return {
        "contact": contact,
        "total_transactions": stats["count"],
        "total_amount": total,
        "paid_amount": paid,
        "balance_amount": total - paid,
        "recent_transactions": list(
            docs.order_by("-created_at", "-id").values(
                "id", "transaction_number", "type", "status", "total_amount", "date"
            )[:recent]
        ),
    }


# ----------------------------
# Sales
# ----------------------------
def _period_key(day, group_by):
    if group_by == "day":
        return day.isoformat()
    if group_by == "week":
        # weeks start on Sunday
        return (day - datetime.timedelta(days=(day.weekday() + 1) % 7)).isoformat()
    if group_by == "month":
        return f"{day.year}-{day.month:02d}"
    return "all"


@translate_errors
def get_sales_report(company, start, end, group_by="day"):
    start, end = _require_range(start, end)
    if group_by not in SALES_GROUPINGS:
        raise ValidationError(f"group_by must be one of {', '.join(SALES_GROUPINGS)}")

    sales = list(
        Transaction.objects.for_company(company)
        .of_type(TransactionType.SALES_ORDER, TransactionType.INVOICE)
        .filter(status__in=SETTLED_STATUSES)
        .in_range(start, end)
        .select_related("contact")
        .prefetch_related("items__product")
        .order_by("date", "id")
    )

    periods = OrderedDict()
    products, customers = {}, {}
    for txn in sales:
        key = _period_key(txn.date, group_by)
        period = periods.setdefault(key, {"period": key, "total_amount": ZERO,
                                          "transaction_count": 0, "transactions": []})
        period["total_amount"] += txn.total_amount
        period["transaction_count"] += 1
        period["transactions"].append(txn.transaction_number)

        for item in txn.items.all():
            if item.product_id is None:
                continue
            row = products.setdefault(item.product_id, {
                "product_id": item.product_id, "sku": item.product.sku, "name": item.product.name,
                "total_amount": ZERO, "total_quantity": Decimal("0.000"),
            })
            row["total_amount"] += item.amount
            row["total_quantity"] += item.quantity

        if txn.contact_id:
            row = customers.setdefault(txn.contact_id, {
                "contact_id": txn.contact_id, "name": txn.contact.name,
                "total_amount": ZERO, "transaction_count": 0,
            })
            row["total_amount"] += txn.total_amount
            row["transaction_count"] += 1

    total = sum((t.total_amount for t in sales), ZERO)
    count = len(sales)
    by_amount = itemgetter("total_amount")
    return {
        "period": {"start": start, "end": end},
        "group_by": group_by,
        "summary": {
            "total_sales": total,
            "total_transactions": count,
            "average_transaction_value": (total / count).quantize(Decimal("0.01")) if count else ZERO,
        },
        "by_period": list(periods.values()),
        "top_products": sorted(products.values(), key=by_amount, reverse=True)[:10],
        "top_customers": sorted(customers.values(), key=by_amount, reverse=True)[:10],
    }
