import datetime
import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from .. import posting, state_machine
from ..calculator import ZERO, calculate_item, calculate_totals, to_decimal, to_money
from ..exceptions import (InvalidStateError, NotFoundError, ValidationError,
                          translate_errors)
from ..models import (PAYMENT_METHODS, Account, Contact, EntrySide, Payment,
                      Product, Tax, Transaction, TransactionItem,
                      TransactionStatus, TransactionType)
from ..numbering import next_transaction_number

logger = logging.getLogger(__name__)

# Which product price a line falls back to when no rate is given
_SELLING_TYPES = frozenset(
    {TransactionType.SALES_ORDER, TransactionType.INVOICE, TransactionType.RECEIPT}
)
_SETTLEMENT_TYPES = {
    TransactionType.INVOICE: TransactionType.RECEIPT,
    TransactionType.BILL: TransactionType.PAYMENT,
}
_PAYABLE_STATUSES = frozenset(
    {TransactionStatus.SENT, TransactionStatus.ACCEPTED, TransactionStatus.PARTIALLY_PAID}
)
_EDITABLE_FIELDS = ("contact_id", "date", "due_date", "reference_number", "notes", "terms")


# ----------------------------
# Lookup helpers (always tenant scoped)
# ----------------------------
def _get(model, company, pk, label, lock=False):
    if pk in (None, ""):
        return None
    qs = model.objects.for_company(company)
    if lock:
        qs = qs.select_for_update()
    try:
        return qs.get(pk=pk)
    except (model.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"{label} {pk} not found")


def to_date(value, field):
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD), got {value!r}")


def _txn_type(value):
    if value not in TransactionType.values:
        raise ValidationError(f"Unknown transaction type {value!r}")
    return TransactionType(value)


# ----------------------------
# Items
# ----------------------------
def _prepare_items(company, txn_type, raw_items):
    """Resolve references and price every line. Returns [(refs, PricedItem)]."""
    if not raw_items:
        raise ValidationError("At least one item is required")

    prepared = []
    for index, raw in enumerate(raw_items):
        raw = dict(raw)
        product = _get(Product, company, raw.get("product_id"), "Product")
        tax = _get(Tax, company, raw.get("tax_id"), "Tax")
        account = _get(Account, company, raw.get("account_id"), "Account")
        if account is not None and not account.is_active:
            raise ValidationError(f"Account {account.code} is inactive")

        if product is not None:
            if raw.get("rate") in (None, ""):
                raw["rate"] = product.sale_price if txn_type in _SELLING_TYPES else product.purchase_price
            if tax is None and "tax_id" not in raw:
                tax = product.default_tax
        if tax is not None and raw.get("tax_amount") in (None, ""):
            raw["tax_rate"] = tax.rate

        side = raw.get("side")
        if txn_type == TransactionType.JOURNAL:
            if account is None or side not in EntrySide.values:
                raise ValidationError(f"Journal line {index + 1} needs an account and a side (DEBIT/CREDIT)")
        elif side:
            raise ValidationError("Only journal lines carry a side")

        priced = calculate_item(raw)
        refs = {
            "product": product,
            "tax": tax,
            "account": account,
            "side": side or None,
            "description": raw.get("description") or (product.name if product else None),
            "unit": raw.get("unit") or (product.unit if product else "Nos"),
            "notes": raw.get("notes"),
            "sort_order": raw.get("sort_order", index),
        }
        prepared.append((refs, priced))

    if txn_type == TransactionType.JOURNAL:
        debits = sum((p.amount for r, p in prepared if r["side"] == EntrySide.DEBIT), ZERO)
        credits = sum((p.amount for r, p in prepared if r["side"] == EntrySide.CREDIT), ZERO)
        if debits != credits:
            raise ValidationError(f"Journal is not balanced: debits {debits} != credits {credits}")
    return prepared


def _write_items(txn, prepared):
    TransactionItem.objects.bulk_create(
        [
            TransactionItem(
                company_id=txn.company_id,
                transaction=txn,
                product=refs["product"],
                description=refs["description"],
                quantity=priced.quantity,
                unit=refs["unit"],
                rate=priced.rate,
                discount_percent=priced.discount_percent,
                discount_amount=priced.discount_amount,
                tax=refs["tax"],
                tax_amount=priced.tax_amount,
                amount=priced.amount,
                account=refs["account"],
                side=refs["side"],
                notes=refs["notes"],
                sort_order=refs["sort_order"],
            )
            for refs, priced in prepared
        ]
    )


def _apply_totals(txn, prepared):
    totals = calculate_totals(priced for _refs, priced in prepared)
    txn.subtotal = totals.subtotal
    txn.discount_amount = totals.discount_amount
    txn.tax_amount = totals.tax_amount
    txn.total_amount = totals.total_amount
    txn.balance_amount = txn.total_amount - txn.paid_amount


def _default_due_date(txn_type, contact, doc_date):
    if txn_type in (TransactionType.INVOICE, TransactionType.BILL) and contact and contact.payment_terms_days:
        return doc_date + datetime.timedelta(days=contact.payment_terms_days)
    return None


# ----------------------------
# Public operations
# ----------------------------
@translate_errors
def create_transaction(company, user, txn_type, items, *, contact_id=None, date=None,
                       due_date=None, parent_id=None, reference_number=None,
                       notes=None, terms=None):
    """
    Price, number and store a new document in DRAFT.

    `items` is a list of dicts: quantity, rate, and optionally product_id,
    description, unit, discount_percent / discount_amount, tax_id /
    tax_amount, account_id, side (journals), notes.
    """
    txn_type = _txn_type(txn_type)
    doc_date = to_date(date, "date") or timezone.localdate()
    due = to_date(due_date, "due_date")

    with transaction.atomic():
        contact = _get(Contact, company, contact_id, "Contact")
        parent = _get(Transaction, company, parent_id, "Transaction")
        if parent is not None and _SETTLEMENT_TYPES.get(parent.type) == txn_type:
            # settling a document goes through apply_payment only
            raise InvalidStateError(
                f"{parent} is settled with apply_payment, not with a {txn_type} created against it"
            )
        prepared = _prepare_items(company, txn_type, items)

        txn = Transaction(
            company=company,
            transaction_number=next_transaction_number(company, txn_type, doc_date),
            type=txn_type,
            status=TransactionStatus.DRAFT,
            contact=contact,
            date=doc_date,
            due_date=due or _default_due_date(txn_type, contact, doc_date),
            parent=parent,
            reference_number=reference_number,
            notes=notes,
            terms=terms,
            created_by=user,
        )
        _apply_totals(txn, prepared)
        txn.full_clean()
        txn.save()
        _write_items(txn, prepared)
        state_machine.record_history(txn, TransactionStatus.DRAFT, None, user)

    logger.info("Created %s %s total %s", txn.type, txn.transaction_number, txn.total_amount)
    return txn


@translate_errors
def update_transaction(company, user, txn_id, items=None, **changes):
    """Edit header fields and/or replace the item set of a modifiable document."""
    unknown = set(changes) - set(_EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

    with transaction.atomic():
        txn = _get(Transaction, company, txn_id, "Transaction", lock=True)
        if txn is None:
            raise NotFoundError("Transaction id is required")
        if not txn.is_modifiable:
            raise InvalidStateError(f"{txn} is {txn.status} and can no longer be edited")

        if "contact_id" in changes:
            txn.contact = _get(Contact, company, changes["contact_id"], "Contact")
        if "date" in changes:
            txn.date = to_date(changes["date"], "date") or txn.date
        if "due_date" in changes:
            txn.due_date = to_date(changes["due_date"], "due_date")
        for field in ("reference_number", "notes", "terms"):
            if field in changes:
                setattr(txn, field, changes[field])

        if items is not None:
            prepared = _prepare_items(company, TransactionType(txn.type), items)
            txn.items.all().delete()
            _write_items(txn, prepared)
            _apply_totals(txn, prepared)
        else:
            txn.balance_amount = txn.total_amount - txn.paid_amount

        txn.full_clean()
        txn.save()

    logger.info("Updated %s", txn.transaction_number)
    return txn


@translate_errors
def delete_transaction(company, user, txn_id):
    """Delete a modifiable document with its items, payments, entries and history."""
    with transaction.atomic():
        txn = _get(Transaction, company, txn_id, "Transaction", lock=True)
        if txn is None:
            raise NotFoundError("Transaction id is required")
        if not txn.is_modifiable:
            raise InvalidStateError(f"{txn} is {txn.status} and cannot be deleted")
        number = txn.transaction_number
        txn.delete()

    logger.info("Deleted %s by %s", number, getattr(user, "pk", None))
    return number


@translate_errors
def transition_status(company, user, txn_id, target_status, comments=None):
    """Move a document to `target_status`; posting and history happen in the same unit."""
    with transaction.atomic():
        txn = _get(Transaction, company, txn_id, "Transaction", lock=True)
        if txn is None:
            raise NotFoundError("Transaction id is required")
        state_machine.apply_transition(txn, target_status, user=user, comments=comments)
    return txn


@translate_errors
def apply_payment(company, user, target_id, amount, *, payment_date=None,
                  method="BANK_TRANSFER", reference=None, notes=None):
    """
    Settle (part of) a posted INVOICE or BILL.

    Creates and posts the RECEIPT/PAYMENT that moves the cash, records the
    Payment link and steps the target to PARTIALLY_PAID or PAID.
    Returns the Payment.
    """
    amount = to_decimal(amount, "amount")
    if amount is None or amount <= 0:
        raise ValidationError("Payment amount must be greater than 0")
    amount = to_money(amount)
    if method not in dict(PAYMENT_METHODS):
        raise ValidationError(f"Unknown payment method {method!r}")
    pay_date = to_date(payment_date, "payment_date") or timezone.localdate()

    with transaction.atomic():
        target = _get(Transaction, company, target_id, "Transaction", lock=True)
        if target is None:
            raise NotFoundError("Transaction id is required")
        settlement_type = _SETTLEMENT_TYPES.get(TransactionType(target.type))
        if settlement_type is None:
            raise InvalidStateError(f"{target} is a {target.type}; payments apply to invoices and bills")
        if target.status not in _PAYABLE_STATUSES or not target.is_posted:
            raise InvalidStateError(f"{target} is {target.status}; only posted documents take payments")
        if amount > target.balance_amount:
            raise ValidationError(
                f"Payment {amount} exceeds the outstanding balance {target.balance_amount}"
            )
        if pay_date < target.date:
            raise ValidationError("Payment date cannot be before the document date")

        settlement = Transaction.objects.create(
            company=company,
            transaction_number=next_transaction_number(company, settlement_type, pay_date),
            type=settlement_type,
            status=TransactionStatus.PAID,
            contact=target.contact,
            date=pay_date,
            parent=target,
            reference_number=reference,
            subtotal=amount,
            total_amount=amount,
            paid_amount=amount,
            balance_amount=Decimal("0.00"),
            notes=notes,
            created_by=user,
        )
        TransactionItem.objects.create(
            company=company,
            transaction=settlement,
            description=f"Payment for {target.transaction_number}",
            quantity=Decimal("1.000"),
            rate=amount,
            amount=amount,
        )
        state_machine.record_history(settlement, TransactionStatus.PAID, None, user)
        posting.post_transaction(settlement)

        payment = Payment.objects.create(
            company=company,
            transaction=target,
            settlement=settlement,
            amount=amount,
            payment_date=pay_date,
            method=method,
            reference=reference,
        )
        state_machine.settle(
            target, target.paid_amount + amount, user,
            comments=f"Payment {settlement.transaction_number} of {amount}",
        )

    logger.info(
        "Applied %s to %s via %s", amount, target.transaction_number, settlement.transaction_number
    )
    return payment


# ----------------------------
# Read side
# ----------------------------
@translate_errors
def get_transaction(company, txn_id):
    txn = _get(Transaction, company, txn_id, "Transaction")
    if txn is None:
        raise NotFoundError("Transaction id is required")
    return txn


@translate_errors
def list_transactions(company, txn_type=None, status=None, start=None, end=None, today=None):
    """
    Tenant-scoped listing. status="OVERDUE" selects invoices whose
    derived status is overdue.
    """
    start, end = to_date(start, "start"), to_date(end, "end")
    today = to_date(today, "today") or timezone.localdate()
    qs = Transaction.objects.for_company(company).in_range(start, end)
    if txn_type:
        qs = qs.of_type(_txn_type(txn_type))
    if status == TransactionStatus.OVERDUE:
        qs = qs.of_type(TransactionType.INVOICE).overdue(today)
    elif status:
        qs = qs.filter(status=status)
    return qs.select_related("contact").order_by("-date", "-id")
