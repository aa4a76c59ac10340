from django.db import IntegrityError, transaction

from .models import Transaction, TransactionSequence, TransactionType

# Closed mapping: every transaction type has exactly one prefix
PREFIXES = {
    TransactionType.SALES_ORDER: "SO",
    TransactionType.PURCHASE_ORDER: "PO",
    TransactionType.INVOICE: "INV",
    TransactionType.BILL: "BILL",
    TransactionType.PAYMENT: "PAY",
    TransactionType.RECEIPT: "RCP",
    TransactionType.JOURNAL: "JRN",
}


def prefix_for(txn_type):
    return PREFIXES[TransactionType(txn_type)]


def format_number(txn_type, year, sequence):
    return f"{prefix_for(txn_type)}-{year}-{sequence:03d}"


def _next_sequence(company, txn_type):
    """
    Allocate the next sequence value for a company/type pair.
    Uses select_for_update so concurrent creators queue on the counter row;
    must run inside the caller's atomic block.
    """
    try:
        seq = TransactionSequence.objects.select_for_update().get(
            company=company, type=txn_type
        )
    except TransactionSequence.DoesNotExist:
        # First document of this type: start after whatever already exists
        existing = Transaction.objects.for_company(company).filter(type=txn_type).count()
        try:
            # savepoint, so a lost creation race leaves the outer block usable
            with transaction.atomic():
                seq = TransactionSequence.objects.create(
                    company=company, type=txn_type, next_value=existing + 1
                )
        except IntegrityError:
            seq = TransactionSequence.objects.select_for_update().get(
                company=company, type=txn_type
            )
        # re-read under lock
        seq = TransactionSequence.objects.select_for_update().get(pk=seq.pk)

    value = seq.next_value
    seq.next_value = value + 1
    seq.save(update_fields=["next_value"])
    return value


def next_transaction_number(company, txn_type, doc_date):
    """
    Return e.g. "INV-2025-007" for the next document of `txn_type`.

    The counter never goes backwards, so numbers are not reused after a
    delete. Call inside the atomic block that inserts the transaction.
    """
    if not transaction.get_connection().in_atomic_block:
        raise RuntimeError("next_transaction_number must run inside transaction.atomic()")
    return format_number(txn_type, doc_date.year, _next_sequence(company, txn_type))
