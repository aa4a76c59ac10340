"""
Transaction status machine.

ALLOWED_TRANSITIONS is the closed table of manual moves. PARTIALLY_PAID and
PAID are normally reached through payment application; OVERDUE is only ever
derived on read and is never a target.
"""
import logging

from django.utils import timezone

from . import inventory, posting
from .exceptions import InvalidStateError, ValidationError
from .models import (ApprovalHistory, EntityMembership, TransactionStatus,
                     TransactionType)

logger = logging.getLogger(__name__)

S = TransactionStatus

ALLOWED_TRANSITIONS = {
    S.DRAFT: {S.PENDING_APPROVAL, S.APPROVED, S.SENT, S.ACCEPTED, S.CANCELLED},
    S.PENDING_APPROVAL: {S.APPROVED, S.CHANGES_REQUESTED, S.REJECTED, S.CANCELLED},
    S.CHANGES_REQUESTED: {S.DRAFT, S.PENDING_APPROVAL, S.APPROVED, S.SENT, S.CANCELLED},
    S.APPROVED: {S.SENT, S.ACCEPTED, S.CHANGES_REQUESTED, S.CANCELLED},
    # SENT -> SENT is a re-send: stamped and logged, never re-posted
    S.SENT: {S.SENT, S.ACCEPTED, S.CHANGES_REQUESTED, S.REJECTED, S.CANCELLED},
    S.ACCEPTED: {S.CHANGES_REQUESTED, S.CANCELLED},
    S.PARTIALLY_PAID: set(),
    S.PAID: set(),
    S.CANCELLED: set(),
    S.REJECTED: set(),
    S.OVERDUE: set(),
}

TERMINAL_STATUSES = frozenset({S.PAID, S.CANCELLED, S.REJECTED})

# Statuses at which a document's ledger effect is live
POSTING_STATUSES = frozenset({S.SENT, S.ACCEPTED, S.PARTIALLY_PAID, S.PAID})

# Leaving a posted status for one of these undoes the posting
REVERSING_TARGETS = frozenset({S.CHANGES_REQUESTED, S.REJECTED, S.CANCELLED})

# Manual PAID is only for documents with nothing left to settle
MANUAL_PAID_FROM = frozenset({S.DRAFT, S.APPROVED, S.SENT, S.ACCEPTED, S.PARTIALLY_PAID})


def can_transition(from_status, to_status):
    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


def check_transition(txn, target, comments=None):
    """Raise unless `txn` may move to `target` right now."""
    if target not in S.values:
        raise ValidationError(f"Unknown status {target!r}")
    if target == S.OVERDUE:
        raise InvalidStateError("OVERDUE is derived from the due date and cannot be set")
    if txn.status in TERMINAL_STATUSES:
        raise InvalidStateError(f"{txn} is {txn.status} and cannot change status")

    if target == S.PAID:
        if txn.status not in MANUAL_PAID_FROM:
            raise InvalidStateError(f"Cannot mark {txn} as paid from {txn.status}")
        if txn.balance_amount != 0:
            raise InvalidStateError(
                f"Cannot mark {txn} as paid while {txn.balance_amount} is outstanding"
            )
        return
    if target == S.PARTIALLY_PAID:
        raise InvalidStateError("PARTIALLY_PAID is reached by applying a payment")

    if not can_transition(txn.status, target):
        raise InvalidStateError(f"Cannot move {txn} from {txn.status} to {target}")

    if target == S.REJECTED and not (comments or "").strip():
        raise ValidationError("A rejection reason is required")

    if txn.is_posted and target in REVERSING_TARGETS and txn.paid_amount > 0:
        raise InvalidStateError(
            f"{txn} has payments applied; it can no longer be reversed"
        )


def record_history(txn, action, from_status, user=None, comments=None):
    """Append one history row. Name and role are captured as they are now."""
    name = ""
    if user is not None:
        name = user.get_full_name() or user.get_username()
    return ApprovalHistory.objects.create(
        company_id=txn.company_id,
        transaction=txn,
        action=action,
        from_status=from_status,
        performed_by=user,
        performed_by_name=name,
        performed_by_role=EntityMembership.role_for(user, txn.company),
        comments=comments or None,
    )


def _stamp(txn, target, user, comments, now):
    fields = ["status"]
    if target == S.APPROVED:
        txn.approved_at, txn.approved_by = now, user
        fields += ["approved_at", "approved_by"]
    elif target == S.SENT:
        txn.sent_at = now
        fields.append("sent_at")
    elif target == S.ACCEPTED:
        txn.accepted_at = now
        fields.append("accepted_at")
    elif target == S.REJECTED:
        txn.rejected_at = now
        txn.rejection_reason = comments.strip()
        fields += ["rejected_at", "rejection_reason"]
    return fields


def apply_transition(txn, target, user=None, comments=None):
    """
    Move a locked `txn` to `target` with all side effects: stamps, ledger
    posting or reversal, stock movements and one history row. The caller
    owns the atomic block and the row lock.
    """
    check_transition(txn, target, comments)
    from_status = txn.status
    now = timezone.now()

    if txn.is_posted and target in REVERSING_TARGETS:
        journal = posting.reverse_posting(txn, user=user, reason=comments or "")
        if journal is not None:
            record_history(
                journal, S.ACCEPTED, None, user,
                comments=f"Reversal of {txn.transaction_number}",
            )
        inventory.reverse_document_movements(txn)

    txn.status = target
    fields = _stamp(txn, target, user, comments, now)
    txn.save(update_fields=fields + ["updated_at"])

    if (
        target in POSTING_STATUSES
        and posting.posts_to_ledger(txn.type)
        and not txn.is_posted
    ):
        posting.post_transaction(txn)
        inventory.record_document_movements(txn)

    record_history(txn, target, from_status, user, comments)
    logger.info(
        "Transaction %s moved %s -> %s by %s",
        txn.transaction_number, from_status, target, getattr(user, "pk", None),
    )
    return txn


def settle(txn, paid_amount, user=None, comments=None):
    """
    Payment-driven move: record the new paid amount on a locked INVOICE/BILL
    and step it to PARTIALLY_PAID or PAID.
    """
    if txn.type not in (TransactionType.INVOICE, TransactionType.BILL):
        raise InvalidStateError(f"{txn} cannot be settled by a payment")
    from_status = txn.status
    txn.paid_amount = paid_amount
    txn.balance_amount = txn.total_amount - paid_amount
    txn.status = S.PAID if txn.balance_amount == 0 else S.PARTIALLY_PAID
    txn.save(update_fields=["paid_amount", "balance_amount", "status", "updated_at"])
    record_history(txn, txn.status, from_status, user, comments)
    logger.info(
        "Transaction %s settled to %s, balance %s",
        txn.transaction_number, txn.status, txn.balance_amount,
    )
    return txn
