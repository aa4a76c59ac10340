import functools
import logging

from django.core.exceptions import ObjectDoesNotExist
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError as DBIntegrityError
from django.db import OperationalError

logger = logging.getLogger(__name__)


class BooksError(Exception):
    """Base class for every error the engine hands back to its caller."""

    def __init__(self, message="", *args):
        super().__init__(message, *args)
        self.message = message

    def __str__(self):
        return str(self.message)


class ValidationError(BooksError, DjangoValidationError):
    """Malformed item, date or amount."""

    def __init__(self, message="", code=None, params=None):
        DjangoValidationError.__init__(self, message, code=code, params=params)
        if isinstance(message, (list, tuple)):
            message = "; ".join(str(m) for m in message)
        self.message = message

    def __str__(self):
        return str(self.message)


class NotFoundError(BooksError):
    """Unknown transaction / account / product reference inside a company."""
    pass


class InvalidStateError(BooksError):
    """Status transition or edit not permitted from the current status."""
    pass


class InsufficientStockError(BooksError):
    """An OUT movement would drive on-hand stock below zero."""
    pass


class IntegrityError(BooksError):
    """Ledger or balance-sheet inconsistency. Never expected; always surfaced."""
    pass


class UnbalancedLedgerError(IntegrityError):
    """Raised when a transaction's debit and credit entries do not match."""
    pass


class ConflictError(BooksError):
    """Concurrent write detected by the store; the caller must re-submit."""
    pass


def translate_errors(func):
    """
    Map anything raised inside an engine operation onto the error taxonomy.

    Must wrap the function *outside* its atomic block so the store has
    already rolled back by the time the error is translated.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except IntegrityError as exc:
            logger.error(
                "Ledger integrity failure in %s: %s",
                func.__name__,
                exc,
                exc_info=True,
            )
            raise
        except BooksError:
            raise
        except DjangoValidationError as exc:
            raise ValidationError(exc.messages) from exc
        except ObjectDoesNotExist as exc:
            raise NotFoundError(str(exc) or "Object not found") from exc
        except (DBIntegrityError, OperationalError) as exc:
            # unique-number races, lock timeouts, serialization failures
            raise ConflictError(
                f"Concurrent update conflict, please retry: {exc}"
            ) from exc

    return wrapper
