from .account import DEBIT_NORMAL_TYPES, Account, AccountType, signed_movement
from .contact import Contact
from .entitymembership import Company, EntityMembership
from .ledger import LedgerEntry
from .product import Product
from .stock import MOVEMENT_TYPES, StockMovement
from .tax import Tax
from .transaction import (MODIFIABLE_STATUSES, PAYMENT_METHODS, ApprovalHistory,
                          EntrySide, Payment, Transaction, TransactionItem,
                          TransactionSequence, TransactionStatus,
                          TransactionType)
