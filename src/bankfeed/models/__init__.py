"""Database models."""
from bankfeed.models.property import Property
from bankfeed.models.bank_account import BankAccount, SyncStatus
from bankfeed.models.transaction import Transaction, TransactionType
from bankfeed.models.bank_transaction import BankTransaction
from bankfeed.models.pending_transaction import PendingTransaction
from bankfeed.models.matching_rule import MatchingRule, RuleType
from bankfeed.models.sync_log import SyncLog, SyncType

__all__ = [
    "Property",
    "BankAccount",
    "SyncStatus",
    "Transaction",
    "TransactionType",
    "BankTransaction",
    "PendingTransaction",
    "MatchingRule",
    "RuleType",
    "SyncLog",
    "SyncType",
]
