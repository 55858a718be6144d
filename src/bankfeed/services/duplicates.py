"""Detection of transactions the provider re-issued under a new id.

A provider can deliver the same payment twice with different ids, e.g. once
while pending and again once settled. Besides the exact (account,
external_id) key, a new transaction counts as a duplicate when an existing
one of the same account has the same amount, is dated within a day and has
a near-identical description.
"""
import logging
import re
from datetime import datetime, timedelta
from decimal import Decimal
from difflib import SequenceMatcher
from uuid import UUID

from bankfeed.models.bank_transaction import BankTransaction
from bankfeed.repositories.bank_transaction import BankTransactionRepository

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.8
DATE_WINDOW = timedelta(days=1)
CANDIDATE_LIMIT = 100

_WHITESPACE = re.compile(r"\s+")


def _normalize(text: str | None) -> str:
    return _WHITESPACE.sub(" ", (text or "").lower()).strip()


def description_similarity(first: str | None, second: str | None) -> float:
    """Similarity ratio (0.0 - 1.0) of two descriptions, ignoring case and spacing."""
    first_norm = _normalize(first)
    second_norm = _normalize(second)
    if not first_norm and not second_norm:
        return 1.0
    if not first_norm or not second_norm:
        return 0.0
    return SequenceMatcher(None, first_norm, second_norm).ratio()


class DuplicateDetector:
    """Finds an already stored transaction that a new one duplicates."""

    def __init__(self, repo: BankTransactionRepository):
        self.repo = repo

    async def find_duplicate(
        self,
        bank_account_id: UUID,
        external_id: str,
        amount: Decimal,
        description: str | None,
        transaction_date: datetime,
    ) -> BankTransaction | None:
        """Return the stored duplicate, or None if the transaction is new.

        Args:
            bank_account_id: Internal bank account id
            external_id: Provider transaction id
            amount: Signed amount in major units
            description: Provider description
            transaction_date: When the transaction was created

        Returns:
            Exact match by external id first, otherwise the newest fuzzy match
        """
        exact = await self.repo.get_by_external_id(bank_account_id, external_id)
        if exact is not None:
            return exact

        candidates = await self.repo.find_near_duplicates(
            bank_account_id, amount, transaction_date, DATE_WINDOW, CANDIDATE_LIMIT
        )
        for candidate in candidates:
            if description_similarity(description, candidate.description) >= SIMILARITY_THRESHOLD:
                logger.info(
                    "Skipping re-issued bank transaction",
                    extra={
                        "external_id": external_id,
                        "matched_external_id": candidate.external_id,
                        "bank_account_id": str(bank_account_id),
                    },
                )
                return candidate
        return None
