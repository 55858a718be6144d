"""Encrypted storage of provider tokens on BankAccount rows."""
import logging
from datetime import timedelta
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.core.clock import utcnow
from bankfeed.core.exceptions import ProviderAPIError, TokenRefreshFailed
from bankfeed.core.security import TokenCipher
from bankfeed.models.bank_account import BankAccount
from bankfeed.providers.monzo import MonzoClient, TokenSet
from bankfeed.repositories.bank_account import BankAccountRepository

logger = logging.getLogger(__name__)


class TokenVault:
    """Encrypts, decrypts and refreshes the tokens of connected accounts."""

    def __init__(self, db: AsyncSession, cipher: TokenCipher, client: MonzoClient):
        """Initialize the vault.

        Args:
            db: Database session
            cipher: AES-GCM cipher built from the configured key
            client: Provider client used for the refresh grant
        """
        self.db = db
        self.cipher = cipher
        self.client = client
        self.account_repo = BankAccountRepository(db)

    def encrypt(self, token: str) -> str:
        return self.cipher.encrypt(token)

    def decrypt(self, encrypted: str) -> str:
        return self.cipher.decrypt(encrypted)

    def store_tokens(self, account: BankAccount, tokens: TokenSet) -> None:
        """Encrypt a token set onto the account (caller commits)."""
        account.access_token = self.cipher.encrypt(tokens.access_token)
        if tokens.refresh_token:
            account.refresh_token = self.cipher.encrypt(tokens.refresh_token)
        account.token_expires_at = (
            utcnow() + timedelta(seconds=tokens.expires_in) if tokens.expires_in else None
        )

    def get_access_token(self, account: BankAccount) -> str:
        return self.cipher.decrypt(account.access_token)

    async def refresh(self, bank_account_id: UUID) -> str:
        """Run the refresh grant for an account and persist the new tokens.

        Args:
            bank_account_id: Internal bank account id

        Returns:
            The new decrypted access token

        Raises:
            TokenRefreshFailed: If the account has no refresh token or the
                provider rejects the refresh
        """
        account = await self.account_repo.get_by_id(bank_account_id)
        if account is None or not account.refresh_token:
            raise TokenRefreshFailed(details={"bank_account_id": str(bank_account_id)})

        refresh_token = self.cipher.decrypt(account.refresh_token)
        try:
            tokens = await self.client.refresh_access_token(refresh_token)
        except (ProviderAPIError, httpx.TransportError) as exc:
            logger.warning(
                "Token refresh failed",
                extra={"bank_account_id": str(bank_account_id), "error_type": type(exc).__name__},
            )
            raise TokenRefreshFailed(details={"bank_account_id": str(bank_account_id)}) from exc

        self.store_tokens(account, tokens)
        await self.db.commit()
        logger.info("Access token refreshed", extra={"bank_account_id": str(bank_account_id)})
        return tokens.access_token
