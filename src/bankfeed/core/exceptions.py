"""Custom exception classes for bank feed ingestion.

This module defines a hierarchy of exceptions used throughout the
connection, sync and categorization pipeline. Each exception maps to a
specific error code defined in errors.py.
"""

from typing import Any


class BankFeedError(Exception):
    """Base exception for all bank feed errors.

    All custom exceptions inherit from this base class and include
    an error_code that maps to the error catalog.

    Attributes:
        error_code: Code from the error catalog (e.g., "SYNC_001")
        details: Additional context about the error (for logging)
        http_status: HTTP status code to return (default: 500)
        user_message: Overrides the catalog's user message when set
    """

    default_error_code = "SYS_001"
    default_http_status = 500

    def __init__(
        self,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        http_status: int | None = None,
        user_message: str | None = None,
    ):
        """Initialize the exception.

        Args:
            error_code: Error code from errors.py
            details: Additional error context (not shown to users)
            http_status: HTTP status code
            user_message: Translated message shown instead of the catalog's
        """
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.http_status = http_status or self.default_http_status
        self.user_message = user_message
        super().__init__(self.error_code)


class OAuthConfigMissing(BankFeedError):
    """Raised when the Monzo client id, secret or redirect URI is not set."""

    default_error_code = "CFG_001"
    default_http_status = 500


class TokenVaultError(BankFeedError):
    """Raised when tokens cannot be encrypted or decrypted.

    Common causes:
    - Encryption key missing or not 64 hex characters (VAULT_001)
    - Ciphertext tampered with or encrypted under another key (VAULT_002)
    """

    default_error_code = "VAULT_002"
    default_http_status = 500


class InvalidOrExpiredState(BankFeedError):
    """Raised when the OAuth callback state cannot be validated."""

    default_error_code = "OAUTH_001"
    default_http_status = 400


class InvalidState(InvalidOrExpiredState):
    """State was never issued or has already been consumed."""

    default_error_code = "OAUTH_001"


class ExpiredState(InvalidOrExpiredState):
    """State was issued but is older than its TTL."""

    default_error_code = "OAUTH_002"


class OAuthExchangeFailed(BankFeedError):
    """Raised when the provider rejects the authorization code exchange."""

    default_error_code = "OAUTH_003"
    default_http_status = 502


class PendingConnectionNotFound(BankFeedError):
    default_error_code = "OAUTH_004"
    default_http_status = 400


class ScaNotApproved(BankFeedError):
    """Raised while the user has not yet approved access in the banking app.

    The pending connection is kept so the client can retry.
    """

    default_error_code = "OAUTH_005"
    default_http_status = 403


class TokenRefreshFailed(BankFeedError):
    default_error_code = "OAUTH_006"
    default_http_status = 401


class ProviderAPIError(BankFeedError):
    """Raised when the provider API answers with a non-success status.

    Attributes:
        status_code: HTTP status returned by the provider
        retry_after: Seconds from the Retry-After header, if any
    """

    default_error_code = "PROVIDER_001"
    default_http_status = 502

    def __init__(
        self,
        status_code: int,
        details: dict[str, Any] | None = None,
        retry_after: float | None = None,
    ):
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(details={"status_code": status_code, **(details or {})})

    def __str__(self) -> str:
        return f"{self.error_code}: provider returned HTTP {self.status_code}"


class SyncAlreadyInProgress(BankFeedError):
    default_error_code = "SYNC_001"
    default_http_status = 409


class SyncFailed(BankFeedError):
    """Raised when a manual sync fails outright.

    The user_message carries the translated provider error.
    """

    default_error_code = "SYNC_003"
    default_http_status = 502


class SyncDisabled(BankFeedError):
    default_error_code = "SYNC_004"
    default_http_status = 400


class SyncLogNotFound(BankFeedError):
    default_error_code = "SYNC_005"
    default_http_status = 404


class WebhookForbidden(BankFeedError):
    default_error_code = "WEBHOOK_001"
    default_http_status = 403


class WebhookMisconfigured(BankFeedError):
    default_error_code = "WEBHOOK_002"
    default_http_status = 500


class InvalidWebhookPayload(BankFeedError):
    default_error_code = "WEBHOOK_003"
    default_http_status = 400


class WebhookProcessingFailed(BankFeedError):
    default_error_code = "WEBHOOK_004"
    default_http_status = 500


class UnsupportedWebhookProvider(BankFeedError):
    default_error_code = "WEBHOOK_005"
    default_http_status = 404


class BankAccountNotFound(BankFeedError):
    default_error_code = "BANK_001"
    default_http_status = 404


class BankAccountInUse(BankFeedError):
    default_error_code = "BANK_002"
    default_http_status = 409


class RuleNotFound(BankFeedError):
    default_error_code = "RULE_001"
    default_http_status = 404


class GlobalRuleImmutable(BankFeedError):
    default_error_code = "RULE_002"
    default_http_status = 403


class InvalidRuleAssignment(BankFeedError):
    """Raised when a property/type/category combination is not allowed."""

    default_error_code = "RULE_003"
    default_http_status = 400


class RuleReorderMismatch(BankFeedError):
    default_error_code = "RULE_004"
    default_http_status = 400


class PendingTransactionNotFound(BankFeedError):
    default_error_code = "PENDING_001"
    default_http_status = 404


class PendingTransactionIncomplete(BankFeedError):
    default_error_code = "PENDING_002"
    default_http_status = 400
