"""Error codes and user-friendly messages.

This module defines the error catalog for bank feed ingestion.
Each error has:
- error_code: Unique identifier
- message: Technical description (for logs)
- user_message: User-friendly explanation
- suggestion: Actionable guidance for the user
- retry_allowed: Whether the error is retryable

It also translates raw provider/network failures into the user-facing
messages shown after a failed sync.
"""

from dataclasses import dataclass

import httpx


@dataclass
class ErrorDefinition:
    """Definition of a single error type."""

    code: str
    message: str
    user_message: str
    suggestion: str
    retry_allowed: bool


# Error catalog for bank feed ingestion
ERROR_CATALOG: dict[str, dict] = {
    "CFG_001": {
        "code": "CFG_001",
        "message": "Monzo OAuth client configuration is missing",
        "user_message": "Bank connections are not configured on this server.",
        "suggestion": "Please contact your administrator.",
        "retry_allowed": False,
    },
    "VAULT_001": {
        "code": "VAULT_001",
        "message": "Bank token encryption key is missing or invalid",
        "user_message": "Bank connections are not configured on this server.",
        "suggestion": "Please contact your administrator.",
        "retry_allowed": False,
    },
    "VAULT_002": {
        "code": "VAULT_002",
        "message": "Stored bank token could not be decrypted",
        "user_message": "We couldn't read the stored bank credentials.",
        "suggestion": "Please reconnect your bank account.",
        "retry_allowed": False,
    },
    "OAUTH_001": {
        "code": "OAUTH_001",
        "message": "OAuth state parameter is unknown or already used",
        "user_message": "This bank connection link is invalid.",
        "suggestion": "Please start the bank connection again.",
        "retry_allowed": False,
    },
    "OAUTH_002": {
        "code": "OAUTH_002",
        "message": "OAuth state parameter has expired",
        "user_message": "This bank connection link has expired.",
        "suggestion": "Please start the bank connection again.",
        "retry_allowed": False,
    },
    "OAUTH_003": {
        "code": "OAUTH_003",
        "message": "Authorization code exchange with the provider failed",
        "user_message": "We couldn't complete the connection with your bank.",
        "suggestion": "Please try connecting again.",
        "retry_allowed": True,
    },
    "OAUTH_004": {
        "code": "OAUTH_004",
        "message": "Pending bank connection not found or expired",
        "user_message": "This bank connection has expired.",
        "suggestion": "Please start the bank connection again.",
        "retry_allowed": False,
    },
    "OAUTH_005": {
        "code": "OAUTH_005",
        "message": "Provider access not yet approved in the banking app",
        "user_message": "Please approve access in your Monzo app first.",
        "suggestion": "Open the Monzo app, approve the request, then try again.",
        "retry_allowed": True,
    },
    "OAUTH_006": {
        "code": "OAUTH_006",
        "message": "Access token refresh failed",
        "user_message": "Access token has expired. Please reconnect your bank account.",
        "suggestion": "Reconnect your bank account from the settings page.",
        "retry_allowed": False,
    },
    "PROVIDER_001": {
        "code": "PROVIDER_001",
        "message": "Provider API request failed",
        "user_message": "An error occurred while syncing transactions",
        "suggestion": "Please try again later.",
        "retry_allowed": True,
    },
    "SYNC_001": {
        "code": "SYNC_001",
        "message": "Sync already in progress for this bank account",
        "user_message": "A sync is already running for this account.",
        "suggestion": "Wait for the current sync to finish and try again.",
        "retry_allowed": True,
    },
    "SYNC_002": {
        "code": "SYNC_002",
        "message": "Sync failed: provider rejected credentials",
        "user_message": "Access token has expired. Please reconnect your bank account.",
        "suggestion": "Reconnect your bank account from the settings page.",
        "retry_allowed": False,
    },
    "SYNC_003": {
        "code": "SYNC_003",
        "message": "Sync failed while fetching transactions",
        "user_message": "An error occurred while syncing transactions",
        "suggestion": "Please try again later.",
        "retry_allowed": True,
    },
    "SYNC_004": {
        "code": "SYNC_004",
        "message": "Bank account has sync disabled",
        "user_message": "Syncing is turned off for this account.",
        "suggestion": "Enable sync for the account and try again.",
        "retry_allowed": False,
    },
    "SYNC_005": {
        "code": "SYNC_005",
        "message": "Sync log not found",
        "user_message": "This import could not be found.",
        "suggestion": "Start a new sync from the settings page.",
        "retry_allowed": False,
    },
    "WEBHOOK_001": {
        "code": "WEBHOOK_001",
        "message": "Webhook secret mismatch",
        "user_message": "Forbidden",
        "suggestion": "Check the webhook URL registered with the provider.",
        "retry_allowed": False,
    },
    "WEBHOOK_002": {
        "code": "WEBHOOK_002",
        "message": "Webhook secret is not configured",
        "user_message": "Webhooks are not configured on this server.",
        "suggestion": "Set MONZO_WEBHOOK_SECRET and re-register the webhook.",
        "retry_allowed": True,
    },
    "WEBHOOK_003": {
        "code": "WEBHOOK_003",
        "message": "Webhook payload is not a supported transaction event",
        "user_message": "Invalid webhook payload.",
        "suggestion": "Only transaction.created events are accepted.",
        "retry_allowed": False,
    },
    "WEBHOOK_004": {
        "code": "WEBHOOK_004",
        "message": "Webhook transaction processing failed",
        "user_message": "The transaction could not be processed.",
        "suggestion": "The provider will retry delivery.",
        "retry_allowed": True,
    },
    "WEBHOOK_005": {
        "code": "WEBHOOK_005",
        "message": "Unsupported webhook provider",
        "user_message": "Unknown webhook provider.",
        "suggestion": "Check the webhook URL registered with the provider.",
        "retry_allowed": False,
    },
    "BANK_001": {
        "code": "BANK_001",
        "message": "Bank account not found",
        "user_message": "We couldn't find this bank account.",
        "suggestion": "Please refresh and try again.",
        "retry_allowed": False,
    },
    "BANK_002": {
        "code": "BANK_002",
        "message": "Bank account still has imported transactions",
        "user_message": "This bank account has imported transactions and can't be deleted.",
        "suggestion": "Disable syncing for the account instead.",
        "retry_allowed": False,
    },
    "RULE_001": {
        "code": "RULE_001",
        "message": "Matching rule not found",
        "user_message": "We couldn't find this rule.",
        "suggestion": "Please refresh and try again.",
        "retry_allowed": False,
    },
    "RULE_002": {
        "code": "RULE_002",
        "message": "Global matching rules cannot be modified through an account",
        "user_message": "Global rules can't be changed here.",
        "suggestion": "Create an account-specific rule instead.",
        "retry_allowed": False,
    },
    "RULE_003": {
        "code": "RULE_003",
        "message": "Invalid rule or transaction assignment",
        "user_message": "That combination of property, type and category isn't allowed.",
        "suggestion": "Choose a category that matches the transaction type.",
        "retry_allowed": False,
    },
    "RULE_004": {
        "code": "RULE_004",
        "message": "Rules to reorder belong to different bank accounts",
        "user_message": "Rules can only be reordered within one bank account.",
        "suggestion": "Reorder the rules of a single account at a time.",
        "retry_allowed": False,
    },
    "PENDING_001": {
        "code": "PENDING_001",
        "message": "Pending transaction not found",
        "user_message": "We couldn't find this pending transaction.",
        "suggestion": "It may already have been approved. Please refresh.",
        "retry_allowed": False,
    },
    "PENDING_002": {
        "code": "PENDING_002",
        "message": "Pending transaction is missing property, type or category",
        "user_message": "Please choose a property, type and category before approving.",
        "suggestion": "Fill in the missing fields and approve again.",
        "retry_allowed": False,
    },
}


def get_error(error_code: str) -> dict:
    """Get error definition by code.

    Args:
        error_code: Error code from the catalog

    Returns:
        Dict with error details; a generic definition for unknown codes
    """
    if error_code not in ERROR_CATALOG:
        return {
            "code": "UNKNOWN",
            "message": f"Unknown error code: {error_code}",
            "user_message": "An unexpected error occurred.",
            "suggestion": "Please try again. Contact support if the problem persists.",
            "retry_allowed": True,
        }
    return ERROR_CATALOG[error_code]


def get_user_message(error_code: str) -> str:
    """Get user-friendly message for an error code."""
    return get_error(error_code)["user_message"]


def get_suggestion(error_code: str) -> str:
    """Get actionable suggestion for an error code."""
    return get_error(error_code)["suggestion"]


def is_retryable(error_code: str) -> bool:
    """Check if an error is retryable."""
    return get_error(error_code)["retry_allowed"]


# Provider failures shown to the user after a sync attempt
PROVIDER_STATUS_MESSAGES: dict[int, str] = {
    401: "Access token has expired. Please reconnect your bank account.",
    403: "Access denied. Please reconnect your bank account.",
    404: "Resource not found. The account or transaction may have been deleted.",
    429: "Rate limit exceeded. Please try again later.",
}
PROVIDER_UNAVAILABLE_MESSAGE = "Monzo service is temporarily unavailable. Please try again later."
CONNECTION_FAILED_MESSAGE = "Could not connect to Monzo. Please check your internet connection."
TIMEOUT_MESSAGE = "Request timed out. Please try again."
DEFAULT_SYNC_ERROR_MESSAGE = "An error occurred while syncing transactions"


def translate_provider_error(exc: BaseException) -> str:
    """Map a provider or network failure to a user-facing message.

    Args:
        exc: Exception raised while talking to the provider

    Returns:
        Message safe to show to the user (never the raw provider body)
    """
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        if status_code in PROVIDER_STATUS_MESSAGES:
            return PROVIDER_STATUS_MESSAGES[status_code]
        if status_code >= 500:
            return PROVIDER_UNAVAILABLE_MESSAGE
    if isinstance(exc, httpx.TimeoutException):
        return TIMEOUT_MESSAGE
    if isinstance(exc, httpx.TransportError):
        return CONNECTION_FAILED_MESSAGE
    return DEFAULT_SYNC_ERROR_MESSAGE
