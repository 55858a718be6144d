"""Monzo Open Banking API client and payload models."""

from .client import MonzoClient
from .schemas import (
    MonzoAccount,
    MonzoTransaction,
    MonzoWebhook,
    MonzoWebhookPayload,
    TokenSet,
)

__all__ = [
    "MonzoAccount",
    "MonzoClient",
    "MonzoTransaction",
    "MonzoWebhook",
    "MonzoWebhookPayload",
    "TokenSet",
]
