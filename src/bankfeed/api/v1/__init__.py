"""API version 1 routes."""

from fastapi import APIRouter

from bankfeed.api.v1 import bank_accounts, monzo, pending_transactions, rules, webhooks

router = APIRouter(prefix="/api/v1")

# Include routers
router.include_router(monzo.router)
router.include_router(bank_accounts.router)
router.include_router(rules.router)
router.include_router(pending_transactions.router)
router.include_router(webhooks.router)
