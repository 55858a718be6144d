"""Review queue endpoints for bank transactions no rule fully categorized."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from bankfeed.api.deps import get_pending_service
from bankfeed.schemas.pending import (
    PendingApproveRequest,
    PendingCountResponse,
    PendingTransactionListResult,
    PendingTransactionResponse,
    PendingTransactionUpdateRequest,
    TransactionResponse,
)
from bankfeed.services.pending import PendingTransactionService

router = APIRouter(prefix="/pending-transactions", tags=["pending-transactions"])


@router.get(
    "",
    response_model=PendingTransactionListResult,
    summary="List pending transactions",
)
async def list_pending(
    bank_account_id: UUID | None = Query(None, description="Only this bank account"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    service: PendingTransactionService = Depends(get_pending_service),
) -> PendingTransactionListResult:
    """
    List pending transactions, newest first.

    Args:
        bank_account_id: Optional account filter
        skip: Rows to skip
        limit: Maximum rows to return
        service: Pending transaction service

    Returns:
        Page of pending transactions with the total count
    """
    rows = await service.list_pending(bank_account_id, skip, limit)
    total = await service.count_pending(bank_account_id)
    return PendingTransactionListResult(
        pending_transactions=[PendingTransactionResponse.model_validate(row) for row in rows],
        total=total,
    )


@router.get(
    "/count",
    response_model=PendingCountResponse,
    summary="Number of transactions awaiting review",
)
async def count_pending(
    bank_account_id: UUID | None = Query(None),
    service: PendingTransactionService = Depends(get_pending_service),
) -> PendingCountResponse:
    return PendingCountResponse(count=await service.count_pending(bank_account_id))


@router.get(
    "/{pending_id}",
    response_model=PendingTransactionResponse,
    summary="Get a pending transaction",
    responses={404: {"description": "Pending transaction not found"}},
)
async def get_pending(
    pending_id: UUID,
    service: PendingTransactionService = Depends(get_pending_service),
) -> PendingTransactionResponse:
    return PendingTransactionResponse.model_validate(await service.get_pending(pending_id))


@router.patch(
    "/{pending_id}",
    response_model=PendingTransactionResponse,
    summary="Record a reviewer's categorization",
    description="""
    Reviewed values take precedence over rule output when the queue is
    re-evaluated after a rule change.
    """,
    responses={
        400: {"description": "Invalid property, type or category"},
        404: {"description": "Pending transaction not found"},
    },
)
async def update_pending(
    pending_id: UUID,
    request: PendingTransactionUpdateRequest,
    service: PendingTransactionService = Depends(get_pending_service),
) -> PendingTransactionResponse:
    changes = request.model_dump(exclude_unset=True)
    reviewed_by = changes.pop("reviewed_by", None)
    pending = await service.update_pending(pending_id, changes, reviewed_by)
    return PendingTransactionResponse.model_validate(pending)


@router.post(
    "/{pending_id}/approve",
    response_model=TransactionResponse,
    summary="Approve a pending transaction into the ledger",
    responses={
        400: {"description": "Property, type or category missing or invalid"},
        404: {"description": "Pending transaction not found"},
    },
)
async def approve_pending(
    pending_id: UUID,
    request: PendingApproveRequest | None = None,
    service: PendingTransactionService = Depends(get_pending_service),
) -> TransactionResponse:
    changes = request.model_dump(exclude_unset=True) if request is not None else {}
    reviewed_by = changes.pop("reviewed_by", None)
    transaction = await service.approve_pending(pending_id, changes, reviewed_by)
    return TransactionResponse.model_validate(transaction)
