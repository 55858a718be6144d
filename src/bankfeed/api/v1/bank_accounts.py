"""Connected bank account endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from bankfeed.api.deps import (
    get_bank_account_service,
    get_monzo_client,
    get_sync_service,
    get_token_vault,
)
from bankfeed.models.bank_account import BankAccount
from bankfeed.providers.monzo import MonzoClient
from bankfeed.schemas.bank_account import (
    BankAccountListResult,
    BankAccountResponse,
    BankAccountUpdateRequest,
    SyncLogResponse,
    SyncResultResponse,
)
from bankfeed.services.bank_account import BankAccountService
from bankfeed.services.sync import SyncService
from bankfeed.services.token_vault import TokenVault

router = APIRouter(prefix="/bank/accounts", tags=["bank-accounts"])


def _to_response(account: BankAccount) -> BankAccountResponse:
    return BankAccountResponse.model_validate(account).model_copy(
        update={"webhook_registered": account.webhook_id is not None}
    )


@router.get(
    "",
    response_model=BankAccountListResult,
    summary="List connected bank accounts",
)
async def list_accounts(
    service: BankAccountService = Depends(get_bank_account_service),
) -> BankAccountListResult:
    accounts = await service.list_accounts()
    return BankAccountListResult(
        accounts=[_to_response(account) for account in accounts],
        total=len(accounts),
    )


@router.get(
    "/{bank_account_id}",
    response_model=BankAccountResponse,
    summary="Get a bank account",
    responses={404: {"description": "Bank account not found"}},
)
async def get_account(
    bank_account_id: UUID,
    service: BankAccountService = Depends(get_bank_account_service),
) -> BankAccountResponse:
    return _to_response(await service.get_account(bank_account_id))


@router.patch(
    "/{bank_account_id}",
    response_model=BankAccountResponse,
    summary="Rename an account or toggle syncing",
    responses={404: {"description": "Bank account not found"}},
)
async def update_account(
    bank_account_id: UUID,
    request: BankAccountUpdateRequest,
    service: BankAccountService = Depends(get_bank_account_service),
) -> BankAccountResponse:
    account = await service.update_account(
        bank_account_id, request.model_dump(exclude_unset=True, exclude_none=True)
    )
    return _to_response(account)


@router.delete(
    "/{bank_account_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Disconnect a bank account",
    responses={
        404: {"description": "Bank account not found"},
        409: {"description": "Imported transactions still reference the account"},
    },
)
async def delete_account(
    bank_account_id: UUID,
    service: BankAccountService = Depends(get_bank_account_service),
    client: MonzoClient = Depends(get_monzo_client),
    vault: TokenVault = Depends(get_token_vault),
) -> Response:
    await service.delete_account(bank_account_id, client, vault)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{bank_account_id}/sync",
    response_model=SyncResultResponse,
    summary="Fetch new transactions now",
    description="""
    Fetches transactions created since the last complete sync, within a
    short time budget. A sync that runs out of time returns status
    "partial"; run it again to continue.
    """,
    responses={
        400: {"description": "Syncing is disabled for this account"},
        401: {"description": "Access expired; reconnect the account"},
        404: {"description": "Bank account not found"},
        409: {"description": "A sync is already running"},
        502: {"description": "Provider request failed"},
    },
)
async def sync_account(
    bank_account_id: UUID,
    sync_service: SyncService = Depends(get_sync_service),
    service: BankAccountService = Depends(get_bank_account_service),
) -> SyncResultResponse:
    result = await sync_service.sync_new_transactions(bank_account_id)
    account = await service.get_account(bank_account_id)
    return SyncResultResponse(
        success=result.status != "failed",
        sync_log_id=result.sync_log_id,
        status=result.status,
        transactions_fetched=result.transactions_fetched,
        transactions_processed=result.transactions_processed,
        duplicates_skipped=result.duplicates_skipped,
        transactions_matched=result.transactions_matched,
        transactions_pending=result.transactions_pending,
        message=result.error_message,
        last_sync_at=account.last_sync_at,
        last_sync_status=account.last_sync_status,
    )


@router.get(
    "/{bank_account_id}/sync-logs",
    response_model=list[SyncLogResponse],
    summary="Recent sync attempts",
    responses={404: {"description": "Bank account not found"}},
)
async def list_sync_logs(
    bank_account_id: UUID,
    limit: int = Query(20, ge=1, le=100),
    service: BankAccountService = Depends(get_bank_account_service),
) -> list[SyncLogResponse]:
    logs = await service.get_sync_history(bank_account_id, limit)
    return [SyncLogResponse.model_validate(log) for log in logs]
