"""Matching rule endpoints.

Every mutation re-evaluates the pending review queue and reports how many
pending transactions were approved as a result.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from bankfeed.api.deps import get_rule_service
from bankfeed.models.matching_rule import MatchingRule
from bankfeed.schemas.rule import (
    ReprocessingSummary,
    RuleCreateRequest,
    RuleListResult,
    RuleMutationResponse,
    RuleReorderRequest,
    RuleResponse,
    RuleTestRequest,
    RuleTestResponse,
    RuleUpdateRequest,
)
from bankfeed.services.rules import RuleChange, RuleService, SampleTransaction

router = APIRouter(prefix="/bank", tags=["rules"])


def _mutation_response(change: RuleChange) -> RuleMutationResponse:
    return RuleMutationResponse(
        rule=RuleResponse.model_validate(change.rule) if change.rule is not None else None,
        reprocessing=ReprocessingSummary.model_validate(change.reprocessing),
    )


def _rule_data(request: RuleCreateRequest | RuleUpdateRequest) -> dict:
    data = request.model_dump(exclude_unset=True, by_alias=True, mode="json")
    # Keep UUIDs typed for the ORM; conditions stay JSON-shaped.
    if "property_id" in data:
        data["property_id"] = request.property_id
    return data


@router.get(
    "/accounts/{bank_account_id}/rules",
    response_model=RuleListResult,
    summary="List rules for an account",
    description="Account rules first, then global rules, each in priority order.",
    responses={404: {"description": "Bank account not found"}},
)
async def list_rules(
    bank_account_id: UUID,
    service: RuleService = Depends(get_rule_service),
) -> RuleListResult:
    rules: list[MatchingRule] = await service.list_rules(bank_account_id)
    return RuleListResult(
        rules=[RuleResponse.model_validate(rule) for rule in rules],
        total=len(rules),
    )


@router.post(
    "/accounts/{bank_account_id}/rules",
    response_model=RuleMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account rule",
    responses={
        400: {"description": "Invalid property, type or category"},
        404: {"description": "Bank account not found"},
    },
)
async def create_rule(
    bank_account_id: UUID,
    request: RuleCreateRequest,
    service: RuleService = Depends(get_rule_service),
) -> RuleMutationResponse:
    change = await service.create_rule(bank_account_id, _rule_data(request))
    return _mutation_response(change)


@router.post(
    "/rules/reorder",
    response_model=RuleMutationResponse,
    summary="Reorder account rules",
    responses={
        400: {"description": "Rules belong to different accounts"},
        403: {"description": "Global rules cannot be reordered"},
        404: {"description": "Rule not found"},
    },
)
async def reorder_rules(
    request: RuleReorderRequest,
    service: RuleService = Depends(get_rule_service),
) -> RuleMutationResponse:
    return _mutation_response(await service.reorder_rules(request.rule_ids))


@router.post(
    "/rules/defaults",
    response_model=RuleMutationResponse,
    summary="Create the default global rules",
    description="Idempotent: defaults that already exist are left untouched.",
)
async def create_default_rules(
    service: RuleService = Depends(get_rule_service),
) -> RuleMutationResponse:
    return _mutation_response(await service.create_default_rules())


@router.get(
    "/rules/{rule_id}",
    response_model=RuleResponse,
    summary="Get a rule",
    responses={404: {"description": "Rule not found"}},
)
async def get_rule(
    rule_id: UUID,
    service: RuleService = Depends(get_rule_service),
) -> RuleResponse:
    return RuleResponse.model_validate(await service.get_rule(rule_id))


@router.put(
    "/rules/{rule_id}",
    response_model=RuleMutationResponse,
    summary="Update an account rule",
    responses={
        400: {"description": "Invalid property, type or category"},
        403: {"description": "Global rules cannot be edited"},
        404: {"description": "Rule not found"},
    },
)
async def update_rule(
    rule_id: UUID,
    request: RuleUpdateRequest,
    service: RuleService = Depends(get_rule_service),
) -> RuleMutationResponse:
    change = await service.update_rule(rule_id, _rule_data(request))
    return _mutation_response(change)


@router.delete(
    "/rules/{rule_id}",
    response_model=RuleMutationResponse,
    summary="Delete an account rule",
    responses={
        403: {"description": "Global rules cannot be deleted"},
        404: {"description": "Rule not found"},
    },
)
async def delete_rule(
    rule_id: UUID,
    service: RuleService = Depends(get_rule_service),
) -> RuleMutationResponse:
    return _mutation_response(await service.delete_rule(rule_id))


@router.post(
    "/rules/{rule_id}/test",
    response_model=RuleTestResponse,
    summary="Try a rule against a sample transaction",
    responses={404: {"description": "Rule not found"}},
)
async def test_rule(
    rule_id: UUID,
    request: RuleTestRequest,
    service: RuleService = Depends(get_rule_service),
) -> RuleTestResponse:
    match = await service.test_rule(rule_id, SampleTransaction(**request.model_dump()))
    return RuleTestResponse(
        matches=bool(match.matched_rules),
        property_id=match.property_id,
        type=match.type,
        category=match.category,
        is_fully_matched=match.is_fully_matched,
    )
