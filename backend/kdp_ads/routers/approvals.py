"""
Approvals Router — Change approval queue workflow.
All changes to Amazon Ads go through this approval pipeline before being pushed.
Proposals snapshot the current value from the stored keyword/campaign.
"""

import logging
from typing import Literal, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from kdp_ads.database import get_db
from kdp_ads.schemas import (
    BidValue, BudgetValue, ChangeOutcome, ChangeProposal, ChangeHistoryEntry,
    ChangeStatus, ChangeTarget, ChangeType, NegativeKeywordValue, NoValue,
    OutcomeStatus, ProposalValidationError, StateSnapshot, StateValue, TargetType,
)
from kdp_ads.services.change_service import ChangeProposalRegistry
from kdp_ads.services.store import CampaignStore
from kdp_ads.utils import parse_uuid, safe_error_detail

logger = logging.getLogger(__name__)
router = APIRouter()


# ── Request Models ────────────────────────────────────────────────────

class BidChangeRequest(BaseModel):
    keyword_id: str
    bid: float = Field(ge=0)
    reason: Optional[str] = None


class StateChangeRequest(BaseModel):
    keyword_id: str
    state: Literal["enabled", "paused"]
    reason: Optional[str] = None


class BudgetChangeRequest(BaseModel):
    campaign_id: str
    daily_budget: float = Field(ge=0)
    reason: Optional[str] = None


class NegativeKeywordRequest(BaseModel):
    campaign_id: str
    keyword_text: str = Field(min_length=1)
    match_type: Literal["negativeExact", "negativePhrase"] = "negativeExact"
    reason: Optional[str] = None


# ── Helpers ───────────────────────────────────────────────────────────

def get_registry(request: Request) -> ChangeProposalRegistry:
    return request.app.state.registry


def _serialize_change(c: ChangeProposal) -> dict:
    return {
        "id": str(c.id),
        "change_type": c.change_type.value,
        "target_type": c.target.target_type.value,
        "target_id": c.target.target_id,
        "target_name": c.target.target_name,
        "current_value": c.current_value.model_dump(),
        "proposed_value": c.proposed_value.model_dump(),
        "reason": c.reason,
        "status": c.status.value,
        "created_at": c.created_at.isoformat() if c.created_at else None,
        "reviewed_at": c.reviewed_at.isoformat() if c.reviewed_at else None,
        "executed_at": c.executed_at.isoformat() if c.executed_at else None,
        "error_message": c.error_message,
    }


def _serialize_history(h: ChangeHistoryEntry) -> dict:
    return {
        "id": str(h.id),
        "pending_change_id": str(h.pending_change_id) if h.pending_change_id else None,
        "target_type": h.target_type,
        "target_id": h.target_id,
        "change_type": h.change_type,
        "old_value": h.old_value,
        "new_value": h.new_value,
        "executed_at": h.executed_at.isoformat(),
        "success": h.success,
        "api_response": h.api_response,
    }


def _outcome_response(outcome: ChangeOutcome) -> dict:
    """Translate a registry outcome to a response body; not-found and conflict raise."""
    if outcome.status == OutcomeStatus.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Change not found")
    if outcome.status == OutcomeStatus.CONFLICT:
        raise HTTPException(
            status_code=409,
            detail={
                "message": f"Change is already {outcome.current_status.value}",
                "current_status": outcome.current_status.value,
            },
        )
    body = {
        "status": outcome.status.value,
        "change": _serialize_change(outcome.proposal) if outcome.proposal else None,
    }
    if outcome.status == OutcomeStatus.FAILED:
        body["error"] = outcome.error
    elif outcome.status == OutcomeStatus.APPROVED_UNEXECUTED:
        body["message"] = "Approved. No Amazon Ads connection configured; apply this change manually."
    return body


async def _propose(
    registry: ChangeProposalRegistry,
    change_type: ChangeType,
    target: ChangeTarget,
    current_value,
    proposed_value,
    reason: Optional[str],
) -> dict:
    try:
        change_id = await registry.propose(change_type, target, current_value, proposed_value, reason)
    except ProposalValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _serialize_change(await registry.get_proposal(change_id))


# ── Propose ───────────────────────────────────────────────────────────

@router.post("/bid")
async def propose_bid_change(
    payload: BidChangeRequest,
    db: AsyncSession = Depends(get_db),
    registry: ChangeProposalRegistry = Depends(get_registry),
):
    """Propose a new bid for a keyword."""
    keyword = await CampaignStore(db).get_keyword(payload.keyword_id)
    if not keyword:
        raise HTTPException(status_code=404, detail="Keyword not found")
    target = ChangeTarget(target_type=TargetType.KEYWORD, target_id=keyword.id, target_name=keyword.keyword_text)
    return await _propose(
        registry, ChangeType.BID_ADJUSTMENT, target,
        BidValue(bid=keyword.bid), BidValue(bid=payload.bid), payload.reason,
    )


@router.post("/state")
async def propose_state_change(
    payload: StateChangeRequest,
    db: AsyncSession = Depends(get_db),
    registry: ChangeProposalRegistry = Depends(get_registry),
):
    """Propose enabling or pausing a keyword."""
    keyword = await CampaignStore(db).get_keyword(payload.keyword_id)
    if not keyword:
        raise HTTPException(status_code=404, detail="Keyword not found")
    target = ChangeTarget(target_type=TargetType.KEYWORD, target_id=keyword.id, target_name=keyword.keyword_text)
    return await _propose(
        registry, ChangeType.STATE_CHANGE, target,
        StateSnapshot(state=keyword.state), StateValue(state=payload.state), payload.reason,
    )


@router.post("/budget")
async def propose_budget_change(
    payload: BudgetChangeRequest,
    db: AsyncSession = Depends(get_db),
    registry: ChangeProposalRegistry = Depends(get_registry),
):
    """Propose a new daily budget for a campaign."""
    campaign = await CampaignStore(db).get_campaign(payload.campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    target = ChangeTarget(target_type=TargetType.CAMPAIGN, target_id=campaign.id, target_name=campaign.name)
    return await _propose(
        registry, ChangeType.BUDGET_CHANGE, target,
        BudgetValue(daily_budget=campaign.daily_budget),
        BudgetValue(daily_budget=payload.daily_budget),
        payload.reason,
    )


@router.post("/negative-keyword")
async def propose_negative_keyword(
    payload: NegativeKeywordRequest,
    db: AsyncSession = Depends(get_db),
    registry: ChangeProposalRegistry = Depends(get_registry),
):
    """Propose adding a negative keyword to a campaign."""
    campaign = await CampaignStore(db).get_campaign(payload.campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    target = ChangeTarget(target_type=TargetType.CAMPAIGN, target_id=campaign.id, target_name=campaign.name)
    return await _propose(
        registry, ChangeType.ADD_NEGATIVE_KEYWORD, target,
        NoValue(),
        NegativeKeywordValue(keyword_text=payload.keyword_text, match_type=payload.match_type),
        payload.reason,
    )


# ── Queue ─────────────────────────────────────────────────────────────

@router.get("")
async def list_pending_changes(
    status: Optional[ChangeStatus] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    registry: ChangeProposalRegistry = Depends(get_registry),
):
    """List changes newest-first. Default shows all statuses."""
    changes = await registry.list_proposals(status=status, limit=limit)
    return [_serialize_change(c) for c in changes]


@router.get("/history")
async def list_change_history(
    change_id: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    registry: ChangeProposalRegistry = Depends(get_registry),
):
    """Execution history newest-first, optionally for a single change."""
    proposal_id = parse_uuid(change_id, "change_id") if change_id else None
    entries = await registry.list_history(proposal_id=proposal_id, limit=limit)
    return [_serialize_history(h) for h in entries]


@router.get("/{change_id}")
async def get_change(
    change_id: str,
    registry: ChangeProposalRegistry = Depends(get_registry),
):
    change = await registry.get_proposal(parse_uuid(change_id, "change_id"))
    if not change:
        raise HTTPException(status_code=404, detail="Change not found")
    return _serialize_change(change)


# ── Review ────────────────────────────────────────────────────────────

@router.post("/{change_id}/approve")
async def approve_change(
    change_id: str,
    registry: ChangeProposalRegistry = Depends(get_registry),
):
    """
    Approve a pending change. With an Amazon Ads connection the change is
    pushed immediately; a failed push is recorded and returned with status 200.
    """
    proposal_id = parse_uuid(change_id, "change_id")
    try:
        outcome = await registry.approve(proposal_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=safe_error_detail(e, "Approval failed unexpectedly."))
    return _outcome_response(outcome)


@router.post("/{change_id}/reject")
async def reject_change(
    change_id: str,
    registry: ChangeProposalRegistry = Depends(get_registry),
):
    outcome = await registry.reject(parse_uuid(change_id, "change_id"))
    return _outcome_response(outcome)
