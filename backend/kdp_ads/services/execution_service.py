"""
Execution Service — pushes approved changes to Amazon Ads.

The dispatcher maps each change kind to exactly one call on an
ExecutionBackend. The MCP backend is the production implementation; when the
Ads API is not configured there is no backend and approvals are record-only.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol
from kdp_ads.config import Settings
from kdp_ads.mcp_client import AD_PRODUCT
from kdp_ads.schemas import ChangeProposal, ChangeType
from kdp_ads.services.token_service import TokenManager

logger = logging.getLogger(__name__)

NEGATIVE_MATCH_TYPES = {
    "negativeExact": "NEGATIVE_EXACT",
    "negativePhrase": "NEGATIVE_PHRASE",
}


@dataclass
class ExecutionResult:
    success: bool
    error: Optional[str] = None
    response: dict = field(default_factory=dict)


class ExecutionError(Exception):
    """A backend call failed; the message is recorded on the proposal verbatim."""


class UnknownChangeKindError(AssertionError):
    """Raised for a change kind the dispatcher has no mapping for."""


class ExecutionBackend(Protocol):
    async def update_keyword_bid(self, keyword_id: str, bid: float) -> ExecutionResult: ...

    async def update_keyword_state(self, keyword_id: str, state: str) -> ExecutionResult: ...

    async def update_campaign_budget(self, campaign_id: str, daily_budget: float) -> ExecutionResult: ...

    async def add_negative_keyword(
        self, campaign_id: str, keyword_text: str, match_type: str
    ) -> ExecutionResult: ...


class ExecutionDispatcher:
    def __init__(self, backend: ExecutionBackend):
        self.backend = backend

    async def _call_backend(self, proposal: ChangeProposal) -> ExecutionResult:
        target_id = proposal.target.target_id
        proposed = proposal.proposed_value
        kind = proposal.change_type

        if kind == ChangeType.BID_ADJUSTMENT:
            return await self.backend.update_keyword_bid(target_id, proposed.bid)
        if kind == ChangeType.STATE_CHANGE:
            return await self.backend.update_keyword_state(target_id, proposed.state)
        if kind == ChangeType.BUDGET_CHANGE:
            return await self.backend.update_campaign_budget(target_id, proposed.daily_budget)
        if kind == ChangeType.ADD_NEGATIVE_KEYWORD:
            return await self.backend.add_negative_keyword(
                target_id, proposed.keyword_text, proposed.match_type
            )
        raise UnknownChangeKindError(f"No backend mapping for change kind {kind!r}")

    async def dispatch(self, proposal: ChangeProposal) -> ExecutionResult:
        """
        Apply one approved proposal. Backend exceptions and unsuccessful
        results both surface as ExecutionError carrying the backend's message.
        """
        logger.info(
            f"Dispatching {proposal.change_type.value} for "
            f"{proposal.target.target_type.value} {proposal.target.target_id}"
        )
        try:
            result = await self._call_backend(proposal)
        except UnknownChangeKindError:
            raise
        except Exception as e:
            logger.error(f"Backend call failed for change {proposal.id}: {e}")
            raise ExecutionError(str(e)) from e

        if not result.success:
            message = result.error or "Execution failed"
            logger.warning(f"Backend rejected change {proposal.id}: {message}")
            raise ExecutionError(message)
        return result


class McpExecutionBackend:
    """ExecutionBackend over the Amazon Ads MCP server."""

    def __init__(self, tokens: TokenManager):
        self.tokens = tokens

    async def update_keyword_bid(self, keyword_id: str, bid: float) -> ExecutionResult:
        client = await self.tokens.get_mcp_client()
        response = await client.update_target_bids([{"targetId": keyword_id, "bid": bid}])
        return _to_result(response)

    async def update_keyword_state(self, keyword_id: str, state: str) -> ExecutionResult:
        client = await self.tokens.get_mcp_client()
        response = await client.update_targets([{"targetId": keyword_id, "state": state.upper()}])
        return _to_result(response)

    async def update_campaign_budget(self, campaign_id: str, daily_budget: float) -> ExecutionResult:
        client = await self.tokens.get_mcp_client()
        response = await client.update_campaign_budget(
            [{"campaignId": campaign_id, "dailyBudget": daily_budget}]
        )
        return _to_result(response)

    async def add_negative_keyword(
        self, campaign_id: str, keyword_text: str, match_type: str
    ) -> ExecutionResult:
        mcp_match_type = NEGATIVE_MATCH_TYPES.get(match_type)
        if not mcp_match_type:
            return ExecutionResult(success=False, error=f"Unsupported negative match type: {match_type}")
        client = await self.tokens.get_mcp_client()
        response = await client.create_targets([{
            "campaignId": campaign_id,
            "keyword": keyword_text,
            "matchType": mcp_match_type,
            "state": "ENABLED",
            "adProduct": AD_PRODUCT,
        }])
        return _to_result(response)


def _to_result(response: dict) -> ExecutionResult:
    """Amazon reports per-item failures in an `error` list even on HTTP success."""
    errors = response.get("error") if isinstance(response, dict) else None
    if errors:
        first = errors[0] if isinstance(errors, list) else errors
        if isinstance(first, dict):
            detail = first.get("errors") or first.get("message") or first
        else:
            detail = first
        return ExecutionResult(success=False, error=str(detail), response=response)
    return ExecutionResult(success=True, response=response)


def build_execution_backend(settings: Settings) -> Optional[McpExecutionBackend]:
    """MCP backend when Ads API credentials are configured, otherwise None (record-only)."""
    if not settings.ads_api_configured:
        logger.info("Amazon Ads API not configured; approvals will be record-only")
        return None
    return McpExecutionBackend(TokenManager.from_settings(settings))
