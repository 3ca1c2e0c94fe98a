"""
Change Service — the approval gate in front of every Amazon Ads mutation.

Proposals start as `pending`. A reviewer approves or rejects them; an
approval with an execution backend immediately pushes the change and
records the outcome as `executed` or `failed` plus a history entry.

Each step runs in its own short transaction and every status move is a
compare-and-set in ChangeStore.transition, so two reviewers approving the
same proposal at once produce one execution and one conflict.
"""

import logging
import uuid
from typing import Any, Optional, Union
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from kdp_ads.schemas import (
    ChangeHistoryEntry, ChangeOutcome, ChangeProposal, ChangeStatus, ChangeTarget,
    ChangeType, OutcomeStatus, build_change_spec,
)
from kdp_ads.services.execution_service import ExecutionDispatcher, ExecutionError
from kdp_ads.services.store import ChangeStore
from kdp_ads.utils import utcnow

logger = logging.getLogger(__name__)


class ChangeProposalRegistry:
    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        dispatcher: Optional[ExecutionDispatcher] = None,
    ):
        self.sessionmaker = sessionmaker
        self.dispatcher = dispatcher

    @property
    def executes_changes(self) -> bool:
        return self.dispatcher is not None

    async def propose(
        self,
        change_type: Union[ChangeType, str],
        target: ChangeTarget,
        current_value: Any,
        proposed_value: Any,
        reason: Optional[str] = None,
    ) -> uuid.UUID:
        """
        Record a new pending proposal and return its id.
        Raises ProposalValidationError if the payloads don't fit the change kind.
        """
        change = build_change_spec(change_type, current_value, proposed_value)
        async with self.sessionmaker.begin() as session:
            proposal = await ChangeStore(session).insert(change, target, reason)
        logger.info(
            f"Proposed {proposal.change_type.value} on {target.target_type.value} "
            f"{target.target_id} ({proposal.id})"
        )
        return proposal.id

    async def get_proposal(self, proposal_id: uuid.UUID) -> Optional[ChangeProposal]:
        async with self.sessionmaker() as session:
            return await ChangeStore(session).get(proposal_id)

    async def list_proposals(
        self, status: Optional[ChangeStatus] = None, limit: Optional[int] = None
    ) -> list[ChangeProposal]:
        async with self.sessionmaker() as session:
            return await ChangeStore(session).list_changes(status=status, limit=limit)

    async def list_history(
        self, proposal_id: Optional[uuid.UUID] = None, limit: Optional[int] = None
    ) -> list[ChangeHistoryEntry]:
        async with self.sessionmaker() as session:
            return await ChangeStore(session).list_history(change_id=proposal_id, limit=limit)

    async def _refused(self, store: ChangeStore, proposal_id: uuid.UUID, action: str) -> ChangeOutcome:
        """Outcome for a lost compare-and-set: the proposal is gone or no longer pending."""
        current = await store.get(proposal_id)
        if current is None:
            logger.warning(f"Cannot {action} change {proposal_id}: not found")
            return ChangeOutcome(status=OutcomeStatus.NOT_FOUND, proposal_id=proposal_id)
        logger.warning(f"Cannot {action} change {proposal_id}: status is {current.status.value}")
        return ChangeOutcome(
            status=OutcomeStatus.CONFLICT,
            proposal_id=proposal_id,
            proposal=current,
            current_status=current.status,
        )

    async def reject(self, proposal_id: uuid.UUID) -> ChangeOutcome:
        async with self.sessionmaker.begin() as session:
            store = ChangeStore(session)
            won = await store.transition(
                proposal_id, ChangeStatus.PENDING, ChangeStatus.REJECTED, reviewed_at=utcnow(),
            )
            if not won:
                return await self._refused(store, proposal_id, "reject")
            proposal = await store.get(proposal_id)

        logger.info(f"Rejected change {proposal_id}")
        return ChangeOutcome(status=OutcomeStatus.REJECTED, proposal_id=proposal_id, proposal=proposal)

    async def approve(self, proposal_id: uuid.UUID) -> ChangeOutcome:
        """
        Approve a pending proposal and, when a backend is configured, execute it.
        Execution failures are recorded on the proposal, never raised.
        """
        async with self.sessionmaker.begin() as session:
            store = ChangeStore(session)
            won = await store.transition(
                proposal_id, ChangeStatus.PENDING, ChangeStatus.APPROVED, reviewed_at=utcnow(),
            )
            if not won:
                return await self._refused(store, proposal_id, "approve")
            proposal = await store.get(proposal_id)

        logger.info(f"Approved change {proposal_id}")
        if self.dispatcher is None:
            return ChangeOutcome(
                status=OutcomeStatus.APPROVED_UNEXECUTED, proposal_id=proposal_id, proposal=proposal,
            )
        return await self._execute(proposal)

    async def _execute(self, proposal: ChangeProposal) -> ChangeOutcome:
        error = None
        try:
            result = await self.dispatcher.dispatch(proposal)
            api_response = result.response
        except ExecutionError as e:
            error = str(e)
            api_response = {"error": error}

        success = error is None
        executed_at = utcnow()
        async with self.sessionmaker.begin() as session:
            store = ChangeStore(session)
            moved = await store.transition(
                proposal.id,
                ChangeStatus.APPROVED,
                ChangeStatus.EXECUTED if success else ChangeStatus.FAILED,
                executed_at=executed_at,
                error_message=error,
            )
            if not moved:
                # Only this call may move an approved proposal on; anything else is a bug
                raise RuntimeError(f"Change {proposal.id} left 'approved' during execution")
            await store.add_history(proposal, success=success, api_response=api_response, executed_at=executed_at)
            updated = await store.get(proposal.id)

        if success:
            logger.info(f"Executed change {proposal.id}")
            return ChangeOutcome(status=OutcomeStatus.EXECUTED, proposal_id=proposal.id, proposal=updated)
        logger.error(f"Change {proposal.id} failed: {error}")
        return ChangeOutcome(
            status=OutcomeStatus.FAILED, proposal_id=proposal.id, proposal=updated, error=error,
        )
