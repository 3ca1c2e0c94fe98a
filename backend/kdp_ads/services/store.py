"""
Store — keyed upserts and range reads over campaigns, keywords, daily
metrics, pending changes and change history.

Every proposal status transition is a conditional update
(`... WHERE id = :id AND status = :expected`); callers learn whether they won
the transition from the affected row count, never from a prior read.
"""

import logging
import uuid
from datetime import date, datetime
from typing import Optional
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from kdp_ads.models import (
    Campaign, Keyword, CampaignMetricsDaily, PendingChange, ChangeHistory,
)
from kdp_ads.schemas import (
    CampaignRecord, KeywordRecord, MetricRecord, ChangeProposal, ChangeHistoryEntry,
    ChangeStatus, ChangeTarget, TargetType, build_change_spec,
)
from kdp_ads.services.roi_service import ALL_CAMPAIGNS_ID
from kdp_ads.utils import utcnow

logger = logging.getLogger(__name__)


class CampaignStore:
    """Campaign structure and daily metrics."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ── Campaigns ────────────────────────────────────────────────────

    async def upsert_campaign(self, record: CampaignRecord) -> Campaign:
        campaign = await self.db.get(Campaign, record.id)
        if campaign is None:
            campaign = Campaign(id=record.id)
            self.db.add(campaign)
        campaign.name = record.name
        campaign.campaign_type = record.campaign_type
        campaign.state = record.state
        campaign.daily_budget = record.daily_budget
        campaign.start_date = record.start_date
        campaign.end_date = record.end_date
        campaign.targeting_type = record.targeting_type
        campaign.updated_at = utcnow()
        await self.db.flush()
        return campaign

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        return await self.db.get(Campaign, campaign_id)

    async def list_campaigns(self, state: Optional[str] = None) -> list[Campaign]:
        query = select(Campaign).order_by(Campaign.name)
        if state:
            query = query.where(Campaign.state == state)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ── Keywords ─────────────────────────────────────────────────────

    async def upsert_keyword(self, record: KeywordRecord) -> Keyword:
        keyword = await self.db.get(Keyword, record.id)
        if keyword is None:
            keyword = Keyword(id=record.id)
            self.db.add(keyword)
        keyword.ad_group_id = record.ad_group_id
        keyword.campaign_id = record.campaign_id
        keyword.keyword_text = record.keyword_text
        keyword.match_type = record.match_type
        keyword.state = record.state
        keyword.bid = record.bid
        keyword.updated_at = utcnow()
        await self.db.flush()
        return keyword

    async def get_keyword(self, keyword_id: str) -> Optional[Keyword]:
        return await self.db.get(Keyword, keyword_id)

    async def list_keywords(self, campaign_id: str) -> list[Keyword]:
        result = await self.db.execute(
            select(Keyword)
            .where(Keyword.campaign_id == campaign_id)
            .order_by(Keyword.keyword_text)
        )
        return list(result.scalars().all())

    # ── Daily metrics ────────────────────────────────────────────────

    async def upsert_metrics(self, records: list[MetricRecord]) -> int:
        """
        Upsert daily metric rows. If a row already exists for
        (campaign, date), replace its values (last write wins).
        """
        stored = 0
        for r in records:
            result = await self.db.execute(
                select(CampaignMetricsDaily).where(
                    CampaignMetricsDaily.campaign_id == r.campaign_id,
                    CampaignMetricsDaily.date == r.date,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = CampaignMetricsDaily(campaign_id=r.campaign_id, date=r.date)
                self.db.add(row)
            row.impressions = r.impressions
            row.clicks = r.clicks
            row.spend = r.spend
            row.sales = r.sales
            row.orders = r.orders
            row.units_sold = r.units_sold
            row.kenp_royalties = r.kenp_royalties
            row.kenp_pages_read = r.kenp_pages_read
            row.synced_at = utcnow()
            stored += 1
        await self.db.flush()
        logger.info(f"Stored {stored} daily metric rows")
        return stored

    async def get_metrics(
        self,
        campaign_id: Optional[str],
        start_date: date,
        end_date: date,
    ) -> list[MetricRecord]:
        """Daily rows within [start_date, end_date]; campaign_id None or "all" means every campaign."""
        query = (
            select(CampaignMetricsDaily)
            .where(
                CampaignMetricsDaily.date >= start_date,
                CampaignMetricsDaily.date <= end_date,
            )
            .order_by(CampaignMetricsDaily.date, CampaignMetricsDaily.campaign_id)
        )
        if campaign_id and campaign_id != ALL_CAMPAIGNS_ID:
            query = query.where(CampaignMetricsDaily.campaign_id == campaign_id)
        result = await self.db.execute(query)
        return [_metric_record(row) for row in result.scalars().all()]

    async def get_date_range(self) -> Optional[tuple[date, date]]:
        result = await self.db.execute(
            select(func.min(CampaignMetricsDaily.date), func.max(CampaignMetricsDaily.date))
        )
        min_date, max_date = result.one()
        if min_date is None or max_date is None:
            return None
        return min_date, max_date


def _metric_record(row: CampaignMetricsDaily) -> MetricRecord:
    return MetricRecord(
        campaign_id=row.campaign_id,
        date=row.date,
        impressions=row.impressions or 0,
        clicks=row.clicks or 0,
        spend=row.spend or 0.0,
        sales=row.sales or 0.0,
        orders=row.orders or 0,
        units_sold=row.units_sold or 0,
        kenp_royalties=row.kenp_royalties,
        kenp_pages_read=row.kenp_pages_read,
    )


class ChangeStore:
    """Pending changes and their append-only execution history."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert(self, change, target: ChangeTarget, reason: Optional[str]) -> ChangeProposal:
        row = PendingChange(
            change_type=change.change_type,
            target_type=target.target_type.value,
            target_id=target.target_id,
            target_name=target.target_name,
            current_value=change.current_value.model_dump(),
            proposed_value=change.proposed_value.model_dump(),
            reason=reason,
            status=ChangeStatus.PENDING.value,
            created_at=utcnow(),
        )
        self.db.add(row)
        await self.db.flush()
        return to_proposal(row)

    async def get(self, change_id: uuid.UUID) -> Optional[ChangeProposal]:
        result = await self.db.execute(
            select(PendingChange)
            .where(PendingChange.id == change_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return to_proposal(row) if row else None

    async def list_changes(self, status: Optional[ChangeStatus] = None, limit: Optional[int] = None) -> list[ChangeProposal]:
        """Newest first; every matching change unless a limit is given."""
        query = select(PendingChange).order_by(PendingChange.created_at.desc())
        if limit:
            query = query.limit(limit)
        if status:
            query = query.where(PendingChange.status == ChangeStatus(status).value)
        result = await self.db.execute(query)
        return [to_proposal(row) for row in result.scalars().all()]

    async def transition(
        self,
        change_id: uuid.UUID,
        expected: ChangeStatus,
        new: ChangeStatus,
        reviewed_at: Optional[datetime] = None,
        executed_at: Optional[datetime] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        """
        Compare-and-set the status. Returns True only if the stored status
        still equalled `expected` and this call moved it to `new`.
        """
        values = {"status": new.value}
        if reviewed_at is not None:
            values["reviewed_at"] = reviewed_at
        if executed_at is not None:
            values["executed_at"] = executed_at
        if error_message is not None:
            values["error_message"] = error_message

        result = await self.db.execute(
            update(PendingChange)
            .where(PendingChange.id == change_id, PendingChange.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def add_history(
        self,
        proposal: ChangeProposal,
        success: bool,
        api_response: Optional[dict] = None,
        executed_at: Optional[datetime] = None,
    ) -> ChangeHistoryEntry:
        row = ChangeHistory(
            pending_change_id=proposal.id,
            target_type=proposal.target.target_type.value,
            target_id=proposal.target.target_id,
            change_type=proposal.change_type.value,
            old_value=proposal.current_value.model_dump(),
            new_value=proposal.proposed_value.model_dump(),
            executed_at=executed_at or utcnow(),
            success=success,
            api_response=api_response,
        )
        self.db.add(row)
        await self.db.flush()
        return to_history_entry(row)

    async def list_history(self, change_id: Optional[uuid.UUID] = None, limit: Optional[int] = None) -> list[ChangeHistoryEntry]:
        query = select(ChangeHistory).order_by(ChangeHistory.executed_at.desc())
        if limit:
            query = query.limit(limit)
        if change_id:
            query = query.where(ChangeHistory.pending_change_id == change_id)
        result = await self.db.execute(query)
        return [to_history_entry(row) for row in result.scalars().all()]


def to_proposal(row: PendingChange) -> ChangeProposal:
    return ChangeProposal(
        id=row.id,
        change=build_change_spec(row.change_type, row.current_value, row.proposed_value),
        target=ChangeTarget(
            target_type=TargetType(row.target_type),
            target_id=row.target_id,
            target_name=row.target_name,
        ),
        reason=row.reason,
        status=ChangeStatus(row.status),
        created_at=row.created_at,
        reviewed_at=row.reviewed_at,
        executed_at=row.executed_at,
        error_message=row.error_message,
    )


def to_history_entry(row: ChangeHistory) -> ChangeHistoryEntry:
    return ChangeHistoryEntry(
        id=row.id,
        pending_change_id=row.pending_change_id,
        target_type=row.target_type,
        target_id=row.target_id,
        change_type=row.change_type,
        old_value=row.old_value,
        new_value=row.new_value,
        executed_at=row.executed_at,
        success=row.success,
        api_response=row.api_response,
    )
