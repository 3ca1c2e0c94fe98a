"""
Campaigns Router — campaign structure, keywords and daily metrics ingestion.
Writes here are local upserts of data already live on Amazon Ads; mutations
of the live account go through the approval queue instead.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from kdp_ads.database import get_db
from kdp_ads.models import Campaign, Keyword
from kdp_ads.schemas import CampaignRecord, KeywordRecord, MetricRecord
from kdp_ads.services.store import CampaignStore
from kdp_ads.utils import parse_date

logger = logging.getLogger(__name__)
router = APIRouter()


def _serialize_campaign(c: Campaign) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "campaign_type": c.campaign_type,
        "state": c.state,
        "daily_budget": c.daily_budget,
        "start_date": c.start_date,
        "end_date": c.end_date,
        "targeting_type": c.targeting_type,
        "updated_at": c.updated_at.isoformat() if c.updated_at else None,
    }


def _serialize_keyword(k: Keyword) -> dict:
    return {
        "id": k.id,
        "ad_group_id": k.ad_group_id,
        "campaign_id": k.campaign_id,
        "keyword_text": k.keyword_text,
        "match_type": k.match_type,
        "state": k.state,
        "bid": k.bid,
    }


@router.get("")
async def list_campaigns(
    state: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    campaigns = await CampaignStore(db).list_campaigns(state=state)
    return [_serialize_campaign(c) for c in campaigns]


@router.put("")
async def upsert_campaign(
    payload: CampaignRecord,
    db: AsyncSession = Depends(get_db),
):
    campaign = await CampaignStore(db).upsert_campaign(payload)
    return _serialize_campaign(campaign)


@router.put("/keywords")
async def upsert_keyword(
    payload: KeywordRecord,
    db: AsyncSession = Depends(get_db),
):
    store = CampaignStore(db)
    if not await store.get_campaign(payload.campaign_id):
        raise HTTPException(status_code=404, detail="Campaign not found")
    keyword = await store.upsert_keyword(payload)
    return _serialize_keyword(keyword)


@router.put("/metrics")
async def upsert_metrics(
    payload: list[MetricRecord],
    db: AsyncSession = Depends(get_db),
):
    """Bulk upsert daily metrics. Re-sent (campaign, date) rows replace the stored ones."""
    store = CampaignStore(db)
    unknown = []
    for campaign_id in sorted({r.campaign_id for r in payload}):
        if not await store.get_campaign(campaign_id):
            unknown.append(campaign_id)
    if unknown:
        raise HTTPException(status_code=404, detail=f"Unknown campaign(s): {', '.join(unknown)}")
    stored = await store.upsert_metrics(payload)
    return {"stored": stored}


@router.get("/{campaign_id}/keywords")
async def list_keywords(
    campaign_id: str,
    db: AsyncSession = Depends(get_db),
):
    store = CampaignStore(db)
    if not await store.get_campaign(campaign_id):
        raise HTTPException(status_code=404, detail="Campaign not found")
    keywords = await store.list_keywords(campaign_id)
    return [_serialize_keyword(k) for k in keywords]


@router.get("/{campaign_id}/metrics")
async def get_campaign_metrics(
    campaign_id: str,
    start_date: str = Query(...),
    end_date: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Raw daily metric rows for one campaign, oldest first."""
    start = parse_date(start_date, "start_date")
    end = parse_date(end_date, "end_date")
    if start > end:
        raise HTTPException(status_code=400, detail="start_date must be on or before end_date")
    store = CampaignStore(db)
    if not await store.get_campaign(campaign_id):
        raise HTTPException(status_code=404, detail="Campaign not found")
    records = await store.get_metrics(campaign_id, start, end)
    return [r.model_dump(mode="json") for r in records]
