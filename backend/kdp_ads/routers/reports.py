"""
Reports Router — ROI, period comparison and daily trends from stored metrics.
campaign_id="all" (the default) aggregates every campaign.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from kdp_ads.config import Settings, get_settings
from kdp_ads.database import get_db
from kdp_ads.schemas import ROIReport
from kdp_ads.services.roi_service import (
    ALL_CAMPAIGNS_ID, ALL_CAMPAIGNS_NAME, calculate_daily_trends, calculate_roi,
    compare_periods, generate_comparison_summary, generate_roi_summary,
)
from kdp_ads.services.store import CampaignStore
from kdp_ads.utils import parse_date

logger = logging.getLogger(__name__)
router = APIRouter()


async def _campaign_name(store: CampaignStore, campaign_id: str) -> str:
    if campaign_id == ALL_CAMPAIGNS_ID:
        return ALL_CAMPAIGNS_NAME
    campaign = await store.get_campaign(campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign.name


def _parse_range(start_date: str, end_date: str, prefix: str = "") -> tuple:
    start = parse_date(start_date, f"{prefix}start_date")
    end = parse_date(end_date, f"{prefix}end_date")
    if start > end:
        raise HTTPException(status_code=400, detail=f"{prefix}start_date must be on or before {prefix}end_date")
    return start, end


async def _roi_for_range(
    store: CampaignStore, settings: Settings, campaign_id: str, campaign_name: str, start, end,
) -> ROIReport:
    records = await store.get_metrics(campaign_id, start, end)
    return calculate_roi(
        records,
        settings.profitability_config,
        campaign_id=campaign_id,
        campaign_name=campaign_name,
    )


@router.get("/roi")
async def roi_report(
    start_date: str = Query(..., description="YYYY-MM-DD"),
    end_date: str = Query(..., description="YYYY-MM-DD"),
    campaign_id: str = Query(ALL_CAMPAIGNS_ID),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """ROI and profitability for one campaign (or all) over a date range."""
    start, end = _parse_range(start_date, end_date)
    store = CampaignStore(db)
    name = await _campaign_name(store, campaign_id)
    report = await _roi_for_range(store, settings, campaign_id, name, start, end)
    return {
        "report": report.model_dump(mode="json"),
        "summary": generate_roi_summary(report),
    }


@router.get("/compare")
async def compare_report(
    start_date: str = Query(..., description="Current period start, YYYY-MM-DD"),
    end_date: str = Query(..., description="Current period end, YYYY-MM-DD"),
    previous_start_date: str = Query(...),
    previous_end_date: str = Query(...),
    campaign_id: str = Query(ALL_CAMPAIGNS_ID),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Compare two periods; changes are percentages relative to the previous period."""
    start, end = _parse_range(start_date, end_date)
    prev_start, prev_end = _parse_range(previous_start_date, previous_end_date, "previous_")
    store = CampaignStore(db)
    name = await _campaign_name(store, campaign_id)

    current = await _roi_for_range(store, settings, campaign_id, name, start, end)
    previous = await _roi_for_range(store, settings, campaign_id, name, prev_start, prev_end)
    comparison = compare_periods(current, previous)
    return {
        "comparison": comparison.model_dump(mode="json"),
        "summary": generate_comparison_summary(comparison),
    }


@router.get("/daily")
async def daily_trends(
    start_date: str = Query(...),
    end_date: str = Query(...),
    campaign_id: str = Query(ALL_CAMPAIGNS_ID),
    db: AsyncSession = Depends(get_db),
):
    start, end = _parse_range(start_date, end_date)
    store = CampaignStore(db)
    await _campaign_name(store, campaign_id)
    records = await store.get_metrics(campaign_id, start, end)
    return [t.model_dump(mode="json") for t in calculate_daily_trends(records)]


@router.get("/data-range")
async def data_range(db: AsyncSession = Depends(get_db)):
    """First and last dates with stored metrics (null when nothing is ingested)."""
    bounds = await CampaignStore(db).get_date_range()
    if not bounds:
        return {"start_date": None, "end_date": None}
    return {"start_date": bounds[0].isoformat(), "end_date": bounds[1].isoformat()}
