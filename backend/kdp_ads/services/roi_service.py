"""
ROI Service — Profitability analysis for KDP advertising.

Folds daily campaign metrics into period totals, derives efficiency and
royalty-based profitability ratios, and compares two periods. Everything
here is pure: no DB access, no mutation of inputs.

Every ratio goes through safe_ratio(), so a zero denominator yields 0
instead of raising or producing NaN/Infinity.
"""

import logging
from typing import Iterable, Optional
from kdp_ads.schemas import (
    DailyTrend, MetricRecord, MetricTotals, PeriodChanges, PeriodComparison,
    ProfitabilityConfig, ROIReport, ReportPeriod,
)

logger = logging.getLogger(__name__)

ALL_CAMPAIGNS_ID = "all"
ALL_CAMPAIGNS_NAME = "All Campaigns"

# Analysis thresholds for the text summary
LOW_CTR_THRESHOLD = 0.3
LOW_CONVERSION_THRESHOLD = 5.0
ACOS_JUMP_THRESHOLD = 10.0


# ── Metric computation ────────────────────────────────────────────────

def safe_ratio(numerator: float, denominator: float, scale: float = 1.0) -> float:
    """numerator / denominator * scale, or 0 when the denominator is zero."""
    if denominator == 0:
        return 0.0
    return numerator / denominator * scale


def aggregate_metrics(records: Iterable[MetricRecord]) -> MetricTotals:
    """Sum daily records into period totals. Empty input gives all zeros."""
    impressions = clicks = orders = units_sold = 0
    spend = sales = kenp_royalties = 0.0
    for r in records:
        impressions += r.impressions
        clicks += r.clicks
        spend += r.spend
        sales += r.sales
        orders += r.orders
        units_sold += r.units_sold
        kenp_royalties += r.kenp_royalties or 0.0
    return MetricTotals(
        impressions=impressions,
        clicks=clicks,
        spend=spend,
        sales=sales,
        orders=orders,
        units_sold=units_sold,
        kenp_royalties=kenp_royalties,
    )


def report_period(records: Iterable[MetricRecord]) -> ReportPeriod:
    """Min/max date present in the data, not the requested query bounds."""
    dates = [r.date for r in records]
    if not dates:
        return ReportPeriod()
    return ReportPeriod(start_date=min(dates), end_date=max(dates))


def break_even_acos(royalties: float, sales: float, config: ProfitabilityConfig) -> float:
    """
    ACOS at which ad spend equals royalties earned.
    With no sales to measure against, fall back to the configured heuristic
    when royalty economics exist, otherwise 0.
    """
    if sales > 0:
        return royalties / sales * 100
    if config.royalty_per_unit > 0:
        return config.break_even_acos_fallback
    return 0.0


def calculate_roi_from_totals(
    totals: MetricTotals,
    config: ProfitabilityConfig,
    campaign_id: str = ALL_CAMPAIGNS_ID,
    campaign_name: str = ALL_CAMPAIGNS_NAME,
    period: Optional[ReportPeriod] = None,
) -> ROIReport:
    royalties = totals.units_sold * config.royalty_per_unit + totals.kenp_royalties
    profit = royalties - totals.spend

    return ROIReport(
        campaign_id=campaign_id,
        campaign_name=campaign_name,
        period=period or ReportPeriod(),
        total_spend=totals.spend,
        total_sales=totals.sales,
        total_orders=totals.orders,
        total_units_sold=totals.units_sold,
        total_impressions=totals.impressions,
        total_clicks=totals.clicks,
        total_kenp_royalties=totals.kenp_royalties,
        acos=safe_ratio(totals.spend, totals.sales, 100),
        roas=safe_ratio(totals.sales, totals.spend),
        ctr=safe_ratio(totals.clicks, totals.impressions, 100),
        cpc=safe_ratio(totals.spend, totals.clicks),
        conversion_rate=safe_ratio(totals.orders, totals.clicks, 100),
        estimated_royalties=royalties,
        estimated_profit=profit,
        profit_margin=safe_ratio(profit, royalties, 100),
        break_even_acos=break_even_acos(royalties, totals.sales, config),
    )


def calculate_roi(
    records: list[MetricRecord],
    config: ProfitabilityConfig,
    campaign_id: str = ALL_CAMPAIGNS_ID,
    campaign_name: str = ALL_CAMPAIGNS_NAME,
) -> ROIReport:
    """Compute an ROI report for one campaign (or "all") over the given records."""
    records = list(records)
    return calculate_roi_from_totals(
        aggregate_metrics(records),
        config,
        campaign_id=campaign_id,
        campaign_name=campaign_name,
        period=report_period(records),
    )


def percentage_change(current: float, previous: float) -> float:
    """
    Relative change in percent. From a zero baseline, anything positive
    counts as +100 and anything else as 0.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def compare_periods(current: ROIReport, previous: ROIReport) -> PeriodComparison:
    return PeriodComparison(
        current_period=current,
        previous_period=previous,
        changes=PeriodChanges(
            spend_change=percentage_change(current.total_spend, previous.total_spend),
            sales_change=percentage_change(current.total_sales, previous.total_sales),
            acos_change=percentage_change(current.acos, previous.acos),
            profit_change=percentage_change(current.estimated_profit, previous.estimated_profit),
            impressions_change=percentage_change(current.total_impressions, previous.total_impressions),
            clicks_change=percentage_change(current.total_clicks, previous.total_clicks),
        ),
    )


def calculate_daily_trends(records: Iterable[MetricRecord]) -> list[DailyTrend]:
    """
    Per-day spend/sales/ACOS rows for charting, ordered by date.
    Rows from several campaigns on the same day are summed first.
    """
    by_date: dict = {}
    for r in records:
        by_date.setdefault(r.date, []).append(r)

    trends = []
    for day in sorted(by_date):
        totals = aggregate_metrics(by_date[day])
        trends.append(DailyTrend(
            date=day,
            spend=totals.spend,
            sales=totals.sales,
            acos=safe_ratio(totals.spend, totals.sales, 100),
            impressions=totals.impressions,
            clicks=totals.clicks,
        ))
    return trends


# ── Formatting ────────────────────────────────────────────────────────

def format_currency(amount: float) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_percentage(value: float, decimals: int = 2) -> str:
    return f"{value:.{decimals}f}%"


def _format_period(period: ReportPeriod) -> str:
    if period.is_empty:
        return "no data"
    return f"{period.start_date.isoformat()} to {period.end_date.isoformat()}"


def generate_roi_summary(roi: ROIReport) -> str:
    """Human-readable ROI summary with a short profitability analysis."""
    lines = [
        f"Campaign: {roi.campaign_name}",
        f"Period: {_format_period(roi.period)}",
        "",
        "Performance Metrics:",
        f"  Impressions: {roi.total_impressions:,}",
        f"  Clicks: {roi.total_clicks:,} (CTR: {format_percentage(roi.ctr)})",
        f"  Orders: {roi.total_orders} (Conversion: {format_percentage(roi.conversion_rate)})",
        "",
        "Financial Metrics:",
        f"  Spend: {format_currency(roi.total_spend)}",
        f"  Sales: {format_currency(roi.total_sales)}",
        f"  CPC: {format_currency(roi.cpc)}",
        "",
        "Efficiency Metrics:",
        f"  ACOS: {format_percentage(roi.acos)} (Break-even: {format_percentage(roi.break_even_acos)})",
        f"  ROAS: {roi.roas:.2f}x",
        "",
        "Profitability:",
        f"  Estimated Royalties: {format_currency(roi.estimated_royalties)}",
        f"  Estimated Profit: {format_currency(roi.estimated_profit)}",
        f"  Profit Margin: {format_percentage(roi.profit_margin)}",
        "",
        "Analysis:",
    ]

    if roi.acos > roi.break_even_acos:
        lines.append(
            f"  ACOS ({format_percentage(roi.acos)}) is above break-even "
            f"({format_percentage(roi.break_even_acos)})"
        )
        lines.append("  Consider optimizing keywords or reducing bids")
    else:
        lines.append(
            f"  ACOS ({format_percentage(roi.acos)}) is below break-even "
            f"({format_percentage(roi.break_even_acos)})"
        )
        lines.append("  Campaign is profitable")

    if roi.ctr < LOW_CTR_THRESHOLD:
        lines.append("  CTR is low - consider improving ad copy or targeting")
    if roi.conversion_rate < LOW_CONVERSION_THRESHOLD:
        lines.append("  Conversion rate is low - review book listing quality and relevance")

    return "\n".join(lines)


def _format_change(value: float) -> str:
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.1f}%"


def generate_comparison_summary(comparison: PeriodComparison) -> str:
    current = comparison.current_period
    previous = comparison.previous_period
    changes = comparison.changes

    lines = [
        "Period Comparison",
        f"Current: {_format_period(current.period)}",
        f"Previous: {_format_period(previous.period)}",
        "",
        "Changes:",
        f"  Spend: {format_currency(current.total_spend)} ({_format_change(changes.spend_change)})",
        f"  Sales: {format_currency(current.total_sales)} ({_format_change(changes.sales_change)})",
        f"  ACOS: {format_percentage(current.acos)} ({_format_change(changes.acos_change)})",
        f"  Profit: {format_currency(current.estimated_profit)} ({_format_change(changes.profit_change)})",
        f"  Impressions: {current.total_impressions:,} ({_format_change(changes.impressions_change)})",
        f"  Clicks: {current.total_clicks:,} ({_format_change(changes.clicks_change)})",
        "",
        "Interpretation:",
    ]

    if changes.sales_change > changes.spend_change:
        lines.append("  Efficiency improving - sales growing faster than spend")
    elif changes.sales_change < changes.spend_change:
        lines.append("  Efficiency declining - spend growing faster than sales")

    if changes.acos_change < 0:
        lines.append("  ACOS improved (lower is better)")
    elif changes.acos_change > ACOS_JUMP_THRESHOLD:
        lines.append("  ACOS increased significantly - review campaign performance")

    return "\n".join(lines)
