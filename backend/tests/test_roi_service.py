"""
Tests for ROI / profitability analysis.
"""

import math
from datetime import date
import pytest
from kdp_ads.schemas import MetricRecord, ProfitabilityConfig
from kdp_ads.services.roi_service import (
    aggregate_metrics, calculate_daily_trends, calculate_roi, compare_periods,
    format_currency, generate_comparison_summary, generate_roi_summary,
    percentage_change, safe_ratio,
)

KDP_CONFIG = ProfitabilityConfig(royalty_per_unit=2.80)


def _record(day=date(2024, 1, 1), campaign_id="c-1", **metrics) -> MetricRecord:
    return MetricRecord(campaign_id=campaign_id, date=day, **metrics)


def _worked_example() -> MetricRecord:
    return _record(
        impressions=32830, clicks=331, spend=259.40, sales=767.52, orders=48, units_sold=48,
    )


def test_worked_example():
    roi = calculate_roi([_worked_example()], KDP_CONFIG)

    assert roi.acos == pytest.approx(33.80, abs=0.01)
    assert roi.roas == pytest.approx(2.96, abs=0.01)
    assert roi.ctr == pytest.approx(1.01, abs=0.01)
    assert roi.cpc == pytest.approx(0.78, abs=0.01)
    assert roi.conversion_rate == pytest.approx(14.50, abs=0.01)
    assert roi.estimated_royalties == pytest.approx(134.40)
    assert roi.estimated_profit == pytest.approx(-125.00)
    assert roi.break_even_acos == pytest.approx(17.51, abs=0.01)
    assert roi.campaign_id == "all"
    assert roi.campaign_name == "All Campaigns"


def test_period_is_taken_from_the_data():
    records = [
        _record(day=date(2024, 1, 5), spend=1.0),
        _record(day=date(2024, 1, 2), spend=1.0),
    ]
    roi = calculate_roi(records, KDP_CONFIG)
    assert roi.period.start_date == date(2024, 1, 2)
    assert roi.period.end_date == date(2024, 1, 5)


def test_zero_sales_uses_break_even_fallback():
    roi = calculate_roi([_record(spend=10.0, clicks=5, impressions=100)], KDP_CONFIG)
    assert roi.acos == 0
    assert roi.roas == 0
    assert roi.break_even_acos == 30.0


def test_break_even_fallback_is_configurable():
    config = ProfitabilityConfig(royalty_per_unit=1.0, break_even_acos_fallback=25.0)
    roi = calculate_roi([_record(spend=10.0)], config)
    assert roi.break_even_acos == 25.0


def test_zero_sales_without_royalty_economics():
    roi = calculate_roi([_record(spend=10.0)], ProfitabilityConfig())
    assert roi.break_even_acos == 0
    assert roi.profit_margin == 0


def test_zero_spend_guards():
    roi = calculate_roi([_record(sales=50.0, impressions=10)], KDP_CONFIG)
    assert roi.roas == 0
    assert roi.cpc == 0
    assert roi.acos == 0
    assert roi.conversion_rate == 0


def test_no_records():
    roi = calculate_roi([], KDP_CONFIG)
    assert roi.period.is_empty
    assert roi.total_spend == 0
    assert roi.total_impressions == 0
    for value in (roi.acos, roi.roas, roi.ctr, roi.cpc, roi.conversion_rate,
                  roi.estimated_royalties, roi.estimated_profit, roi.profit_margin):
        assert value == 0
        assert not math.isnan(value)


def test_kenp_royalties_count_toward_profit():
    roi = calculate_roi(
        [_record(spend=5.0, sales=10.0, units_sold=1, kenp_royalties=3.5, kenp_pages_read=700)],
        KDP_CONFIG,
    )
    assert roi.total_kenp_royalties == pytest.approx(3.5)
    assert roi.estimated_royalties == pytest.approx(6.3)
    assert roi.estimated_profit == pytest.approx(1.3)


def test_aggregate_metrics_sums_every_field():
    totals = aggregate_metrics([
        _record(impressions=100, clicks=3, spend=1.5, sales=9.99, orders=1, units_sold=1),
        _record(campaign_id="c-2", impressions=50, clicks=2, spend=0.5, orders=0, kenp_royalties=1.0),
    ])
    assert totals.impressions == 150
    assert totals.clicks == 5
    assert totals.spend == pytest.approx(2.0)
    assert totals.sales == pytest.approx(9.99)
    assert totals.orders == 1
    assert totals.kenp_royalties == pytest.approx(1.0)


def test_safe_ratio():
    assert safe_ratio(1, 0) == 0
    assert safe_ratio(1, 4, 100) == 25


def test_percentage_change_zero_baseline():
    assert percentage_change(5, 0) == 100
    assert percentage_change(0, 0) == 0
    assert percentage_change(-5, 0) == 0
    assert percentage_change(150, 100) == pytest.approx(50)
    assert percentage_change(-50, -100) == pytest.approx(-50)


def test_compare_identical_reports_has_no_change():
    roi = calculate_roi([_worked_example()], KDP_CONFIG)
    changes = compare_periods(roi, roi).changes
    assert changes.spend_change == 0
    assert changes.sales_change == 0
    assert changes.acos_change == 0
    assert changes.profit_change == 0
    assert changes.impressions_change == 0
    assert changes.clicks_change == 0


def test_compare_against_empty_previous_period():
    current = calculate_roi([_worked_example()], KDP_CONFIG)
    previous = calculate_roi([], KDP_CONFIG)
    changes = compare_periods(current, previous).changes
    assert changes.spend_change == 100
    assert changes.impressions_change == 100
    # Profit went negative from zero: not counted as growth
    assert changes.profit_change == 0


def test_daily_trends_sum_campaigns_per_day():
    trends = calculate_daily_trends([
        _record(day=date(2024, 1, 2), campaign_id="c-1", spend=2.0, sales=10.0),
        _record(day=date(2024, 1, 1), campaign_id="c-1", spend=1.0, sales=0.0),
        _record(day=date(2024, 1, 2), campaign_id="c-2", spend=3.0, sales=10.0),
    ])
    assert [t.date for t in trends] == [date(2024, 1, 1), date(2024, 1, 2)]
    assert trends[0].acos == 0
    assert trends[1].spend == pytest.approx(5.0)
    assert trends[1].acos == pytest.approx(25.0)


def test_format_currency():
    assert format_currency(1234.5) == "$1,234.50"
    assert format_currency(-125) == "-$125.00"


def test_roi_summary_flags_unprofitable_campaign():
    summary = generate_roi_summary(calculate_roi([_worked_example()], KDP_CONFIG))
    assert "Campaign: All Campaigns" in summary
    assert "Period: 2024-01-01 to 2024-01-01" in summary
    assert "Estimated Profit: -$125.00" in summary
    assert "is above break-even" in summary


def test_roi_summary_without_data():
    summary = generate_roi_summary(calculate_roi([], KDP_CONFIG))
    assert "Period: no data" in summary
    assert "CTR is low" in summary


def test_comparison_summary_reports_efficiency():
    previous = calculate_roi([_record(spend=100.0, sales=200.0)], KDP_CONFIG)
    current = calculate_roi([_record(spend=110.0, sales=300.0)], KDP_CONFIG)
    summary = generate_comparison_summary(compare_periods(current, previous))
    assert "Efficiency improving" in summary
    assert "ACOS improved" in summary
    assert "Sales: $300.00 (+50.0%)" in summary


def test_kenp_page_rate_does_not_change_royalties():
    record = _record(spend=5.0, sales=10.0, units_sold=1, kenp_royalties=3.5, kenp_pages_read=700)
    with_rate = ProfitabilityConfig(royalty_per_unit=2.80, kenp_rate_per_page=0.0045)
    assert calculate_roi([record], with_rate).estimated_royalties == pytest.approx(
        calculate_roi([record], KDP_CONFIG).estimated_royalties
    )

    no_reported_kenp = _record(spend=5.0, sales=10.0, units_sold=1, kenp_pages_read=700)
    assert calculate_roi([no_reported_kenp], with_rate).estimated_royalties == pytest.approx(2.80)
