# tests/test_analytics.py
from datetime import date

import pytest

from analytics.ai_usage import compute_ai_usage_insights
from analytics.performance import (
    compute_fund_metrics,
    deal_pipeline_stats,
    pipeline_analytics,
    summarize_capital,
)
from analytics.portfolio_monitoring import (
    aggregate_portfolio_metrics,
    build_kpi_trend,
    compute_period_over_period_change,
    compute_valuation_changes,
    holding_period_months,
    resolve_metric_name,
)
from analytics.scoring import compute_composite_score, get_score_band, validate_deal_scores


# --------------------------------------------------------------------------- #
# Deal scoring
# --------------------------------------------------------------------------- #

def test_composite_score_weights():
    assert compute_composite_score(8, 6, 4) == pytest.approx(6.3)
    assert compute_composite_score(None, None, None) is None
    # only the scored axes count
    assert compute_composite_score(10, None, None) == 10.0


def test_score_validation():
    assert validate_deal_scores(1, 10, 5) is None
    assert validate_deal_scores(0, 5, 5) == "Attractiveness score must be an integer between 1 and 10"
    assert validate_deal_scores(5, 7.5, 5) == "Fit score must be an integer between 1 and 10"
    assert validate_deal_scores(5, 5, True) == "Risk score must be an integer between 1 and 10"


def test_score_bands():
    assert get_score_band(8.0) == "strong"
    assert get_score_band(5.0) == "moderate"
    assert get_score_band(4.9) == "weak"


# --------------------------------------------------------------------------- #
# Portfolio monitoring
# --------------------------------------------------------------------------- #

def test_period_change():
    assert compute_period_over_period_change(120, 100) == pytest.approx(20.0)
    assert compute_period_over_period_change(-50, -100) == pytest.approx(50.0)
    assert compute_period_over_period_change(10, 0) is None
    assert compute_period_over_period_change(10, None) is None


def test_metric_name_resolution():
    assert resolve_metric_name("ebitdaMargin") == "ebitda_margin"
    assert resolve_metric_name("revenue") == "revenue"
    assert resolve_metric_name("net_debt") == "net_debt"
    assert resolve_metric_name("bogus") is None


def test_kpi_trend_skips_missing_periods():
    metrics = [
        {"period_date": "2024-06-30", "revenue": 150.0},
        {"period_date": "2024-03-31", "revenue": None},
        {"period_date": "2023-12-31", "revenue": 100.0},
    ]
    trend = build_kpi_trend(metrics, "revenue")
    assert [p["date"] for p in trend] == ["2023-12-31", "2024-06-30"]
    assert trend[0]["change"] is None
    assert trend[1]["change"] == pytest.approx(50.0)


def test_aggregate_excludes_exited_companies():
    companies = [
        {"status": "HOLDING", "equity_invested": 100, "total_value": 250, "realized_value": 0, "unrealized_value": 250},
        {"status": "EXITED", "equity_invested": 100, "total_value": 400, "realized_value": 400, "unrealized_value": 0},
    ]
    result = aggregate_portfolio_metrics(companies)
    assert result["total_companies"] == 2
    assert result["active_companies"] == 1
    assert result["portfolio_moic"] == pytest.approx(2.5)


def test_valuation_changes_and_holding_period():
    history = compute_valuation_changes([{"value": 100}, {"value": 80}])
    assert history[0]["change_percent"] is None
    assert history[1]["change_percent"] == pytest.approx(-20.0)
    assert holding_period_months(date(2023, 1, 15), date(2024, 3, 1)) == 14
    assert holding_period_months(date(2024, 3, 1), date(2024, 3, 20)) == 1


# --------------------------------------------------------------------------- #
# Fund performance
# --------------------------------------------------------------------------- #

def test_fund_metrics():
    metrics = compute_fund_metrics(
        total_paid=1000,
        total_distributed=500,
        total_invested=800,
        total_value=1600,
        unrealized_value=900,
        gross_irr=0.25,
        management_fee=0.02,
    )
    assert metrics.gross_moic == pytest.approx(2.0)
    assert metrics.net_moic == pytest.approx(1.7)
    assert metrics.dpi == pytest.approx(0.5)
    assert metrics.rvpi == pytest.approx(0.9)
    assert metrics.tvpi == pytest.approx(1.4)
    assert metrics.net_irr == pytest.approx(0.24)


def test_fund_metrics_without_capital_are_zero():
    metrics = compute_fund_metrics(
        total_paid=0, total_distributed=0, total_invested=0, total_value=0, unrealized_value=0
    )
    assert (metrics.gross_moic, metrics.dpi, metrics.tvpi, metrics.net_irr) == (0.0, 0.0, 0.0, None)


def test_summarize_capital():
    summary = summarize_capital(
        [
            {"committed_amount": 1000, "called_amount": 400, "paid_amount": 300, "distributed_amount": 50},
            {"committed_amount": 1000, "called_amount": 100, "paid_amount": None, "distributed_amount": None},
        ]
    )
    assert summary["total_commitments"] == 2000
    assert summary["unfunded_commitments"] == 1500
    assert summary["call_percentage"] == pytest.approx(0.25)


def test_pipeline_analytics_groups_by_display_stage():
    deals = [
        {"stage": "INITIAL_REVIEW", "asking_price": 100, "composite_score": 7.0},
        {"stage": "PRELIMINARY_ANALYSIS", "asking_price": 200, "composite_score": None},
        {"stage": "CLOSED_WON", "asking_price": 300, "composite_score": 9.0},
        {"stage": "PASSED", "asking_price": None, "composite_score": None},
    ]
    result = pipeline_analytics(deals)
    assert result["stages"][0] == {"stage": "Initial Review", "count": 2, "total_value": 300.0}
    assert result["total_active_deals"] == 2
    assert result["win_rate"] == "50.0%"
    assert result["total_pipeline_value"] == "$600"
    assert result["average_score"] == 8.0
    assert pipeline_analytics([]) is None


def test_deal_pipeline_stats():
    stats = deal_pipeline_stats([{"status": "ACTIVE"}, {"status": "WON"}, {"status": "PASSED"}, {"status": "LOST"}])
    assert stats["won_deals"] == 1
    assert stats["passed_deals"] == 2
    assert stats["conversion_rate"] == pytest.approx(0.25)


# --------------------------------------------------------------------------- #
# AI usage
# --------------------------------------------------------------------------- #

def test_ai_usage_insights():
    rows = [
        {"changes": {"model": {"new": "m1"}, "total_tokens": {"new": 100}, "cost_usd": {"new": 0.01}}},
        {"changes": {"model": {"new": "m1"}, "total_tokens": {"new": 300}, "cost_usd": {"new": 0.03}}},
        {"changes": {}},
    ]
    insights = compute_ai_usage_insights(rows)
    assert insights["total_interactions"] == 3
    assert insights["interactions_by_model"] == {"m1": 2, "unknown": 1}
    assert insights["token_stats"]["mean"] == pytest.approx(200)
    assert insights["total_cost_usd"] == pytest.approx(0.04)
    assert compute_ai_usage_insights([])["total_interactions"] == 0
