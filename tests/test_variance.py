from __future__ import annotations

import pytest

from findash.variance import (
    BAD,
    COST_LIKE,
    GOOD,
    REVENUE_LIKE,
    WARNING,
    burn_band,
    compute_variance,
    delta_percent,
    kpi_variance,
    margin_band,
    metric_polarity,
    runway_band,
    variance_band,
)


def test_zero_comparison_yields_zero_percent():
    assert delta_percent(1000.0, 0.0) == 0.0
    result = compute_variance(1000.0, 0.0)
    assert result.delta == 1000.0
    assert result.delta_percent == 0.0
    assert result.band == GOOD


def test_revenue_above_budget_is_good():
    result = kpi_variance("Revenue", 1_000_000, 900_000)
    assert result.delta == 100_000
    assert result.delta_percent == pytest.approx(11.1111, abs=1e-3)
    assert result.band == GOOD


def test_opex_overrun_is_bad():
    result = kpi_variance("OpEx", -550_000, -500_000)
    assert result.delta_percent == pytest.approx(10.0)
    assert result.band == BAD


def test_opex_underrun_is_good():
    assert kpi_variance("OpEx", -450_000, -500_000).band == GOOD


def test_negative_comparison_uses_magnitude():
    # EBITDA improving from -100 to -50 is a +50% move
    assert delta_percent(-50.0, -100.0) == pytest.approx(50.0)


@pytest.mark.parametrize(
    "dp, expected",
    [(0.0, GOOD), (-0.01, WARNING), (-5.0, WARNING), (-5.01, BAD)],
)
def test_revenue_like_boundaries(dp, expected):
    assert variance_band(dp, REVENUE_LIKE) == expected


@pytest.mark.parametrize(
    "dp, expected",
    [(-0.01, GOOD), (0.0, WARNING), (5.0, WARNING), (5.01, BAD)],
)
def test_cost_like_boundaries(dp, expected):
    assert variance_band(dp, COST_LIKE) == expected


def test_metric_polarity():
    assert metric_polarity("OpEx") == COST_LIKE
    assert metric_polarity("Operating Expenses") == COST_LIKE
    assert metric_polarity("Monthly Burn") == COST_LIKE
    assert metric_polarity("COGS") == COST_LIKE
    assert metric_polarity("Cost of Goods Sold") == COST_LIKE
    assert metric_polarity("EBITDA") == REVENUE_LIKE
    assert metric_polarity("Gross Margin") == REVENUE_LIKE


def test_margin_band_window():
    assert margin_band(0.2, REVENUE_LIKE) == GOOD
    assert margin_band(-0.5, REVENUE_LIKE) == WARNING
    assert margin_band(-0.6, REVENUE_LIKE) == BAD
    assert margin_band(-1.0, COST_LIKE) == GOOD
    assert margin_band(0.4, COST_LIKE) == WARNING
    assert margin_band(3.0, COST_LIKE) == BAD


def test_burn_and_runway_bands():
    assert burn_band(5.0) == GOOD
    assert burn_band(7.5) == WARNING
    assert burn_band(25.0) == BAD
    assert runway_band(6.0) == GOOD
    assert runway_band(3.0) == WARNING
    assert runway_band(2.9) == BAD
    assert runway_band(None) == GOOD
