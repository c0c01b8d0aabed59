from __future__ import annotations

from datetime import date

import pytest

from findash.data import concat_frames, filter_records, prepare_context, sum_amount
from findash.filters import DashboardFilters
from findash.metrics_pnl import (
    PeriodTotals,
    compute_bu_performance,
    compute_comparison_totals,
    compute_monthly_pl,
    compute_overview,
    compute_period_totals,
)
from findash.variance import BAD, GOOD, WARNING

MARCH = (date(2025, 3, 1), date(2025, 3, 31))


def test_filter_is_inclusive_and_scoped(small_revenues):
    rows = filter_records(small_revenues, *MARCH, "Actual")
    assert sum_amount(rows) == 1000.0
    assert sum_amount(filter_records(small_revenues, *MARCH, "Actual", "BU2_Events")) == 300.0
    assert sum_amount(filter_records(small_revenues, *MARCH, "Actual", "All Company")) == 1000.0
    assert filter_records(small_revenues, *MARCH, "Budget_Worst").empty


@pytest.mark.parametrize("scenario", ["Actual", "Budget_Base"])
def test_bu_totals_sum_to_company_totals(data_ctx, november, scenario):
    frames = (data_ctx["revenues"], data_ctx["cogs"], data_ctx["opex"])
    span = (november.start, november.end, scenario)
    company = compute_period_totals(*frames, *span)
    by_bu = [compute_period_totals(*frames, *span, bu) for bu in data_ctx["business_units"]]
    assert len(by_bu) == 2
    assert company.revenue > 0
    for attr in ("revenue", "cogs", "opex", "gross_margin", "ebitda"):
        assert sum(getattr(t, attr) for t in by_bu) == pytest.approx(getattr(company, attr))


def test_filtering_the_union_matches_category_totals(data_ctx, november):
    frames = [data_ctx["revenues"], data_ctx["cogs"], data_ctx["opex"]]
    span = (november.start, november.end, "Actual")
    union = sum_amount(filter_records(concat_frames(frames), *span))
    totals = compute_period_totals(*frames, *span)
    assert union == pytest.approx(totals.revenue + totals.cogs + totals.opex)
    assert union == pytest.approx(20_000)


def test_period_totals_derive_margins(small_revenues, small_opex):
    totals = compute_period_totals(small_revenues, small_revenues.iloc[0:0], small_opex, *MARCH, "Actual")
    assert totals.revenue == 1000.0
    assert totals.cogs == 0.0
    assert totals.opex == -200.0
    assert totals.gross_margin == 1000.0
    assert totals.ebitda == 800.0
    assert totals.net_income == 800.0


def test_period_totals_to_dict():
    d = PeriodTotals(revenue=200.0, cogs=-50.0, opex=-100.0).to_dict()
    assert d["gross_margin"] == 150.0
    assert d["ebitda"] == 50.0
    assert d["gross_margin_pct"] == pytest.approx(75.0)
    assert d["opex_pct"] == pytest.approx(50.0)
    assert PeriodTotals().to_dict()["ebitda_pct"] == 0.0


def test_comparison_totals(november_ctx):
    totals = compute_comparison_totals(november_ctx)
    assert totals["actual"].revenue == 1_000_000
    assert totals["comparison"].revenue == 900_000
    assert totals["previous_year"].revenue == 800_000
    assert totals["actual"].gross_margin == 570_000
    assert totals["comparison"].gross_margin == 540_000
    assert totals["actual"].ebitda == 20_000
    assert totals["comparison"].ebitda == 40_000


def test_previous_year_comparison(data_ctx):
    f = DashboardFilters(comparison="PY")
    totals = compute_comparison_totals(prepare_context(f, data_ctx))
    assert totals["comparison"].revenue == 800_000
    assert totals["comparison"].opex == -470_000


def test_overview_kpis(november, november_ctx):
    payload = compute_overview(november, november_ctx)
    kpis = {k["label"]: k for k in payload["kpis"]}

    assert kpis["Revenue"]["delta_percent"] == pytest.approx(11.1111, abs=1e-3)
    assert kpis["Revenue"]["band"] == GOOD
    assert kpis["OpEx"]["actual"] == 550_000
    assert kpis["OpEx"]["delta_percent"] == pytest.approx(10.0)
    assert kpis["OpEx"]["band"] == BAD
    assert kpis["EBITDA"]["delta_percent"] == pytest.approx(-50.0)
    assert kpis["EBITDA"]["band"] == BAD
    assert kpis["Cash Balance"]["actual"] == 2_550_000
    assert kpis["Cash Balance"]["comparison"] == 2_600_000
    assert kpis["Cash Balance"]["band"] == WARNING
    assert payload["comparison_label"] == "vs Base Budget"
    assert payload["charts"]["revenue_trend"] is not None


def test_monthly_pl_ytd(data_ctx):
    f = DashboardFilters(period="YTD", start=date(2025, 1, 1))
    monthly = compute_monthly_pl(f, prepare_context(f, data_ctx))
    assert list(monthly["month"])[0] == "2025-01"
    assert len(monthly) == 11
    nov = monthly.set_index("month").loc["2025-11"]
    assert nov["revenue_actual"] == 1_000_000
    assert nov["revenue_comparison"] == 900_000
    assert nov["revenue_previous_year"] == 800_000
    assert nov["gm_pct_actual"] == pytest.approx(57.0)
    assert nov["opex_pct_comparison"] == pytest.approx(500_000 / 900_000 * 100)
    jan = monthly.set_index("month").loc["2025-01"]
    assert jan["revenue_actual"] == 0.0
    assert jan["gm_pct_actual"] == 0.0


def test_monthly_pl_previous_year_aligns_months(data_ctx):
    f = DashboardFilters(period="QTD", start=date(2025, 10, 1), comparison="PY")
    monthly = compute_monthly_pl(f, prepare_context(f, data_ctx)).set_index("month")
    assert monthly.loc["2025-10", "revenue_comparison"] == 780_000
    assert monthly.loc["2025-11", "revenue_comparison"] == 800_000


def test_bu_performance(november, november_ctx):
    rows = {r["name"]: r for r in compute_bu_performance(november, november_ctx)}
    assert set(rows) == {"Equestrian", "Events"}
    assert rows["Equestrian"]["revenue"]["actual"] == 700_000
    assert rows["Equestrian"]["revenue"]["comparison"] == 660_000
    assert rows["Events"]["ebitda"]["actual"] == -50_000
    assert rows["Equestrian"]["gm_pct_actual"] == pytest.approx(60.0)
    assert rows["Equestrian"]["gm_delta_pp"] == pytest.approx(0.0)


def test_bu_filter_narrows_totals(data_ctx):
    f = DashboardFilters(bu="BU1_Equestrian")
    totals = compute_comparison_totals(prepare_context(f, data_ctx))
    assert totals["actual"].revenue == 700_000
    assert totals["actual"].cogs == -280_000
    assert totals["actual"].opex == -350_000
