from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from findash.charts import trend_chart
from findash.data import cash_balance, empty_records_frame, filter_records, sum_amount
from findash.filters import PREVIOUS_YEAR, THRESHOLDS, DashboardFilters, month_end, shift_years
from findash.variance import (
    COST_LIKE,
    REVENUE_LIKE,
    kpi_variance,
    margin_band,
    safe_pct,
)


KPI_METRICS = [
    ("Revenue", "revenue"),
    ("Gross Margin", "gross_margin"),
    ("OpEx", "opex"),
    ("EBITDA", "ebitda"),
]


@dataclass(frozen=True)
class PeriodTotals:
    revenue: float = 0.0
    cogs: float = 0.0
    opex: float = 0.0
    da: float = 0.0
    interest: float = 0.0
    taxes: float = 0.0

    @property
    def gross_margin(self) -> float:
        return self.revenue + self.cogs

    @property
    def ebitda(self) -> float:
        return self.gross_margin + self.opex

    @property
    def ebt(self) -> float:
        return self.ebitda + self.da + self.interest

    @property
    def net_income(self) -> float:
        return self.ebt + self.taxes

    def to_dict(self) -> Dict[str, float]:
        out = asdict(self)
        out.update(
            {
                "gross_margin": self.gross_margin,
                "ebitda": self.ebitda,
                "ebt": self.ebt,
                "net_income": self.net_income,
                "gross_margin_pct": safe_pct(self.gross_margin, self.revenue),
                "ebitda_pct": safe_pct(self.ebitda, self.revenue),
                "opex_pct": safe_pct(abs(self.opex), self.revenue),
            }
        )
        return out


def totals_from_frames(revenues: pd.DataFrame, cogs: pd.DataFrame, opex: pd.DataFrame) -> PeriodTotals:
    return PeriodTotals(revenue=sum_amount(revenues), cogs=sum_amount(cogs), opex=sum_amount(opex))


def compute_period_totals(
    revenues: pd.DataFrame,
    cogs: pd.DataFrame,
    opex: pd.DataFrame,
    start: date,
    end: date,
    scenario: str,
    bu: Optional[str] = None,
) -> PeriodTotals:
    return totals_from_frames(
        filter_records(revenues, start, end, scenario, bu),
        filter_records(cogs, start, end, scenario, bu),
        filter_records(opex, start, end, scenario, bu),
    )


def compute_comparison_totals(ctx: Dict[str, Any]) -> Dict[str, PeriodTotals]:
    """Actual, comparison and previous-year totals from a prepared context."""

    def _totals(prefix: str) -> PeriodTotals:
        return totals_from_frames(
            ctx.get(f"{prefix}_revenues", empty_records_frame()),
            ctx.get(f"{prefix}_cogs", empty_records_frame()),
            ctx.get(f"{prefix}_opex", empty_records_frame()),
        )

    return {
        "actual": _totals("actual"),
        "comparison": _totals("comparison"),
        "previous_year": _totals("previous_year"),
    }


def _monthly_sums(df: pd.DataFrame, months: pd.PeriodIndex, name: str, shift_months: int = 0) -> pd.Series:
    if df.empty:
        return pd.Series(0.0, index=months, name=name)
    sums = df.groupby(df["date"].dt.to_period("M"))["amount"].sum()
    if shift_months:
        sums.index = sums.index + shift_months
    return sums.reindex(months, fill_value=0.0).rename(name)


def compute_monthly_pl(filters: DashboardFilters, ctx: Dict[str, Any]) -> pd.DataFrame:
    """Whole-month P&L rows spanning the filter period: actual, comparison and PY side by side."""
    start = filters.start.replace(day=1)
    end = month_end(filters.end)
    months = pd.period_range(pd.Timestamp(start), pd.Timestamp(end), freq="M")

    series: List[pd.Series] = []
    for table, metric in (("revenues", "revenue"), ("cogs", "cogs"), ("opex", "opex")):
        df: pd.DataFrame = ctx.get(table, empty_records_frame())
        actual = filter_records(df, start, end, filters.scenario, filters.bu)
        previous = filter_records(df, shift_years(start, -1), shift_years(end, -1), "Actual", filters.bu)
        if filters.comparison == PREVIOUS_YEAR:
            comparison = _monthly_sums(previous, months, f"{metric}_comparison", shift_months=12)
        else:
            comparison = _monthly_sums(
                filter_records(df, start, end, filters.comparison, filters.bu), months, f"{metric}_comparison"
            )
        series.extend(
            [
                _monthly_sums(actual, months, f"{metric}_actual"),
                comparison,
                _monthly_sums(previous, months, f"{metric}_previous_year", shift_months=12),
            ]
        )

    monthly = pd.concat(series, axis=1)
    for side in ("actual", "comparison", "previous_year"):
        revenue = monthly[f"revenue_{side}"]
        monthly[f"gross_margin_{side}"] = revenue + monthly[f"cogs_{side}"]
        monthly[f"ebitda_{side}"] = monthly[f"gross_margin_{side}"] + monthly[f"opex_{side}"]
        nonzero = revenue != 0
        monthly[f"gm_pct_{side}"] = (monthly[f"gross_margin_{side}"] / revenue * 100).where(nonzero, 0.0)
        monthly[f"ebitda_pct_{side}"] = (monthly[f"ebitda_{side}"] / revenue * 100).where(nonzero, 0.0)
        monthly[f"opex_pct_{side}"] = (monthly[f"opex_{side}"].abs() / revenue * 100).where(nonzero, 0.0)

    monthly.index.name = "period"
    monthly = monthly.reset_index()
    monthly.insert(0, "month", monthly["period"].astype(str))
    monthly.insert(1, "label", monthly["period"].dt.strftime("%b '%y"))
    return monthly.drop(columns=["period"])


def _bu_sums(df: pd.DataFrame) -> pd.Series:
    if df.empty:
        return pd.Series(dtype=float)
    return df.groupby("bu")["amount"].sum()


def compute_bu_performance(filters: DashboardFilters, ctx: Dict[str, Any]) -> List[Dict[str, Any]]:
    columns = {}
    for table, metric in (("revenues", "revenue"), ("cogs", "cogs"), ("opex", "opex")):
        columns[f"{metric}_actual"] = _bu_sums(ctx.get(f"actual_{table}", empty_records_frame()))
        columns[f"{metric}_comparison"] = _bu_sums(ctx.get(f"comparison_{table}", empty_records_frame()))
    table = pd.DataFrame(columns).fillna(0.0)
    if table.empty:
        return []

    labels: Dict[str, str] = ctx.get("business_units", {}) or {}
    warning_pct = THRESHOLDS.variance_warning_pct
    warning_pp = THRESHOLDS.margin_warning_pp
    rows: List[Dict[str, Any]] = []
    for bu, r in table.sort_index().iterrows():
        actual = PeriodTotals(revenue=r["revenue_actual"], cogs=r["cogs_actual"], opex=r["opex_actual"])
        comparison = PeriodTotals(revenue=r["revenue_comparison"], cogs=r["cogs_comparison"], opex=r["opex_comparison"])
        gm_pp = safe_pct(actual.gross_margin, actual.revenue) - safe_pct(comparison.gross_margin, comparison.revenue)
        ebitda_pp = safe_pct(actual.ebitda, actual.revenue) - safe_pct(comparison.ebitda, comparison.revenue)
        rows.append(
            {
                "bu": str(bu),
                "name": labels.get(str(bu), str(bu)),
                "revenue": kpi_variance("Revenue", actual.revenue, comparison.revenue, warning_pct=warning_pct).to_dict(),
                "gross_margin": kpi_variance(
                    "Gross Margin", actual.gross_margin, comparison.gross_margin, warning_pct=warning_pct
                ).to_dict(),
                "opex": kpi_variance("OpEx", actual.opex, comparison.opex, warning_pct=warning_pct).to_dict(),
                "ebitda": kpi_variance("EBITDA", actual.ebitda, comparison.ebitda, warning_pct=warning_pct).to_dict(),
                "gm_pct_actual": safe_pct(actual.gross_margin, actual.revenue),
                "gm_pct_comparison": safe_pct(comparison.gross_margin, comparison.revenue),
                "gm_delta_pp": gm_pp,
                "gm_band": margin_band(gm_pp, REVENUE_LIKE, warning_pp),
                "ebitda_pct_actual": safe_pct(actual.ebitda, actual.revenue),
                "ebitda_pct_comparison": safe_pct(comparison.ebitda, comparison.revenue),
                "ebitda_delta_pp": ebitda_pp,
                "ebitda_band": margin_band(ebitda_pp, REVENUE_LIKE, warning_pp),
            }
        )
    return rows


def compute_kpis(filters: DashboardFilters, ctx: Dict[str, Any]) -> List[Dict[str, Any]]:
    totals = compute_comparison_totals(ctx)
    actual, comparison = totals["actual"], totals["comparison"]
    warning_pct = THRESHOLDS.variance_warning_pct

    kpis: List[Dict[str, Any]] = []
    for label, attr in KPI_METRICS:
        variance = kpi_variance(label, getattr(actual, attr), getattr(comparison, attr), warning_pct=warning_pct)
        kpis.append({"label": label, "metric": attr, "format": "currency", **variance.to_dict()})

    cash: pd.DataFrame = ctx.get("cash", pd.DataFrame())
    if filters.comparison == PREVIOUS_YEAR:
        cash_comparison = cash_balance(cash, "Actual", shift_years(filters.end, -1))
    else:
        cash_comparison = cash_balance(cash, filters.comparison, filters.end)
    variance = kpi_variance(
        "Cash Balance", cash_balance(cash, filters.scenario, filters.end), cash_comparison, warning_pct=warning_pct
    )
    kpis.append({"label": "Cash Balance", "metric": "cash_balance", "format": "currency", **variance.to_dict()})
    return kpis


def compute_overview(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    totals = compute_comparison_totals(ctx)
    monthly = compute_monthly_pl(filters, ctx)
    actual, comparison = totals["actual"], totals["comparison"]

    opex_pp = safe_pct(abs(actual.opex), actual.revenue) - safe_pct(abs(comparison.opex), comparison.revenue)
    return {
        "filters": asdict(filters),
        "period": {"start": filters.start, "end": filters.end, "label": filters.period},
        "comparison_label": filters.comparison_label,
        "bu_label": filters.bu_label,
        "totals": {name: t.to_dict() for name, t in totals.items()},
        "kpis": compute_kpis(filters, ctx),
        "opex_ratio_band": margin_band(opex_pp, COST_LIKE, THRESHOLDS.margin_warning_pp),
        "monthly": monthly.to_dict(orient="records"),
        "bu_performance": compute_bu_performance(filters, ctx),
        "charts": {"revenue_trend": trend_chart(monthly, "revenue")},
    }
