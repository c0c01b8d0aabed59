from __future__ import annotations

from dataclasses import asdict
from functools import partial
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from findash.data import concat_frames, empty_records_frame
from findash.filters import THRESHOLDS, DashboardFilters, format_bu_name
from findash.metrics_concentration import calculate_concentration
from findash.variance import COST_LIKE, REVENUE_LIKE, VarianceResult, kpi_variance, margin_band, safe_pct

DRILLDOWN_METRICS = {
    "revenue": "Revenue",
    "cogs": "COGS",
    "gross_margin": "Gross Margin",
    "opex": "OpEx",
    "ebitda": "EBITDA",
    "da": "D&A",
    "interest": "Interest",
    "ebt": "EBT",
    "taxes": "Taxes",
    "net_income": "Net Income",
}
METRIC_ALIASES = {
    "revenues": "revenue",
    "gm": "gross_margin",
    "gross-margin": "gross_margin",
    "net-income": "net_income",
    "ni": "net_income",
    "d&a": "da",
}
EMPTY_METRICS = ("da", "interest", "taxes")
NO_DATA_MESSAGE = "No data for this period"


def format_service_name(name: str) -> str:
    return (name or "").replace("_", " ")


def normalize_metric(metric: str) -> Optional[str]:
    key = (metric or "").strip().lower()
    key = METRIC_ALIASES.get(key, key)
    return key if key in DRILLDOWN_METRICS else None


def _variance(label: str, actual: float, comparison: float) -> VarianceResult:
    return kpi_variance(label, actual, comparison, warning_pct=THRESHOLDS.variance_warning_pct)


def breakdown_rows(
    label: str,
    actual: pd.DataFrame,
    comparison: pd.DataFrame,
    labels: Optional[Dict[str, str]] = None,
    keys: Sequence[str] = ("bu", "sub_category"),
) -> List[Dict[str, Any]]:
    """Actual vs comparison sums per key, one row per key present on either side.

    Amounts and ``delta`` stay signed. ``delta_percent`` and ``band`` come from
    ``kpi_variance(label, ...)``, so cost rows are compared on magnitudes and
    agree with the KPI card of the same metric.
    """
    keys = list(keys)
    labels = labels or {}
    parts = []
    for side, df in (("actual", actual), ("comparison", comparison)):
        if df is None or df.empty:
            continue
        part = df[keys + ["amount"]].copy()
        part["_side"] = side
        parts.append(part)
    if not parts:
        return []

    table = pd.concat(parts, ignore_index=True).pivot_table(
        index=keys, columns="_side", values="amount", aggfunc="sum", fill_value=0.0
    )
    for side in ("actual", "comparison"):
        if side not in table.columns:
            table[side] = 0.0
    table = table.reset_index().sort_values(keys)

    rows: List[Dict[str, Any]] = []
    for rec in table.to_dict(orient="records"):
        act = float(rec["actual"])
        cmp_ = float(rec["comparison"])
        bu = str(rec.get("bu", ""))
        row: Dict[str, Any] = {
            "bu": bu,
            "bu_display": labels.get(bu) or format_bu_name(bu),
        }
        if "sub_category" in rec:
            row["sub_category"] = str(rec["sub_category"])
            row["sub_category_display"] = format_service_name(str(rec["sub_category"]))
        if "allocation_type" in rec:
            row["allocation_type"] = str(rec["allocation_type"]) or None
        variance = _variance(label, act, cmp_)
        row.update(
            {
                "actual": act,
                "comparison": cmp_,
                "delta": act - cmp_,
                "delta_percent": variance.delta_percent,
                "band": variance.band,
            }
        )
        rows.append(row)
    return rows


def breakdown_totals(label: str, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    total_actual = float(sum(r["actual"] for r in rows))
    total_comparison = float(sum(r["comparison"] for r in rows))
    variance = _variance(label, total_actual, total_comparison)
    return {
        "total_actual": total_actual,
        "total_comparison": total_comparison,
        "total_delta": total_actual - total_comparison,
        "total_delta_percent": variance.delta_percent,
        "total_band": variance.band,
    }


def bu_statistics(label: str, rows: List[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    """Min / max / average of BU-level sums across the business units in ``rows``."""
    if not rows:
        return {}
    by_bu = pd.DataFrame(rows).groupby("bu")[["actual", "comparison", "delta"]].sum()
    by_bu["delta_percent"] = [
        _variance(label, a, c).delta_percent for a, c in zip(by_bu["actual"], by_bu["comparison"])
    ]
    return {
        col: {
            "min": float(by_bu[col].min()),
            "max": float(by_bu[col].max()),
            "avg": float(by_bu[col].mean()),
        }
        for col in ("actual", "comparison", "delta", "delta_percent")
    }


def _ratio_block(
    total_actual: float,
    total_comparison: float,
    revenue_actual: float,
    revenue_comparison: float,
    polarity: str,
) -> Dict[str, Any]:
    if polarity == COST_LIKE:
        total_actual, total_comparison = abs(total_actual), abs(total_comparison)
    actual_pct = safe_pct(total_actual, revenue_actual)
    comparison_pct = safe_pct(total_comparison, revenue_comparison)
    delta_pp = actual_pct - comparison_pct
    return {
        "actual_percent": actual_pct,
        "comparison_percent": comparison_pct,
        "delta_pp": delta_pp,
        "band": margin_band(delta_pp, polarity, THRESHOLDS.margin_warning_pp),
    }


def _frames(ctx: Dict[str, Any], table: str):
    return (
        ctx.get(f"actual_{table}", empty_records_frame()),
        ctx.get(f"comparison_{table}", empty_records_frame()),
    )


def _revenue_totals(ctx: Dict[str, Any]) -> Dict[str, float]:
    actual, comparison = _frames(ctx, "revenues")
    return {
        "actual": float(actual["amount"].sum()) if not actual.empty else 0.0,
        "comparison": float(comparison["amount"].sum()) if not comparison.empty else 0.0,
    }


def revenue_breakdown(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    actual, comparison = _frames(ctx, "revenues")
    rows = breakdown_rows("Revenue", actual, comparison, ctx.get("business_units"))
    totals = breakdown_totals("Revenue", rows)
    # one stream per BU and service row
    streams = [(r["sub_category"], r["actual"]) for r in rows]
    concentration = calculate_concentration(streams, totals["total_actual"])
    return {"rows": rows, **totals, "concentration": concentration.to_dict()}


def cogs_breakdown(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    actual, comparison = _frames(ctx, "cogs")
    rows = breakdown_rows("COGS", actual, comparison, ctx.get("business_units"))
    totals = breakdown_totals("COGS", rows)
    revenue = _revenue_totals(ctx)
    ratios = _ratio_block(
        totals["total_actual"],
        totals["total_comparison"],
        revenue["actual"],
        revenue["comparison"],
        COST_LIKE,
    )
    return {"rows": rows, **totals, **ratios}


def gross_margin_breakdown(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    rev_actual, rev_comparison = _frames(ctx, "revenues")
    cogs_actual, cogs_comparison = _frames(ctx, "cogs")
    rows = breakdown_rows(
        "Gross Margin",
        concat_frames([rev_actual, cogs_actual]),
        concat_frames([rev_comparison, cogs_comparison]),
        ctx.get("business_units"),
    )
    totals = breakdown_totals("Gross Margin", rows)
    revenue = _revenue_totals(ctx)
    ratios = _ratio_block(
        totals["total_actual"],
        totals["total_comparison"],
        revenue["actual"],
        revenue["comparison"],
        REVENUE_LIKE,
    )
    return {"rows": rows, **totals, **ratios}


def opex_breakdown(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    actual, comparison = _frames(ctx, "opex")
    rows = breakdown_rows(
        "OpEx",
        actual,
        comparison,
        ctx.get("business_units"),
        keys=("bu", "sub_category", "allocation_type"),
    )
    totals = breakdown_totals("OpEx", rows)
    revenue = _revenue_totals(ctx)
    ratios = _ratio_block(
        totals["total_actual"],
        totals["total_comparison"],
        revenue["actual"],
        revenue["comparison"],
        COST_LIKE,
    )

    allocation: Dict[str, Dict[str, float]] = {}
    for kind in ("direct", "indirect"):
        subset = [r for r in rows if r.get("allocation_type") == kind]
        allocation[kind] = {
            "actual": float(sum(r["actual"] for r in subset)),
            "comparison": float(sum(r["comparison"] for r in subset)),
        }
    return {"rows": rows, **totals, **ratios, "allocation": allocation}


def earnings_breakdown(filters: DashboardFilters, ctx: Dict[str, Any], label: str = "EBITDA") -> Dict[str, Any]:
    """Per-BU EBITDA (and EBT / net income, which add zero D&A, interest and taxes) with margins."""
    labels = ctx.get("business_units")
    rev_actual, rev_comparison = _frames(ctx, "revenues")
    parts_actual = [rev_actual, *(_frames(ctx, t)[0] for t in ("cogs", "opex"))]
    parts_comparison = [rev_comparison, *(_frames(ctx, t)[1] for t in ("cogs", "opex"))]

    rows = breakdown_rows(label, concat_frames(parts_actual), concat_frames(parts_comparison), labels, keys=("bu",))
    revenue_rows = {
        r["bu"]: r for r in breakdown_rows("Revenue", rev_actual, rev_comparison, labels, keys=("bu",))
    }
    warning_pp = THRESHOLDS.margin_warning_pp
    for row in rows:
        rev = revenue_rows.get(row["bu"], {"actual": 0.0, "comparison": 0.0})
        margin_actual = safe_pct(row["actual"], rev["actual"])
        margin_comparison = safe_pct(row["comparison"], rev["comparison"])
        row.update(
            {
                "revenue_actual": rev["actual"],
                "revenue_comparison": rev["comparison"],
                "margin_actual": margin_actual,
                "margin_comparison": margin_comparison,
                "margin_delta_pp": margin_actual - margin_comparison,
                "margin_band": margin_band(margin_actual - margin_comparison, REVENUE_LIKE, warning_pp),
            }
        )

    totals = breakdown_totals(label, rows)
    revenue = _revenue_totals(ctx)
    ratios = _ratio_block(
        totals["total_actual"],
        totals["total_comparison"],
        revenue["actual"],
        revenue["comparison"],
        REVENUE_LIKE,
    )
    return {"rows": rows, **totals, **ratios}


def empty_breakdown(label: str) -> Dict[str, Any]:
    return {"rows": [], **breakdown_totals(label, []), "message": NO_DATA_MESSAGE}


BREAKDOWNS = {
    "revenue": revenue_breakdown,
    "cogs": cogs_breakdown,
    "gross_margin": gross_margin_breakdown,
    "opex": opex_breakdown,
    "ebitda": partial(earnings_breakdown, label="EBITDA"),
    "ebt": partial(earnings_breakdown, label="EBT"),
    "net_income": partial(earnings_breakdown, label="Net Income"),
}


def drilldown_subtitle(filters: DashboardFilters) -> str:
    period = filters.period if filters.period != "Custom" else f"{filters.start:%d %b %Y} to {filters.end:%d %b %Y}"
    return " | ".join([period, filters.bu_label, filters.comparison_label])


def compute_drilldown(filters: DashboardFilters, ctx: Dict[str, Any], metric: str) -> Dict[str, Any]:
    key = normalize_metric(metric)
    if key is None:
        raise ValueError(f"Unknown drill-down metric: {metric!r}")
    label = DRILLDOWN_METRICS[key]

    if key in EMPTY_METRICS:
        payload = empty_breakdown(label)
    else:
        payload = BREAKDOWNS[key](filters, ctx)
    if not payload["rows"]:
        payload["message"] = NO_DATA_MESSAGE

    payload.update(
        {
            "filters": asdict(filters),
            "metric": key,
            "title": f"{label} Breakdown",
            "subtitle": drilldown_subtitle(filters),
            "statistics": bu_statistics(label, payload["rows"]),
        }
    )
    return payload
