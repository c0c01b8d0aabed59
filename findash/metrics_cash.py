"""Cash position, burn and runway.

Cash rows are company-wide (one per month start and scenario), so the BU filter
only narrows receivables and payables. Burn is the average monthly decrease in
cash over the period; runway divides the current balance by a burn rate.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from findash.charts import waterfall_chart
from findash.data import (
    cash_balance,
    concat_frames,
    empty_cash_frame,
    empty_records_frame,
    is_all_company,
    month_start,
)
from findash.filters import PREVIOUS_YEAR, THRESHOLDS, DashboardFilters, Thresholds, shift_years
from findash.metrics_waterfall import DECREASE, INCREASE, TOTAL, WaterfallStep, build_waterfall
from findash.variance import COST_LIKE, burn_band, compute_variance, kpi_variance, runway_band


def monthly_net_cash(cash: pd.DataFrame, scenario: str, start: date, end: date) -> pd.DataFrame:
    if cash.empty:
        return pd.DataFrame(columns=["month", "open", "close", "net"])
    mask = (
        (cash["scenario"] == scenario)
        & (cash["date"] >= pd.Timestamp(month_start(start)))
        & (cash["date"] <= pd.Timestamp(end))
    )
    rows = cash[mask].sort_values("date")
    return pd.DataFrame(
        {
            "month": rows["date"].dt.strftime("%Y-%m"),
            "open": rows["open"],
            "close": rows["close"],
            "net": rows["close"] - rows["open"],
        }
    ).reset_index(drop=True)


def average_burn(cash: pd.DataFrame, scenario: str, start: date, end: date) -> float:
    """Average monthly cash decrease; 0 when cash grew or no rows match."""
    net = monthly_net_cash(cash, scenario, start, end)
    if net.empty:
        return 0.0
    return max(0.0, -float(net["net"].mean()))


def runway_months(balance: float, burn: float) -> Optional[float]:
    if burn <= 0:
        return None
    return balance / burn


def monthly_cash_balances(filters: DashboardFilters, cash: pd.DataFrame, months: int = 12) -> pd.DataFrame:
    """Closing balances for the trailing ``months`` months ending at the filter end."""
    last = pd.Period(pd.Timestamp(filters.end), freq="M")
    periods = pd.period_range(end=last, periods=months, freq="M")
    actual_cash = cash[cash["scenario"] == filters.scenario]

    def _closes(rows: pd.DataFrame, shift: int = 0) -> pd.Series:
        if rows.empty:
            return pd.Series(dtype=float)
        closes = rows.groupby(rows["date"].dt.to_period("M"))["close"].last()
        if shift:
            closes.index = closes.index + shift
        return closes

    if filters.comparison == PREVIOUS_YEAR:
        comparison = _closes(cash[cash["scenario"] == "Actual"], shift=12)
    else:
        comparison = _closes(cash[cash["scenario"] == filters.comparison])

    out = pd.DataFrame(
        {
            "actual": _closes(actual_cash).reindex(periods).fillna(0.0),
            "comparison": comparison.reindex(periods).fillna(0.0),
        }
    )
    out.index.name = "period"
    out = out.reset_index()
    out.insert(0, "month", out["period"].astype(str))
    out.insert(1, "label", out["period"].dt.strftime("%b '%y"))
    return out.drop(columns=["period"])


# ---------------- Working capital ----------------
def outstanding_rows(df: pd.DataFrame, scenario: str, as_of: date, bu: Optional[str] = None) -> pd.DataFrame:
    """Rows booked on or before ``as_of`` whose cash settles after it."""
    if df.empty:
        return df.copy()
    ts = pd.Timestamp(as_of)
    mask = (df["scenario"] == scenario) & (df["date"] <= ts) & (df["cash_date"] > ts)
    if not is_all_company(bu):
        mask &= df["bu"] == bu
    return df[mask]


def aging_summary(rows: pd.DataFrame, as_of: date) -> Dict[str, float]:
    if rows.empty:
        return {"amount": 0.0, "avg_aging_months": 0.0, "count": 0}
    weights = rows["amount"].abs()
    total = float(weights.sum())
    days = (pd.Timestamp(as_of) - rows["date"]).dt.days
    aging = float((days * weights).sum() / total / 30) if total else 0.0
    return {"amount": total, "avg_aging_months": max(0.0, aging), "count": int(len(rows))}


def receivables(ctx: Dict[str, Any], scenario: str, as_of: date, bu: Optional[str] = None) -> Dict[str, float]:
    rows = outstanding_rows(ctx.get("revenues", empty_records_frame()), scenario, as_of, bu)
    return aging_summary(rows, as_of)


def payables(ctx: Dict[str, Any], scenario: str, as_of: date, bu: Optional[str] = None) -> Dict[str, float]:
    # capex is not booked against a BU
    rows = concat_frames(
        [
            outstanding_rows(ctx.get("cogs", empty_records_frame()), scenario, as_of, bu),
            outstanding_rows(ctx.get("opex", empty_records_frame()), scenario, as_of, bu),
            outstanding_rows(ctx.get("capex", empty_records_frame()), scenario, as_of),
        ]
    )
    return aging_summary(rows, as_of)


# ---------------- Runway ----------------
def runway_scenarios(
    balance: float,
    current_burn: float,
    budget_burn: float,
    thresholds: Optional[Thresholds] = None,
) -> List[Dict[str, Any]]:
    thresholds = thresholds or THRESHOLDS
    scenarios = [
        ("Current Burn Scenario", current_burn, "At current spending rate"),
        ("Budget Burn Scenario", budget_burn, "If burn = budget"),
        (
            "Aggressive Burn Scenario",
            current_burn * thresholds.aggressive_burn_factor,
            f"If burn increases {(thresholds.aggressive_burn_factor - 1) * 100:.0f}%",
        ),
    ]
    out = []
    for label, burn, description in scenarios:
        months = runway_months(balance, burn)
        out.append(
            {
                "label": label,
                "burn": burn,
                "months": months,
                "description": description,
                "band": runway_band(months, thresholds.runway_good_months, thresholds.runway_warning_months),
            }
        )
    return out


# ---------------- Bridge ----------------
def _settled(df: pd.DataFrame, scenario: str, start: date, end: date) -> float:
    if df.empty:
        return 0.0
    settle = df["cash_date"].fillna(df["date"])
    mask = (df["scenario"] == scenario) & (settle >= pd.Timestamp(start)) & (settle <= pd.Timestamp(end))
    return float(df.loc[mask, "amount"].sum())


def opening_balance(cash: pd.DataFrame, scenario: str, start: date, fallback: float) -> float:
    if cash.empty:
        return fallback
    row = cash[(cash["scenario"] == scenario) & (cash["date"] == pd.Timestamp(month_start(start)))]
    if row.empty:
        return fallback
    return float(row["open"].iloc[0])


def cash_bridge(filters: DashboardFilters, ctx: Dict[str, Any]) -> List[WaterfallStep]:
    """Opening balance, cash settled within the period by source, closing balance."""
    opening = opening_balance(
        ctx.get("cash", empty_cash_frame()),
        filters.scenario,
        filters.start,
        THRESHOLDS.starting_cash_balance,
    )
    flows = [
        ("Collections", "revenues"),
        ("Equity", "equity"),
        ("COGS Paid", "cogs"),
        ("OpEx Paid", "opex"),
        ("CapEx", "capex"),
    ]
    steps = [WaterfallStep(label="Opening Balance", value=opening, type=TOTAL, key="opening")]
    closing = opening
    for label, table in flows:
        amount = _settled(ctx.get(table, empty_records_frame()), filters.scenario, filters.start, filters.end)
        closing += amount
        steps.append(
            WaterfallStep(label=label, value=amount, type=INCREASE if amount >= 0 else DECREASE, key=table)
        )
    steps.append(WaterfallStep(label="Closing Balance", value=closing, type=TOTAL, key="closing"))
    return build_waterfall(steps)


def compute_cash(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    cash: pd.DataFrame = ctx.get("cash", empty_cash_frame())
    t = THRESHOLDS
    as_of: date = min(filters.end, ctx.get("as_of") or filters.end)

    if filters.comparison == PREVIOUS_YEAR:
        cmp_scenario = "Actual"
        cmp_start, cmp_end = shift_years(filters.start, -1), shift_years(filters.end, -1)
    else:
        cmp_scenario = filters.comparison
        cmp_start, cmp_end = filters.start, filters.end

    balance = cash_balance(cash, filters.scenario, filters.end)
    balance_variance = kpi_variance(
        "Cash Balance",
        balance,
        cash_balance(cash, cmp_scenario, cmp_end),
        warning_pct=t.variance_warning_pct,
    )

    burn = average_burn(cash, filters.scenario, filters.start, filters.end)
    budget_burn = average_burn(cash, cmp_scenario, cmp_start, cmp_end)
    burn_variance = compute_variance(burn, budget_burn, COST_LIKE, warning_pct=t.variance_warning_pct)
    burn_payload = burn_variance.to_dict()
    burn_payload["band"] = burn_band(burn_variance.delta_percent, t.burn_good_pct, t.burn_warning_pct)

    runway = runway_months(balance, burn)
    net = monthly_net_cash(cash, filters.scenario, filters.start, filters.end)
    bridge = [s.to_dict() for s in cash_bridge(filters, ctx)]

    return {
        "filters": asdict(filters),
        "comparison_label": filters.comparison_label,
        "as_of": as_of,
        "cash_balance": balance_variance.to_dict(),
        "burn": burn_payload,
        "runway": {
            "months": runway,
            "band": runway_band(runway, t.runway_good_months, t.runway_warning_months),
        },
        "runway_scenarios": runway_scenarios(balance, burn, budget_burn, t),
        "receivables": receivables(ctx, filters.scenario, as_of, filters.bu),
        "payables": payables(ctx, filters.scenario, as_of, filters.bu),
        "monthly_net_cash": net.to_dict(orient="records"),
        "monthly_balances": monthly_cash_balances(filters, cash).to_dict(orient="records"),
        "bridge": bridge,
        "charts": {"bridge": waterfall_chart(bridge, title="Cash Flow Bridge")},
    }
