from __future__ import annotations

from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def waterfall_chart(steps: List[Dict[str, Any]], title: str = "P&L Waterfall") -> Optional[Dict[str, Any]]:
    if not steps:
        return None
    df = pd.DataFrame(steps)[["label", "type", "value", "start", "end"]]
    bars = (
        alt.Chart(df, title=title)
        .mark_bar()
        .encode(
            x=alt.X("label:N", sort=None, title=None),
            y=alt.Y("start:Q", title="Amount", axis=alt.Axis(format="~s")),
            y2="end",
            color=alt.Color(
                "type:N",
                title="Step",
                scale=alt.Scale(
                    domain=["total", "subtotal", "decrease", "increase"],
                    range=["#2563eb", "#22d3ee", "#dc3545", "#16a34a"],
                ),
            ),
            tooltip=[
                alt.Tooltip("label:N", title="Step"),
                alt.Tooltip("value:Q", title="Value", format=",.0f"),
            ],
        )
    )
    return to_vega_spec(bars)


def trend_chart(monthly: pd.DataFrame, metric: str = "revenue") -> Optional[Dict[str, Any]]:
    cols = [f"{metric}_actual", f"{metric}_comparison"]
    if monthly.empty or not set(cols).issubset(monthly.columns):
        return None
    long_df = monthly.melt(id_vars="month", value_vars=cols, var_name="series", value_name="amount")
    long_df["series"] = long_df["series"].str.replace(f"{metric}_", "", regex=False)
    line = (
        alt.Chart(long_df)
        .mark_line(point=True)
        .encode(
            x=alt.X("month:O", title="Month"),
            y=alt.Y("amount:Q", title=metric.replace("_", " ").title(), axis=alt.Axis(format="~s")),
            color=alt.Color("series:N", title="Series"),
            tooltip=["month", "series", alt.Tooltip("amount:Q", format=",.0f")],
        )
    )
    return to_vega_spec(line)
