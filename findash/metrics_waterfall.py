from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence

from findash.charts import waterfall_chart
from findash.metrics_pnl import PeriodTotals, compute_comparison_totals

TOTAL = "total"
SUBTOTAL = "subtotal"
DECREASE = "decrease"
INCREASE = "increase"
STEP_TYPES = (TOTAL, SUBTOTAL, DECREASE, INCREASE)
MOVEMENTS = (DECREASE, INCREASE)


@dataclass(frozen=True)
class WaterfallStep:
    label: str
    value: float
    type: str
    key: str = ""
    comparison_value: Optional[float] = None
    start: float = 0.0
    end: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_waterfall(steps: Sequence[WaterfallStep]) -> List[WaterfallStep]:
    """Pin bar extents onto a running cumulative.

    Totals and subtotals are anchored at zero and reset the cumulative to their
    own value. A decrease or increase spans the cumulative before and after
    adding its (signed) value, so the last bar ends on the final cumulative.
    """
    cumulative = 0.0
    out: List[WaterfallStep] = []
    for step in steps:
        if step.type not in STEP_TYPES:
            raise ValueError(f"Unknown waterfall step type: {step.type!r}")
        value = float(step.value)
        if step.type in MOVEMENTS:
            previous = cumulative
            cumulative = previous + value
            start, end = min(previous, cumulative), max(previous, cumulative)
        else:
            cumulative = value
            start, end = 0.0, value
        out.append(
            WaterfallStep(
                label=step.label,
                value=value,
                type=step.type,
                key=step.key,
                comparison_value=step.comparison_value,
                start=start,
                end=end,
            )
        )
    return out


def pl_steps(actual: PeriodTotals, comparison: Optional[PeriodTotals] = None) -> List[WaterfallStep]:
    comparison = comparison or PeriodTotals()
    layout = [
        ("Revenues", "revenue", TOTAL),
        ("COGS", "cogs", DECREASE),
        ("Gross Margin", "gross_margin", SUBTOTAL),
        ("OpEx", "opex", DECREASE),
        ("EBITDA", "ebitda", SUBTOTAL),
        ("D&A", "da", DECREASE),
        ("Interest", "interest", DECREASE),
        ("EBT", "ebt", SUBTOTAL),
        ("Taxes", "taxes", DECREASE),
        ("Net Income", "net_income", TOTAL),
    ]
    return [
        WaterfallStep(
            label=label,
            value=getattr(actual, key),
            type=step_type,
            key=key,
            comparison_value=getattr(comparison, key),
        )
        for label, key, step_type in layout
    ]


def compute_waterfall(filters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    totals = compute_comparison_totals(ctx)
    steps = [s.to_dict() for s in build_waterfall(pl_steps(totals["actual"], totals["comparison"]))]
    return {
        "filters": asdict(filters),
        "comparison_label": filters.comparison_label,
        "bu_label": filters.bu_label,
        "steps": steps,
        "net_income": totals["actual"].net_income,
        "chart": waterfall_chart(steps, title=f"P&L Waterfall ({filters.bu_label})"),
    }
