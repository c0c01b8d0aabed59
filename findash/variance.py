"""Variance arithmetic and qualitative banding.

Revenue-like metrics (Revenue, GM, EBITDA) are better when higher; cost-like
metrics (COGS, OpEx, burn) are better when lower. Bands:

    revenue-like:  good  dp >= 0 | warning  -5 <= dp < 0 | bad  dp < -5
    cost-like:     good  dp < 0  | warning   0 <= dp <= 5 | bad  dp > 5
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

GOOD = "good"
WARNING = "warning"
BAD = "bad"

REVENUE_LIKE = "higher-is-better"
COST_LIKE = "lower-is-better"

VARIANCE_WARNING_PCT = 5.0
MARGIN_WARNING_PP = 0.5

_COST_MARKERS = ("opex", "operating expense", "cogs", "cost of", "burn")


@dataclass(frozen=True)
class VarianceResult:
    actual: float
    comparison: float
    delta: float
    delta_percent: float
    band: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def delta_percent(actual: float, comparison: float) -> float:
    """Percentage change against ``|comparison|``; a zero comparison yields 0, not inf."""
    if not comparison:
        return 0.0
    return (actual - comparison) / abs(comparison) * 100


def safe_pct(part: float, whole: float) -> float:
    if not whole:
        return 0.0
    return part / whole * 100


def metric_polarity(label: str) -> str:
    lowered = (label or "").lower()
    if any(marker in lowered for marker in _COST_MARKERS):
        return COST_LIKE
    return REVENUE_LIKE


def variance_band(dp: float, polarity: str = REVENUE_LIKE, warning_pct: float = VARIANCE_WARNING_PCT) -> str:
    if polarity == COST_LIKE:
        if dp < 0:
            return GOOD
        if dp <= warning_pct:
            return WARNING
        return BAD
    if dp >= 0:
        return GOOD
    if dp >= -warning_pct:
        return WARNING
    return BAD


def compute_variance(
    actual: float,
    comparison: float,
    polarity: str = REVENUE_LIKE,
    *,
    warning_pct: float = VARIANCE_WARNING_PCT,
) -> VarianceResult:
    actual = float(actual)
    comparison = float(comparison)
    dp = delta_percent(actual, comparison)
    return VarianceResult(
        actual=actual,
        comparison=comparison,
        delta=actual - comparison,
        delta_percent=dp,
        band=variance_band(dp, polarity, warning_pct),
    )


def kpi_variance(
    label: str,
    actual: float,
    comparison: float,
    *,
    warning_pct: float = VARIANCE_WARNING_PCT,
) -> VarianceResult:
    """Variance for a named KPI. Cost-like KPIs compare magnitudes, since costs are stored negative."""
    polarity = metric_polarity(label)
    if polarity == COST_LIKE:
        actual, comparison = abs(actual), abs(comparison)
    return compute_variance(actual, comparison, polarity, warning_pct=warning_pct)


def margin_band(delta_pp: float, polarity: str = REVENUE_LIKE, warning_pp: float = MARGIN_WARNING_PP) -> str:
    """Band for a margin or cost ratio delta in percentage points."""
    if polarity == COST_LIKE:
        if delta_pp < 0:
            return GOOD
        if delta_pp <= warning_pp:
            return WARNING
        return BAD
    if delta_pp >= 0:
        return GOOD
    if delta_pp >= -warning_pp:
        return WARNING
    return BAD


def burn_band(dp: float, good_pct: float = 5.0, warning_pct: float = 10.0) -> str:
    if dp <= good_pct:
        return GOOD
    if dp <= warning_pct:
        return WARNING
    return BAD


def runway_band(months: Optional[float], good_months: float = 6.0, warning_months: float = 3.0) -> str:
    # no burn means no runway limit
    if months is None or months >= good_months:
        return GOOD
    if months >= warning_months:
        return WARNING
    return BAD
