from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple


SCENARIOS = ["Actual", "Budget_Base", "Budget_Worst", "Budget_Best"]
PREVIOUS_YEAR = "PY"
COMPARISONS = ["Budget_Base", "Budget_Worst", "Budget_Best", PREVIOUS_YEAR]
ALL_COMPANY = "All Company"

COMPARISON_ALIASES = {
    "base": "Budget_Base",
    "budget": "Budget_Base",
    "best": "Budget_Best",
    "worst": "Budget_Worst",
    "previous-year": PREVIOUS_YEAR,
    "previous_year": PREVIOUS_YEAR,
    "py": PREVIOUS_YEAR,
}

COMPARISON_LABELS = {
    "Budget_Base": "vs Base Budget",
    "Budget_Worst": "vs Worst Case",
    "Budget_Best": "vs Best Case",
    PREVIOUS_YEAR: "vs Previous Year",
}

BUSINESS_UNITS = {
    "BU1_Equestrian": "Equestrian",
    "BU2_Events": "Events",
}

CURRENT_DATE = date(2025, 11, 20)
MONTH_NAMES = list(calendar.month_name)[1:]
PERIOD_PRESETS = MONTH_NAMES + ["MTD", "QTD", "YTD"]


@dataclass(frozen=True)
class Thresholds:
    variance_warning_pct: float = 5.0
    hhi_moderate: float = 1500.0
    hhi_high: float = 2500.0
    margin_warning_pp: float = 0.5
    burn_good_pct: float = 5.0
    burn_warning_pct: float = 10.0
    runway_good_months: float = 6.0
    runway_warning_months: float = 3.0
    aggressive_burn_factor: float = 1.2
    starting_cash_balance: float = 2_800_000.0


THRESHOLDS = Thresholds()
TOP_STREAMS = 3


@dataclass(frozen=True)
class DashboardFilters:
    period: str = "MTD"
    start: date = date(2025, 11, 1)
    end: date = CURRENT_DATE
    scenario: str = "Actual"
    comparison: str = "Budget_Base"
    bu: Optional[str] = None

    @property
    def is_previous_year(self) -> bool:
        return self.comparison == PREVIOUS_YEAR

    @property
    def comparison_label(self) -> str:
        return COMPARISON_LABELS.get(self.comparison, "vs Budget")

    @property
    def bu_label(self) -> str:
        return format_bu_name(self.bu) if self.bu else ALL_COMPANY


def format_bu_name(bu: str) -> str:
    """Strip the ordering prefix from a BU code: "BU1_Equestrian" -> "Equestrian"."""
    return re.sub(r"^BU\d+_", "", bu or "")


def shift_years(day: date, years: int) -> date:
    """Move a date by whole years; Feb 29 lands on Feb 28 in non-leap years."""
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        return day.replace(year=day.year + years, day=28)


def month_end(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def resolve_period(label: str, as_of: date = CURRENT_DATE) -> Tuple[date, date]:
    """Map a period preset onto an inclusive [start, end] date range."""
    label = (label or "").strip()
    if label in MONTH_NAMES:
        start = date(as_of.year, MONTH_NAMES.index(label) + 1, 1)
        return start, month_end(start)
    if label.upper() == "YTD":
        return date(as_of.year, 1, 1), as_of
    if label.upper() == "QTD":
        quarter_month = 3 * ((as_of.month - 1) // 3) + 1
        return date(as_of.year, quarter_month, 1), as_of
    return as_of.replace(day=1), as_of


def _as_date(value: object) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def normalize_comparison(value: object) -> str:
    if value is None:
        return "Budget_Base"
    s = str(value).strip()
    if s in COMPARISONS:
        return s
    return COMPARISON_ALIASES.get(s.lower(), "Budget_Base")


def normalize_bu(value: object, available_bus: Optional[Iterable[str]] = None) -> Optional[str]:
    """Resolve a BU code or display name; "All Company" and blanks mean no BU filter."""
    if value is None:
        return None
    s = str(value).strip()
    if not s or s == ALL_COMPANY:
        return None
    codes: List[str] = list(available_bus or [])
    if not codes or s in codes:
        return s
    for code in codes:
        if format_bu_name(code).lower() == s.lower():
            return code
    return s


def normalize_filters(
    raw: dict,
    *,
    available_bus: Optional[Iterable[str]] = None,
    as_of: Optional[date] = None,
) -> DashboardFilters:
    """Build filters from a raw request body. Thresholds and the top-stream count are fixed, so
    any such keys in ``raw`` are ignored."""
    as_of = as_of or CURRENT_DATE

    period = str(raw.get("period") or "MTD").strip()
    start = _as_date(raw.get("start"))
    end = _as_date(raw.get("end"))
    if start is not None and end is not None:
        period = "Custom"
    else:
        if period not in PERIOD_PRESETS:
            period = "MTD"
        start, end = resolve_period(period, as_of)
    if start > end:
        start, end = end, start

    scenario = str(raw.get("scenario") or "Actual").strip()
    if scenario not in SCENARIOS:
        scenario = "Actual"

    return DashboardFilters(
        period=period,
        start=start,
        end=end,
        scenario=scenario,
        comparison=normalize_comparison(raw.get("comparison")),
        bu=normalize_bu(raw.get("bu"), available_bus),
    )
