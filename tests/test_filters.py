from __future__ import annotations

from datetime import date

from findash.filters import (
    THRESHOLDS,
    TOP_STREAMS,
    DashboardFilters,
    format_bu_name,
    normalize_bu,
    normalize_comparison,
    normalize_filters,
    resolve_period,
    shift_years,
)

AS_OF = date(2025, 11, 20)
BUS = ["BU1_Equestrian", "BU2_Events"]


def test_period_presets():
    assert resolve_period("MTD", AS_OF) == (date(2025, 11, 1), AS_OF)
    assert resolve_period("QTD", AS_OF) == (date(2025, 10, 1), AS_OF)
    assert resolve_period("YTD", AS_OF) == (date(2025, 1, 1), AS_OF)
    assert resolve_period("February", AS_OF) == (date(2025, 2, 1), date(2025, 2, 28))
    assert resolve_period("nonsense", AS_OF) == (date(2025, 11, 1), AS_OF)


def test_shift_years_clamps_leap_day():
    assert shift_years(date(2024, 2, 29), -1) == date(2023, 2, 28)
    assert shift_years(date(2025, 11, 20), -1) == date(2024, 11, 20)


def test_format_bu_name():
    assert format_bu_name("BU1_Equestrian") == "Equestrian"
    assert format_bu_name("Events") == "Events"


def test_normalize_comparison_aliases():
    assert normalize_comparison("previous-year") == "PY"
    assert normalize_comparison("PY") == "PY"
    assert normalize_comparison("worst") == "Budget_Worst"
    assert normalize_comparison("Budget_Best") == "Budget_Best"
    assert normalize_comparison(None) == "Budget_Base"
    assert normalize_comparison("bogus") == "Budget_Base"


def test_normalize_bu_maps_display_names():
    assert normalize_bu("Equestrian", BUS) == "BU1_Equestrian"
    assert normalize_bu("BU2_Events", BUS) == "BU2_Events"
    assert normalize_bu("All Company", BUS) is None
    assert normalize_bu("", BUS) is None
    assert normalize_bu(None, BUS) is None


def test_normalize_filters_defaults():
    f = normalize_filters({}, available_bus=BUS, as_of=AS_OF)
    assert f == DashboardFilters()
    assert f.comparison_label == "vs Base Budget"
    assert f.bu_label == "All Company"


def test_normalize_filters_custom_range_is_ordered():
    f = normalize_filters({"start": "2025-06-30", "end": "2025-06-01"}, as_of=AS_OF)
    assert f.period == "Custom"
    assert (f.start, f.end) == (date(2025, 6, 1), date(2025, 6, 30))


def test_normalize_filters_sanitizes_values():
    f = normalize_filters(
        {
            "scenario": "Forecast",
            "comparison": "py",
            "bu": "Events",
        },
        available_bus=BUS,
        as_of=AS_OF,
    )
    assert f.scenario == "Actual"
    assert f.is_previous_year
    assert f.bu == "BU2_Events"
    assert f.bu_label == "Events"


def test_normalize_filters_ignores_threshold_overrides():
    f = normalize_filters({"top_n": 50, "thresholds": {"variance_warning_pct": "20"}}, as_of=AS_OF)
    assert f == normalize_filters({}, as_of=AS_OF)
    assert not hasattr(f, "thresholds")
    assert THRESHOLDS.variance_warning_pct == 5.0
    assert THRESHOLDS.hhi_high == 2500.0
    assert TOP_STREAMS == 3
