from __future__ import annotations

from datetime import date

import pytest

from findash.data import FIXTURE_PATH, load_dashboard_data, prepare_context, records_frame
from findash.filters import DashboardFilters
from findash.records import FinancialRecord


def _record(day: str, scenario: str, bu: str, amount: float, **kwargs) -> FinancialRecord:
    return FinancialRecord(date=date.fromisoformat(day), scenario=scenario, bu=bu, amount=amount, **kwargs)


@pytest.fixture
def data_ctx():
    return load_dashboard_data(FIXTURE_PATH)


@pytest.fixture
def november():
    # MTD at the fixture's as-of date, Actual vs Base budget
    return DashboardFilters()


@pytest.fixture
def november_ctx(november, data_ctx):
    return prepare_context(november, data_ctx)


@pytest.fixture
def small_revenues():
    return records_frame(
        [
            _record("2025-03-05", "Actual", "BU1_Equestrian", 400.0, service="Riding_Lessons"),
            _record("2025-03-20", "Actual", "BU1_Equestrian", 300.0, service="Horse_Boarding"),
            _record("2025-03-31", "Actual", "BU2_Events", 300.0, service="Venue_Rental"),
            _record("2025-04-01", "Actual", "BU2_Events", 999.0, service="Venue_Rental"),
            _record("2025-03-10", "Budget_Base", "BU1_Equestrian", 500.0, service="Riding_Lessons"),
        ],
        group_by="service",
    )


@pytest.fixture
def small_opex():
    return records_frame(
        [
            _record("2025-03-05", "Actual", "BU1_Equestrian", -120.0, category="Personnel", allocation_type="direct"),
            _record("2025-03-06", "Actual", "BU2_Events", -80.0, category="Admin_Overhead", allocation_type="indirect"),
        ],
        group_by="category",
    )
