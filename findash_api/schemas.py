from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel


class DashboardFiltersModel(BaseModel):
    period: str = "MTD"
    start: Optional[date] = None
    end: Optional[date] = None
    scenario: str = "Actual"
    comparison: str = "Budget_Base"
    bu: Optional[str] = None


class MetaBusinessUnitsResponse(BaseModel):
    business_units: Dict[str, str]


class MetaScenariosResponse(BaseModel):
    scenarios: List[str]
    comparisons: List[str]
    periods: List[str]
