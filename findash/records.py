"""Typed shapes of the JSON fixture, validated once at load time."""

from __future__ import annotations

import datetime as dt
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


Scenario = Literal["Actual", "Budget_Base", "Budget_Worst", "Budget_Best"]


class FinancialRecord(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    date: dt.date
    scenario: Scenario
    bu: str = ""
    service: Optional[str] = None
    category: Optional[str] = None
    amount: float
    cash_date: Optional[dt.date] = None
    allocation_type: Optional[Literal["direct", "indirect"]] = None


class CashRecord(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    date: dt.date
    scenario: Scenario
    open: float
    close: float


class FixtureMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    generated: Optional[dt.date] = None
    as_of: Optional[dt.date] = None
    currency: str = "SAR"
    scenarios: Dict[str, str] = Field(default_factory=dict)
    business_units: Dict[str, str] = Field(default_factory=dict)
    structure_note: str = ""


class FinancialFixture(BaseModel):
    model_config = ConfigDict(extra="ignore")

    metadata: FixtureMetadata = Field(default_factory=FixtureMetadata)
    revenues: List[FinancialRecord] = Field(default_factory=list)
    cogs: List[FinancialRecord] = Field(default_factory=list)
    opex: List[FinancialRecord] = Field(default_factory=list)
    cash: List[CashRecord] = Field(default_factory=list)
    capex: List[FinancialRecord] = Field(default_factory=list)
    equity: List[FinancialRecord] = Field(default_factory=list)
