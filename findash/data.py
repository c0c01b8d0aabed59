from __future__ import annotations

import logging
from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from findash.filters import (
    BUSINESS_UNITS,
    CURRENT_DATE,
    PREVIOUS_YEAR,
    DashboardFilters,
    format_bu_name,
    normalize_filters,
    shift_years,
)
from findash.records import CashRecord, FinancialFixture, FinancialRecord


logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
FIXTURE_PATH = DATA_DIR / "financials.json"

RECORD_COLUMNS = [
    "date",
    "scenario",
    "bu",
    "sub_category",
    "service",
    "category",
    "allocation_type",
    "amount",
    "cash_date",
]
CASH_COLUMNS = ["date", "scenario", "open", "close"]
TEXT_COLUMNS = ["scenario", "bu", "sub_category", "service", "category", "allocation_type"]
RECORD_TABLES = ["revenues", "cogs", "opex", "capex", "equity"]


# ---------------- Frames ----------------
def empty_records_frame() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "date": pd.Series(dtype="datetime64[ns]"),
            "scenario": pd.Series(dtype=object),
            "bu": pd.Series(dtype=object),
            "sub_category": pd.Series(dtype=object),
            "service": pd.Series(dtype=object),
            "category": pd.Series(dtype=object),
            "allocation_type": pd.Series(dtype=object),
            "amount": pd.Series(dtype=float),
            "cash_date": pd.Series(dtype="datetime64[ns]"),
        }
    )


def empty_cash_frame() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "date": pd.Series(dtype="datetime64[ns]"),
            "scenario": pd.Series(dtype=object),
            "open": pd.Series(dtype=float),
            "close": pd.Series(dtype=float),
        }
    )


def records_frame(records: Sequence[FinancialRecord], *, group_by: str = "service") -> pd.DataFrame:
    """Flatten validated records into a frame keyed by ``sub_category``.

    ``sub_category`` is the ``group_by`` field (service for revenue and COGS,
    category for OpEx) falling back to the other one, then to "Other".
    """
    if not records:
        return empty_records_frame()
    df = pd.DataFrame([r.model_dump() for r in records])
    fallback = "category" if group_by == "service" else "service"
    df["sub_category"] = df[group_by].fillna(df[fallback]).fillna("Other")
    for col in TEXT_COLUMNS:
        df[col] = df[col].fillna("").astype(str)
    df["date"] = pd.to_datetime(df["date"])
    df["cash_date"] = pd.to_datetime(df["cash_date"])
    df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0.0).astype(float)
    return df[RECORD_COLUMNS]


def cash_frame(records: Sequence[CashRecord]) -> pd.DataFrame:
    if not records:
        return empty_cash_frame()
    df = pd.DataFrame([r.model_dump() for r in records])
    df["date"] = pd.to_datetime(df["date"])
    df["open"] = df["open"].astype(float)
    df["close"] = df["close"].astype(float)
    return df[CASH_COLUMNS].sort_values(["scenario", "date"]).reset_index(drop=True)


def is_all_company(bu: Optional[str]) -> bool:
    return not bu or bu == "All Company"


def filter_records(
    df: pd.DataFrame,
    start: date,
    end: date,
    scenario: str,
    bu: Optional[str] = None,
) -> pd.DataFrame:
    """Rows of ``scenario`` dated within [start, end], optionally restricted to one BU."""
    if df.empty:
        return df.copy()
    mask = (
        (df["date"] >= pd.Timestamp(start))
        & (df["date"] <= pd.Timestamp(end))
        & (df["scenario"] == scenario)
    )
    if not is_all_company(bu):
        mask &= df["bu"] == bu
    return df[mask]


def select_comparison(df: pd.DataFrame, filters: DashboardFilters) -> pd.DataFrame:
    """Comparison rows for the filters: a budget scenario, or Actual one year back."""
    if filters.comparison == PREVIOUS_YEAR:
        return select_previous_year(df, filters)
    return filter_records(df, filters.start, filters.end, filters.comparison, filters.bu)


def select_previous_year(df: pd.DataFrame, filters: DashboardFilters) -> pd.DataFrame:
    return filter_records(
        df,
        shift_years(filters.start, -1),
        shift_years(filters.end, -1),
        "Actual",
        filters.bu,
    )


def sum_amount(df: pd.DataFrame) -> float:
    if df.empty:
        return 0.0
    return float(df["amount"].sum())


# ---------------- Loaders ----------------
def load_fixture(path: Path) -> FinancialFixture:
    return FinancialFixture.model_validate_json(Path(path).read_text(encoding="utf-8"))


def file_signature(path: Path) -> Tuple[str, float]:
    return str(path), path.stat().st_mtime


def business_unit_labels(fixture: FinancialFixture) -> Dict[str, str]:
    labels = dict(fixture.metadata.business_units or BUSINESS_UNITS)
    for table in ("revenues", "cogs", "opex"):
        for record in getattr(fixture, table):
            if record.bu and record.bu not in labels:
                labels[record.bu] = format_bu_name(record.bu)
    return dict(sorted(labels.items()))


def empty_dashboard_data() -> Dict[str, object]:
    ctx: Dict[str, object] = {name: empty_records_frame() for name in RECORD_TABLES}
    ctx.update(
        {
            "files": [],
            "as_of": CURRENT_DATE,
            "currency": "SAR",
            "business_units": {},
            "cash": empty_cash_frame(),
        }
    )
    return ctx


@lru_cache(maxsize=4)
def _load_dashboard_data_cached(files_sig: Tuple[str, float]) -> Dict[str, object]:
    path = Path(files_sig[0])
    fixture = load_fixture(path)

    revenues = records_frame(fixture.revenues, group_by="service")
    cogs = records_frame(fixture.cogs, group_by="service")
    opex = records_frame(fixture.opex, group_by="category")
    capex = records_frame(fixture.capex, group_by="category")
    equity = records_frame(fixture.equity, group_by="category")
    cash = cash_frame(fixture.cash)

    logger.info(
        "Loaded %s: %d revenue, %d COGS, %d OpEx, %d cash, %d capex, %d equity rows",
        path.name,
        len(revenues),
        len(cogs),
        len(opex),
        len(cash),
        len(capex),
        len(equity),
    )

    return {
        "files": [path.name],
        "as_of": fixture.metadata.as_of or CURRENT_DATE,
        "currency": fixture.metadata.currency,
        "business_units": business_unit_labels(fixture),
        "revenues": revenues,
        "cogs": cogs,
        "opex": opex,
        "cash": cash,
        "capex": capex,
        "equity": equity,
    }


def load_dashboard_data(path: Optional[Path] = None) -> Dict[str, object]:
    path = Path(path) if path is not None else FIXTURE_PATH
    if not path.exists():
        logger.warning("Fixture %s not found; serving empty data", path)
        return empty_dashboard_data()
    return _load_dashboard_data_cached(file_signature(path))


def prepare_context(filters: dict | DashboardFilters, data_ctx: Dict[str, object]) -> Dict[str, object]:
    business_units: Dict[str, str] = data_ctx.get("business_units", {}) or {}
    as_of: date = data_ctx.get("as_of") or CURRENT_DATE
    filt = (
        filters
        if isinstance(filters, DashboardFilters)
        else normalize_filters(filters, available_bus=list(business_units), as_of=as_of)
    )

    ctx: Dict[str, object] = {
        "filters": filt,
        "as_of": as_of,
        "currency": data_ctx.get("currency", "SAR"),
        "business_units": business_units,
        "cash": data_ctx.get("cash", empty_cash_frame()),
    }
    for name in RECORD_TABLES:
        df: pd.DataFrame = data_ctx.get(name, empty_records_frame())
        ctx[name] = df
        ctx[f"actual_{name}"] = filter_records(df, filt.start, filt.end, filt.scenario, filt.bu)
        ctx[f"comparison_{name}"] = select_comparison(df, filt)
        ctx[f"previous_year_{name}"] = select_previous_year(df, filt)
    return ctx


def concat_frames(frames: Iterable[pd.DataFrame]) -> pd.DataFrame:
    parts: List[pd.DataFrame] = [f for f in frames if f is not None and not f.empty]
    if not parts:
        return empty_records_frame()
    return pd.concat(parts, ignore_index=True)


def month_start(day: date) -> date:
    return day.replace(day=1)


def cash_balance(cash: pd.DataFrame, scenario: str, day: date) -> float:
    """Closing balance of the cash row keyed on the month start of ``day``; 0 when missing."""
    if cash.empty:
        return 0.0
    row = cash[(cash["scenario"] == scenario) & (cash["date"] == pd.Timestamp(month_start(day)))]
    if row.empty:
        return 0.0
    return float(row["close"].iloc[0])
