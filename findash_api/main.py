from __future__ import annotations

import logging
import math

import numpy as np
import pandas as pd
from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from findash.data import load_dashboard_data, prepare_context
from findash.filters import COMPARISONS, PERIOD_PRESETS, SCENARIOS, DashboardFilters, normalize_filters
from findash.metrics_cash import compute_cash
from findash.metrics_drilldown import DRILLDOWN_METRICS, compute_drilldown, normalize_metric
from findash.metrics_pnl import compute_overview
from findash.metrics_waterfall import compute_waterfall
from findash_api.schemas import DashboardFiltersModel, MetaBusinessUnitsResponse, MetaScenariosResponse


app = FastAPI(title="Financial Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _filters_from_model(model: DashboardFiltersModel, data_ctx: dict) -> DashboardFilters:
    raw = model.model_dump()
    return normalize_filters(
        raw,
        available_bus=list(data_ctx.get("business_units", {}) or {}),
        as_of=data_ctx.get("as_of"),
    )


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
                pd.Period: str,
            },
        )
    )


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


@app.get("/meta/business-units")
def meta_business_units():
    try:
        data_ctx = load_dashboard_data()
        payload = MetaBusinessUnitsResponse(business_units=data_ctx.get("business_units", {}) or {})
        return _json(payload.model_dump())
    except Exception as exc:
        logger.exception("meta_business_units failed")
        return _error(exc)


@app.get("/meta/scenarios")
def meta_scenarios():
    payload = MetaScenariosResponse(scenarios=SCENARIOS, comparisons=COMPARISONS, periods=PERIOD_PRESETS)
    return _json(payload.model_dump())


@app.post("/overview")
def overview(filters: DashboardFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters, data_ctx)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_overview(f, ctx))
    except Exception as exc:
        logger.exception("overview failed")
        return _error(exc)


@app.post("/waterfall")
def waterfall(filters: DashboardFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters, data_ctx)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_waterfall(f, ctx))
    except Exception as exc:
        logger.exception("waterfall failed")
        return _error(exc)


@app.post("/drilldown/{metric}")
def drilldown(metric: str, filters: DashboardFiltersModel):
    if normalize_metric(metric) is None:
        return JSONResponse(
            status_code=404,
            content={"error": f"Unknown metric {metric!r}", "metrics": sorted(DRILLDOWN_METRICS)},
        )
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters, data_ctx)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_drilldown(f, ctx, metric))
    except Exception as exc:
        logger.exception("drilldown failed for %s", metric)
        return _error(exc)


@app.post("/cash")
def cash(filters: DashboardFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters, data_ctx)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_cash(f, ctx))
    except Exception as exc:
        logger.exception("cash failed")
        return _error(exc)
