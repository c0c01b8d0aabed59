from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from findash_api.main import app


@pytest.fixture
def client():
    return TestClient(app)


def test_meta_business_units(client):
    resp = client.get("/meta/business-units")
    assert resp.status_code == 200
    assert resp.json() == {"business_units": {"BU1_Equestrian": "Equestrian", "BU2_Events": "Events"}}


def test_meta_scenarios(client):
    body = client.get("/meta/scenarios").json()
    assert body["scenarios"][0] == "Actual"
    assert "PY" in body["comparisons"]
    assert "YTD" in body["periods"]


def test_overview(client):
    resp = client.post("/overview", json={})
    assert resp.status_code == 200
    body = resp.json()
    revenue = next(k for k in body["kpis"] if k["label"] == "Revenue")
    assert revenue["actual"] == 1_000_000
    assert revenue["band"] == "good"
    assert body["filters"]["start"] == "2025-11-01"


def test_waterfall_with_bu(client):
    body = client.post("/waterfall", json={"bu": "Equestrian"}).json()
    assert body["bu_label"] == "Equestrian"
    assert body["steps"][0]["value"] == 700_000
    assert body["steps"][-1]["end"] == body["net_income"] == 70_000


def test_drilldown(client):
    body = client.post("/drilldown/opex", json={"comparison": "previous-year"}).json()
    assert body["metric"] == "opex"
    assert body["total_comparison"] == -470_000
    assert body["subtitle"].endswith("vs Previous Year")


def test_unknown_drilldown_metric(client):
    resp = client.post("/drilldown/headcount", json={})
    assert resp.status_code == 404
    assert "revenue" in resp.json()["metrics"]


def test_cash_runway_none_serializes(client):
    body = client.post("/cash", json={"period": "June"}).json()
    assert body["runway"]["months"] is None
    assert body["runway"]["band"] == "good"


def test_invalid_body(client):
    resp = client.post("/overview", json={"start": "not-a-date", "end": "2025-11-20"})
    assert resp.status_code == 422


def test_body_cannot_override_variance_thresholds(client):
    body = client.post("/overview", json={"thresholds": {"variance_warning_pct": 20}}).json()
    opex = next(k for k in body["kpis"] if k["label"] == "OpEx")
    assert opex["delta_percent"] == pytest.approx(10.0)
    assert opex["band"] == "bad"


def test_body_cannot_override_concentration_settings(client):
    body = client.post("/drilldown/revenue", json={"top_n": 10, "thresholds": {"hhi_high": 5000}}).json()
    assert body["concentration"]["level"] == "HIGH"
    assert len(body["concentration"]["top_streams"]) == 3
    assert "thresholds" not in body["filters"]


def test_drilldown_total_band_matches_kpi_card(client):
    overview = client.post("/overview", json={}).json()
    opex_kpi = next(k for k in overview["kpis"] if k["label"] == "OpEx")
    drilldown = client.post("/drilldown/opex", json={}).json()
    assert drilldown["total_delta_percent"] == pytest.approx(opex_kpi["delta_percent"])
    assert drilldown["total_band"] == opex_kpi["band"] == "bad"
