import pytest


def _create_division(client, name, target):
    resp = client.post("/api/divisions", json={"name": name, "targetPercent": target})
    assert resp.status_code == 200
    return resp.get_json()


def _create_holding(client, division_id, name, current, invested=0, subdivision_id=None):
    body = {"name": name, "current": current, "invested": invested}
    if subdivision_id:
        body["subdivisionId"] = subdivision_id
    resp = client.post(f"/api/divisions/{division_id}/holdings", json=body)
    assert resp.status_code == 200
    return resp.get_json()


def test_health(client):
    resp = client.get("/api/health")
    assert resp.get_json() == {"ok": True, "dataFile": "portfolio.json"}


def test_portfolio_starts_empty(client):
    data = client.get("/api/portfolio").get_json()
    assert data["divisions"] == []
    assert "updatedAt" in data


def test_analytics_goal_seek_and_budget(client):
    a = _create_division(client, "A", 50)
    b = _create_division(client, "B", 50)
    _create_holding(client, a["id"], "Fund", 1000, 800)

    analytics = client.get("/api/portfolio/analytics?budget=500").get_json()

    assert analytics["totals"] == pytest.approx({"invested": 800.0, "current": 1000.0, "profit": 200.0})
    assert analytics["requiredTotalAddition"] == pytest.approx(1000.0)
    by_id = {d["id"]: d for d in analytics["divisions"]}
    assert by_id[a["id"]]["requiredAddition"] == pytest.approx(0.0)
    assert by_id[b["id"]]["requiredAddition"] == pytest.approx(1000.0)
    assert analytics["budget"] == 500.0
    assert analytics["budgetAdditions"][a["id"]] == pytest.approx(0.0)
    assert analytics["budgetAdditions"][b["id"]] == pytest.approx(500.0)


def test_analytics_without_budget(client):
    analytics = client.get("/api/portfolio/analytics").get_json()
    assert analytics["budget"] is None
    assert analytics["budgetAdditions"] == {}
    assert analytics["requiredTotalAddition"] == 0


def test_subdivision_goal_seek_endpoint(client):
    division = _create_division(client, "Equity", 100)
    s1 = client.post(f"/api/divisions/{division['id']}/subdivisions",
                     json={"name": "Large", "targetPercent": 60}).get_json()
    s2 = client.post(f"/api/divisions/{division['id']}/subdivisions",
                     json={"name": "Small", "targetPercent": 40}).get_json()
    _create_holding(client, division["id"], "L", 300, subdivision_id=s1["id"])
    _create_holding(client, division["id"], "S", 100, subdivision_id=s2["id"])

    result = client.get("/api/subdivision-goal-seek").get_json()

    seek = result[division["id"]]
    assert seek["requiredAddition"] == pytest.approx(100.0)
    assert seek["additionsBySubdivision"][s1["id"]] == pytest.approx(0.0)
    assert seek["additionsBySubdivision"][s2["id"]] == pytest.approx(100.0)


def test_monthly_plan_endpoint(client):
    a = _create_division(client, "A", 50)
    _create_division(client, "B", 50)
    _create_holding(client, a["id"], "Fund", 1000)

    plan = client.get("/api/portfolio/plan?monthly=400").get_json()

    months = plan["timeline"]["months"]
    assert [m["total"] for m in months] == pytest.approx([400.0, 400.0, 200.0])
    assert plan["timeline"]["totalRequired"] == pytest.approx(1000.0)
    assert plan["split"]["totalRecommended"] == pytest.approx(400.0)


def test_crud_round_trip(client):
    division = _create_division(client, "Debt", 30)
    holding = _create_holding(client, division["id"], "Bond", 50, 40)

    resp = client.patch(f"/api/holdings/{holding['id']}", json={"current": 75})
    assert resp.get_json()["current"] == 75.0

    resp = client.patch(f"/api/divisions/{division['id']}", json={"targetPercent": 35})
    assert resp.get_json()["targetPercent"] == 35.0

    resp = client.delete(f"/api/holdings/{holding['id']}")
    assert resp.get_json()["id"] == holding["id"]

    resp = client.delete(f"/api/divisions/{division['id']}")
    assert resp.status_code == 200
    assert client.get("/api/portfolio").get_json()["divisions"] == []


def test_replace_portfolio(client):
    body = {"divisions": [{"id": "d1", "name": "Gold", "targetPercent": 10, "holdings": [], "subdivisions": []}]}

    saved = client.post("/api/portfolio", json=body).get_json()

    assert saved["divisions"][0]["id"] == "d1"
    assert client.get("/api/portfolio").get_json()["divisions"][0]["name"] == "Gold"


def test_errors_are_json(client):
    resp = client.post("/api/divisions", json={})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "name required"}

    resp = client.patch("/api/divisions/missing", json={"name": "x"})
    assert resp.status_code == 404
    assert "division not found" in resp.get_json()["error"]

    resp = client.delete("/api/subdivisions/missing")
    assert resp.status_code == 404

    resp = client.patch("/api/holdings/missing", json={})
    assert resp.status_code == 404


def test_corrupt_data_file_gives_500(client, store):
    store.path.parent.mkdir(parents=True, exist_ok=True)
    store.path.write_text("[broken", encoding="utf-8")

    resp = client.get("/api/portfolio/analytics")

    assert resp.status_code == 500
    assert "Failed to parse portfolio data" in resp.get_json()["error"]


def test_quotes_endpoint(client, monkeypatch):
    import app as app_module

    monkeypatch.setattr(
        app_module,
        "get_quotes",
        lambda symbols: {"quotes": {"INFY.NS": {"price": 1500.0, "source": "Yahoo Finance"}},
                         "missing": [s for s in symbols if s and s != "INFY.NS"]},
    )

    resp = client.get("/api/quotes?symbols=INFY.NS,NOPE")

    assert resp.get_json() == {
        "quotes": {"INFY.NS": {"price": 1500.0, "source": "Yahoo Finance"}},
        "missing": ["NOPE"],
    }


def test_replace_portfolio_without_ids(client):
    body = {"divisions": [
        {"name": "A", "targetPercent": 50, "holdings": [{"name": "h", "current": 1000}]},
        {"name": "B", "targetPercent": 50},
    ]}

    saved = client.post("/api/portfolio", json=body).get_json()
    ids = [d["id"] for d in saved["divisions"]]
    analytics = client.get("/api/portfolio/analytics").get_json()

    assert all(ids) and len(set(ids)) == 2
    assert {d["id"]: d["requiredAddition"] for d in analytics["divisions"]} == pytest.approx(
        {ids[0]: 0.0, ids[1]: 1000.0})
