import pytest

from portfolio_data import JsonPortfolioStore


@pytest.fixture()
def store(tmp_path):
    return JsonPortfolioStore(tmp_path / "data" / "portfolio.json")


@pytest.fixture()
def client(store, monkeypatch):
    from app import app

    monkeypatch.setitem(app.config, "PORTFOLIO_STORE", store)
    app.config["TESTING"] = True
    with app.test_client() as test_client:
        yield test_client
