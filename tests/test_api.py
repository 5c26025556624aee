"""
Tests for the HTTP adapter.
"""

import json

import pytest
from fastapi.testclient import TestClient

from main import app


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def trip():
    return {
        "id": "l1",
        "name": "Weekend",
        "base_currency": "USD",
        "decimals": 2,
        "fx": {},
        "people": [
            {"id": "p1", "name": "P1"},
            {"id": "p2", "name": "P2"},
            {"id": "p3", "name": "P3"},
        ],
        "expenses": [
            {
                "id": "e1",
                "label": "Dinner",
                "amount": 30,
                "currency": "USD",
                "payer_id": "p1",
                "participants": ["p1", "p2", "p3"],
                "split_mode": "equal",
            }
        ],
        "direct_debts": [],
    }


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_balances(client, trip):
    r = client.post("/balances", json=trip)
    assert r.status_code == 200
    data = r.json()
    assert data["base_currency"] == "USD"
    assert data["net"] == {"p1": "20.00", "p2": "-10.00", "p3": "-10.00"}
    assert data["correction"] == "0"


def test_settlement(client, trip):
    r = client.post("/settlement", json=trip)
    assert r.status_code == 200
    assert r.json()["settlements"] == [
        {"from": "p2", "to": "p1", "amount": "10.00"},
        {"from": "p3", "to": "p1", "amount": "10.00"},
    ]


def test_settlement_cross_currency(client):
    ledger = {
        "id": "l2",
        "base_currency": "COP",
        "decimals": 0,
        "fx": {"USD": 4000},
        "people": [{"id": "p1"}, {"id": "p2"}],
        "direct_debts": [
            {"id": "d1", "debtor_id": "p2", "creditor_id": "p1", "amount": 10, "currency": "USD"}
        ],
    }
    data = client.post("/settlement", json=ledger).json()
    assert data["net"] == {"p1": "40000", "p2": "-40000"}
    assert data["settlements"] == [{"from": "p2", "to": "p1", "amount": "40000"}]


def test_invalid_ledger_is_rejected(client, trip):
    del trip["base_currency"]
    assert client.post("/settlement", json=trip).status_code == 422


def test_import_ledgers(client, trip):
    r = client.post("/ledgers/import", content=json.dumps([trip]))
    assert r.status_code == 200
    [summary] = r.json()
    assert summary["id"] == "l1"
    assert summary["name"] == "Weekend"
    assert len(summary["settlements"]) == 2


def test_settlement_blank_weight_counts_as_zero(client, trip):
    trip["expenses"][0].update({
        "split_mode": "weights",
        "participants": ["p2", "p3"],
        "weights": {"p2": 1, "p3": ""},
    })
    r = client.post("/settlement", json=trip)
    assert r.status_code == 200
    data = r.json()
    assert data["net"] == {"p1": "30.00", "p2": "-30.00", "p3": "0.00"}
    assert data["correction"] == "0"
    assert data["settlements"] == [{"from": "p2", "to": "p1", "amount": "30.00"}]


def test_settlement_blank_rate_is_identity(client, trip):
    trip["fx"] = {"USD": "", "EUR": "n/a"}
    trip["expenses"][0]["currency"] = "EUR"
    r = client.post("/settlement", json=trip)
    assert r.status_code == 200
    assert r.json()["net"] == {"p1": "20.00", "p2": "-10.00", "p3": "-10.00"}


def test_settlement_reports_correction(client, trip):
    trip["expenses"][0].update({
        "payer_id": "p2",
        "split_mode": "weights",
        "weights": {"p1": 0, "p2": 0, "p3": 0},
    })
    data = client.post("/settlement", json=trip).json()
    assert data["correction"] == "30"
    assert data["net"] == {"p1": "-30.00", "p2": "30.00", "p3": "0.00"}


def test_import_camel_case_export(client):
    exported = [{
        "id": "l1",
        "name": "Ledger 1",
        "baseCurrency": "COP",
        "decimals": 0,
        "fx": {"COP": 0, "USD": 4000, "EUR": 0},
        "people": [
            {"id": "p1", "name": "Ana", "phone": ""},
            {"id": "p2", "name": "Ben", "phone": ""},
        ],
        "expenses": [{
            "id": "e1", "label": "Taxi", "amount": 20000, "currency": "COP",
            "payerId": "p1", "participants": ["p1", "p2"], "splitMode": "equal",
            "weights": {"p1": 1, "p2": 1},
        }],
        "directDebts": [
            {"id": "d1", "fromId": "p2", "toId": "p1", "amount": 10, "currency": "USD"},
        ],
    }]
    r = client.post("/ledgers/import", content=json.dumps(exported))
    assert r.status_code == 200
    [summary] = r.json()
    assert summary["net"] == {"p1": "50000", "p2": "-50000"}
    assert summary["settlements"] == [{"from": "p2", "to": "p1", "amount": "50000"}]


def test_import_rejects_undecodable_body(client):
    r = client.post("/ledgers/import", content=b"\xff\xfe[")
    assert r.status_code == 400
    assert "Invalid JSON" in r.json()["detail"]


def test_import_rejects_empty_list(client):
    r = client.post("/ledgers/import", content="[]")
    assert r.status_code == 400
    assert "no ledgers found" in r.json()["detail"]
