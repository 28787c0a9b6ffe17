from fastapi.testclient import TestClient

from services.calc_api.main import app, workflow

client = TestClient(app)

HALF_RENT = {"1": {"kind": "rewrite", "rhs": "Rent / 2", "explanation": "half the rent", "confidence": 0.9}}


def test_healthz():
    assert client.get("/healthz").json() == {"status": "ok"}


def test_status_reports_provider():
    body = client.get("/status").json()
    assert body["provider"] == "mock"
    assert body["llm"] == "connected"
    assert body["max_iterations"] >= 1
    assert set(body["debounce_ms"]) == {"local", "ai"}


def test_evaluate():
    r = client.post("/evaluate", json={"text": "Rent = $1200\nUtilities = $180\nTotal = Rent + Utilities"})
    assert r.status_code == 200
    body = r.json()
    assert body["results"]["2"]["value"] == 1380
    assert body["results"]["2"]["format"] == "currency"
    assert body["results"]["0"]["kind"] == "variable"
    assert body["variables"]["Total"] == 1380


def test_evaluate_rejects_missing_text():
    assert client.post("/evaluate", json={}).status_code == 422


def test_reconcile():
    r = client.post("/reconcile", json={
        "text": "Total = 10\nTotal Cost = 50\nwhat is the grand figure",
        "ai_rewrites": {"2": {"kind": "rewrite", "rhs": "Total Cost + 1"}},
    })
    result = r.json()["results"]["2"]
    assert result["value"] == 51
    assert result["source"] == "ai"


def test_analyze_with_mock_provider():
    body = client.post("/analyze", json={"text": "Rent = 100\nhalf of it"}).json()
    assert body["accepted"] is True
    assert body["status"] == "connected"
    assert body["results"]["0"]["value"] == 100
    assert "1" not in body["results"]


def test_analyze_applies_rewrites(monkeypatch, echo_provider):
    monkeypatch.setattr(workflow, "provider", echo_provider(HALF_RENT))
    body = client.post("/analyze", json={"text": "Rent = 100\nhalf of it"}).json()
    assert body["accepted"] is True
    assert body["results"]["1"]["value"] == 50
    assert body["results"]["1"]["source"] == "ai"


def test_analyze_discards_stale_response(monkeypatch, echo_provider):
    text = "Rent = 100\nhalf of it"
    local = client.post("/evaluate", json={"text": text}).json()["results"]
    monkeypatch.setattr(workflow, "provider", echo_provider(HALF_RENT, {"lines_hash": "deadbeefdeadbeef"}))
    body = client.post("/analyze", json={"text": text}).json()
    assert body["accepted"] is False
    assert body["reason"].startswith("Hash Mismatch")
    assert body["results"] == local


def test_analyze_transport_failure(monkeypatch, failing_provider):
    monkeypatch.setattr(workflow, "provider", failing_provider)
    body = client.post("/analyze", json={"text": "Rent = 100\nhalf of it"}).json()
    assert body["status"] == "error"
    assert body["accepted"] is False
    assert body["results"]["0"]["value"] == 100


def test_documents_round_trip(monkeypatch, echo_provider):
    created = client.post("/documents", json={"title": "Budget.calc", "content": "Rent = 100"}).json()
    doc_id = created["id"]
    assert created["results"]["0"]["value"] == 100
    assert created["ai_logic"] == {}

    updated = client.put(f"/documents/{doc_id}", json={"title": "Home.calc", "content": "Rent = 100\nhalf of it"}).json()
    assert updated["title"] == "Home.calc"
    assert updated["content"] == "Rent = 100\nhalf of it"

    listed = client.get("/documents").json()
    assert listed[0]["id"] == doc_id

    monkeypatch.setattr(workflow, "provider", echo_provider(HALF_RENT))
    analyzed = client.post("/analyze", json={"text": "Rent = 100\nhalf of it", "document_id": doc_id}).json()
    assert analyzed["accepted"] is True

    stored = client.get(f"/documents/{doc_id}").json()
    assert stored["ai_logic"]["1"]["rhs"] == "Rent / 2"
    assert stored["results"]["1"]["value"] == 50

    logs = client.get("/logs").json()["logs"]
    assert logs[0]["kind"] == "llm"
    assert logs[0]["data"]["rewrites"] == 1

    assert client.delete(f"/documents/{doc_id}").status_code == 200
    assert client.get(f"/documents/{doc_id}").status_code == 404
    assert client.delete(f"/documents/{doc_id}").status_code == 404


def test_analyze_unknown_document():
    r = client.post("/analyze", json={"text": "1 + 1", "document_id": 987654})
    assert r.status_code == 404


def test_clear_logs():
    client.post("/analyze", json={"text": "1 + 1"})
    assert client.delete("/logs").json() == {"status": "cleared"}
    assert client.get("/logs").json()["logs"] == []


def test_settings_round_trip():
    assert client.get("/settings/theme").status_code == 404
    r = client.put("/settings/theme", json={"value": {"mode": "dark", "font_size": 14}})
    assert r.status_code == 200
    assert client.get("/settings/theme").json() == {"key": "theme", "value": {"mode": "dark", "font_size": 14}}

    client.put("/settings/theme", json={"value": {"mode": "light"}})
    assert client.get("/settings/theme").json()["value"] == {"mode": "light"}
