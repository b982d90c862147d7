from fastapi.testclient import TestClient


def test_state_reflects_operator_commands(client: TestClient) -> None:
    assert client.get("/api/v1/simulator/state").json() == {"offline": False, "latencyMs": 0}

    r1 = client.post("/api/v1/simulator/offline", json={"offline": True})
    r2 = client.post("/api/v1/simulator/latency", json={"latencyMs": 2500})

    assert r1.status_code == 202 and r1.json() == {"accepted": True}
    assert r2.status_code == 202
    assert client.get("/api/v1/simulator/state").json() == {"offline": True, "latencyMs": 2500}


def test_negative_latency_is_rejected(client: TestClient) -> None:
    resp = client.post("/api/v1/simulator/latency", json={"latencyMs": -1})

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "E002"
    assert client.get("/api/v1/simulator/state").json()["latencyMs"] == 0


def test_offline_requires_boolean(client: TestClient) -> None:
    resp = client.post("/api/v1/simulator/offline", json={"offline": "maybe"})

    assert resp.status_code == 422


def test_trigger_runs_return_tx_ids(client: TestClient) -> None:
    # Stretch ticks so the transaction run is still in flight when listed.
    client.post("/api/v1/simulator/latency", json={"latencyMs": 5_000_000})

    tx = client.post("/api/v1/simulator/runs/transaction")
    init = client.post("/api/v1/simulator/runs/initialization")

    assert tx.status_code == 202
    assert tx.json()["kind"] == "TRANSACTION"
    assert init.status_code == 202
    assert init.json()["kind"] == "INIT"
    assert init.json()["txId"].startswith("INIT-")

    items = client.get("/api/v1/simulator/runs").json()["items"]
    running = {i["txId"]: i for i in items}
    assert tx.json()["txId"] in running
    assert running[tx.json()["txId"]]["diverged"] is False


def test_tax_comparison_endpoint(client: TestClient) -> None:
    resp = client.get("/api/v1/tax/comparison", params={"base": "1000"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["base"] == "1000.00"
    assert data["legacy"]["total"] == "1207.50"
    assert data["legacy"]["effective_rate"] == "20.75"
    assert data["flat"]["total"] == "1200.00"
    assert data["flat"]["effective_rate"] == "20.00"


def test_tax_comparison_zero_base(client: TestClient) -> None:
    data = client.get("/api/v1/tax/comparison", params={"base": "0"}).json()

    assert data["legacy"]["effective_rate"] is None
    assert data["flat"]["effective_rate"] is None


def test_tax_comparison_rejects_garbage(client: TestClient) -> None:
    resp = client.get("/api/v1/tax/comparison", params={"base": "abc"})

    assert resp.status_code == 422


def test_health_reports_simulator_state(client: TestClient) -> None:
    client.post("/api/v1/simulator/offline", json={"offline": True})

    data = client.get("/api/v1/health").json()

    assert data["status"] == "ok"
    assert data["simulator"]["offline"] is True
    assert data["simulator"]["latencyMs"] == 0
    assert client.get("/api/v1/healthz").json() == {"status": "ok"}


def test_metrics_endpoint_exposes_counters(client: TestClient) -> None:
    client.get("/api/v1/healthz")

    resp = client.get("/metrics")

    assert resp.status_code == 200
    assert "vsdc_http_requests_total" in resp.text


def test_get_run_returns_in_flight_run(client: TestClient) -> None:
    client.post("/api/v1/simulator/latency", json={"latencyMs": 5_000_000})
    tx_id = client.post("/api/v1/simulator/runs/transaction").json()["txId"]

    resp = client.get(f"/api/v1/simulator/runs/{tx_id}")

    assert resp.status_code == 200
    data = resp.json()
    assert data["txId"] == tx_id
    assert data["kind"] == "TRANSACTION"
    assert data["cursor"] == 0


def test_get_unknown_run_is_not_found(client: TestClient) -> None:
    resp = client.get("/api/v1/simulator/runs/does-not-exist")

    assert resp.status_code == 404
    err = resp.json()["error"]
    assert err["code"] == "E001"
    assert err["details"] == {"txId": "does-not-exist"}
