"""
Tests for the REST API
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

import regimex.api as api
from regimex.config import EngineConfig
from regimex.controller import DecisionEngine, StaticDataSource
from regimex.trading import SimulatedExecutionAdapter


@pytest.fixture
def engine(store, clock, event_bus):
    return DecisionEngine(
        config=EngineConfig(),
        store=store,
        clock=clock,
        data_source=StaticDataSource.from_prices([10000 + 10 * i for i in range(5)], clock=clock),
        adapter=SimulatedExecutionAdapter(success_rate=1.0, seed=0),
        event_bus=event_bus,
    )


@pytest.fixture
def client(engine, monkeypatch):
    monkeypatch.setattr(api, "_engine", engine)
    return TestClient(api.app)


class TestHealth:

    def test_health(self, client, engine):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["config_hash"] == engine.config_hash
        assert body["engine_health"]["status"] == "INITIALIZING"

    def test_health_failure_is_503(self, client, engine, monkeypatch):
        def broken():
            raise RuntimeError("store unreachable")

        monkeypatch.setattr(engine, "get_health", broken)
        response = client.get("/health")
        assert response.status_code == 503
        assert "store unreachable" in response.json()["detail"]

    def test_config(self, client):
        body = client.get("/config").json()
        assert body["config"]["default_strategy"] == "attention_weighted"
        assert body["engine_version"] == "1.0.0"


class TestCycleEndpoints:

    def test_no_decision_yet(self, client):
        assert client.get("/decision/last").status_code == 404

    def test_run_cycle(self, client):
        response = client.post("/cycle")
        assert response.status_code == 200
        record = response.json()
        assert record["cycle"] == 1
        assert record["outcome"] == "COMPLETED"

        last = client.get("/decision/last").json()
        assert last == record
        assert client.get("/status").json()["status"] == "RUNNING"

    def test_cycle_runs_off_the_event_loop(self, client, engine, monkeypatch):
        original = engine.run_cycle
        seen = {}

        def recording_cycle():
            try:
                asyncio.get_running_loop()
                seen['in_event_loop'] = True
            except RuntimeError:
                seen['in_event_loop'] = False
            return original()

        monkeypatch.setattr(engine, "run_cycle", recording_cycle)
        assert client.post("/cycle").status_code == 200
        assert seen == {'in_event_loop': False}

    def test_cycle_failure_is_500(self, client, engine, monkeypatch):
        def broken():
            raise RuntimeError("unexpected")

        monkeypatch.setattr(engine, "run_cycle", broken)
        assert client.post("/cycle").status_code == 500


class TestStateEndpoints:

    def test_state(self, client):
        body = client.get("/state").json()
        assert body["current_state"] == "SIDEWAYS"
        assert body["locked"] is False

    def test_transitions_after_cycles(self, client):
        for _ in range(5):
            client.post("/cycle")
        transitions = client.get("/transitions").json()["transitions"]
        assert transitions[-1]["to_state"] == "BULL"

    def test_validate_transition(self, client):
        body = client.get("/transition/validate", params={"from_state": "bull", "to_state": "BEAR"}).json()
        assert body["allowed"] is False
        assert body["strength"] == 70

        body = client.get("/transition/validate", params={"from_state": "SIDEWAYS", "to_state": "BULL"}).json()
        assert body["allowed"] is True
        assert body["strength"] == 85

    def test_validate_bad_state(self, client):
        response = client.get("/transition/validate", params={"from_state": "MOON", "to_state": "BULL"})
        assert response.status_code == 400


class TestStrategyEndpoints:

    def test_get_and_list(self, client):
        assert client.get("/strategy").json()["strategy_id"] == "attention_weighted"
        ids = {s["strategy_id"] for s in client.get("/strategies").json()["strategies"]}
        assert ids == {"attention_weighted", "mean_reversion"}

    def test_switch(self, client):
        response = client.post("/strategy", json={"strategy_id": "mean_reversion"})
        assert response.status_code == 200
        assert response.json()["name"] == "Mean Reversion"

    def test_switch_by_number(self, client):
        assert client.post("/strategy", json={"strategy_id": 1}).json()["strategy_id"] == "mean_reversion"

    def test_switch_unknown(self, client):
        assert client.post("/strategy", json={"strategy_id": "neural_net"}).status_code == 400


class TestAdminEndpoints:

    def test_position(self, client):
        body = client.get("/position").json()
        assert body["position"]["size"] == 0
        assert body["risk_parameters"]["max_leverage"] == 300
        assert body["daily_pnl"] == 0

    def test_update_risk(self, client, engine):
        response = client.put("/admin/risk", json={"max_leverage": 200, "cooldown_period": 60})
        assert response.status_code == 200
        assert engine.get_risk_parameters().max_leverage == 200
        assert engine.get_risk_parameters().cooldown_period == 60.0

    def test_update_risk_empty(self, client):
        assert client.put("/admin/risk", json={}).status_code == 400

    def test_update_risk_out_of_range(self, client):
        assert client.put("/admin/risk", json={"stop_loss_percent": 20000}).status_code == 400
        assert client.put("/admin/risk", json={"max_leverage": 0}).status_code == 422

    def test_unlock(self, client, engine):
        engine.state_manager.acquire_lock("stuck-worker")
        assert client.post("/admin/unlock").json()["released"] is True
        assert not engine.state_manager.is_locked()

    def test_stop_and_resume(self, client):
        assert client.post("/admin/stop", json={"reason": "maintenance window"}).json()["status"] == "MAINTENANCE"
        assert client.post("/cycle").json()["outcome"] == "SKIPPED"
        assert client.post("/admin/resume", json={}).json()["status"] == "RUNNING"
        assert client.post("/cycle").json()["outcome"] == "COMPLETED"


class TestMonitoringEndpoints:

    def test_statistics(self, client):
        client.post("/cycle")
        body = client.get("/statistics").json()
        assert body["engine"]["total_cycles"] == 1
        assert len(body["signal_history"]) == 1

    def test_errors(self, client):
        assert client.get("/errors").json() == {"errors": []}

    def test_event_metrics(self, client):
        client.post("/cycle")
        body = client.get("/events/metrics").json()
        assert body["metrics"]["events_published"] > 0
        assert body["recent"]

    def test_events_by_type(self, client):
        client.post("/cycle")
        events = client.get("/events/CYCLE_COMPLETED").json()["events"]
        assert events[-1]["data"]["cycle"] == 1

    def test_unknown_event_type(self, client):
        assert client.get("/events/not_a_type").status_code == 404
