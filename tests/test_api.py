"""
测试 REST API

使用临时数据库和固定时间，通过 dependency_overrides 注入。
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from telemetry_aggregator.api.app import create_app
from telemetry_aggregator.api.dependencies import (
    get_database,
    get_liveness_classifier,
    get_now,
    get_retention,
)
from telemetry_aggregator.database import Database
from telemetry_aggregator.liveness import LivenessClassifier
from telemetry_aggregator.retention import RetentionManager

from .conftest import NOW, make_sample


@pytest.fixture
def classifier():
    return LivenessClassifier(timedelta(minutes=5), timedelta(hours=24))


@pytest.fixture
def manager(db, classifier):
    return RetentionManager(db, classifier, timedelta(hours=24), timedelta(hours=72))


@pytest.fixture
def app(db: Database, classifier, manager):
    app = create_app()

    async def _override_db():
        return db

    async def _override_classifier():
        return classifier

    async def _override_retention():
        return manager

    async def _override_now():
        return NOW

    app.dependency_overrides[get_database] = _override_db
    app.dependency_overrides[get_liveness_classifier] = _override_classifier
    app.dependency_overrides[get_retention] = _override_retention
    app.dependency_overrides[get_now] = _override_now
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def fleet(db):
    """三台主机：在线、离线、失联"""
    db.append(make_sample("pc-online", cpu=40, ram=50, disk=60), observed_at=NOW - timedelta(minutes=50))
    db.append(make_sample("pc-online", cpu=60, ram=70, disk=80), observed_at=NOW - timedelta(minutes=2))
    db.append(make_sample("pc-offline", cpu=20, ram=20, disk=20), observed_at=NOW - timedelta(minutes=30))
    db.append(make_sample("pc-inactive", cpu=90, ram=90, disk=90), observed_at=NOW - timedelta(hours=48))
    return db


class TestIngest:
    """样本接收"""

    def test_push_sample(self, client, db):
        response = client.post("/api/samples", json=make_sample(cpu=12.5))
        assert response.status_code == 201

        data = response.json()
        assert data["source_id"] == "pc-01"
        assert data["cpu"] == 12.5
        assert data["id"] > 0
        assert db.count_samples() == 1

    def test_server_assigns_timestamp(self, client, db):
        response = client.post("/api/samples", json=make_sample(observed_at="2001-01-01T00:00:00Z"))
        assert response.status_code == 201
        assert db.query()[0].observed_at == NOW

    def test_out_of_range_rejected(self, client, db):
        response = client.post("/api/samples", json=make_sample(ram=120))
        assert response.status_code == 422
        assert db.count_samples() == 0

    def test_oversized_uptime_rejected(self, client, db):
        response = client.post("/api/samples", json=make_sample(uptime_seconds=2**64))
        assert response.status_code == 422
        assert db.count_samples() == 0

    def test_missing_field_rejected(self, client, db):
        payload = make_sample()
        del payload["uptime_seconds"]
        response = client.post("/api/samples", json=payload)
        assert response.status_code == 422
        assert db.count_samples() == 0


class TestSources:
    """主机状态"""

    def test_list_sources(self, client, fleet):
        response = client.get("/api/sources")
        assert response.status_code == 200

        data = {item["source_id"]: item for item in response.json()}
        assert data["pc-online"]["state"] == "online"
        assert data["pc-online"]["latest"]["cpu"] == 60
        assert data["pc-offline"]["state"] == "offline"
        assert data["pc-inactive"]["state"] == "inactive"

    def test_get_source(self, client, fleet):
        response = client.get("/api/sources/pc-offline")
        assert response.status_code == 200
        assert response.json()["state"] == "offline"

    def test_unknown_source(self, client, fleet):
        assert client.get("/api/sources/nope").status_code == 404
        assert client.get("/api/sources/nope/history").status_code == 404
        assert client.get("/api/sources/nope/rollup").status_code == 404

    def test_history(self, client, fleet):
        response = client.get("/api/sources/pc-online/history?hours=1")
        assert response.status_code == 200

        data = response.json()
        assert data["hours"] == 1
        assert [item["cpu"] for item in data["data"]] == [40, 60]

    def test_history_window(self, client, fleet):
        response = client.get("/api/sources/pc-inactive/history?hours=24")
        assert response.status_code == 200
        assert response.json()["data"] == []

    def test_source_rollup(self, client, fleet):
        """测试：窗口结束于下一个整点，桶对齐整点"""
        response = client.get("/api/sources/pc-online/rollup?hours=2")
        assert response.status_code == 200

        data = response.json()
        assert data["source_id"] == "pc-online"
        assert data["bucket_minutes"] == 60
        # NOW = 12:30，两个样本分别在 11:40 和 12:28
        assert [b["avg_cpu"] for b in data["data"]] == [40, 60]
        assert [b["sample_count"] for b in data["data"]] == [1, 1]

    def test_rollup_query_validation(self, client, fleet):
        assert client.get("/api/sources/pc-online/rollup?bucket_minutes=0").status_code == 422
        assert client.get("/api/sources/pc-online/rollup?hours=100000").status_code == 422


class TestOverview:
    """全局概览"""

    def test_overview(self, client, fleet):
        response = client.get("/api/overview?hours=24")
        assert response.status_code == 200

        data = response.json()
        # pc-inactive 的样本在窗口外
        assert data["stats"]["total_sources"] == 2
        assert data["stats"]["avg_cpu"] == 40.0
        assert data["states"] == {"online": 1, "offline": 1, "inactive": 1}

    def test_overview_empty(self, client):
        response = client.get("/api/overview")
        assert response.status_code == 200

        data = response.json()
        assert data["stats"]["total_sources"] == 0
        assert data["stats"]["avg_cpu"] is None
        assert data["states"] == {"online": 0, "offline": 0, "inactive": 0}

    def test_overview_rollup(self, client, fleet):
        response = client.get("/api/overview/rollup?hours=1")
        assert response.status_code == 200

        data = response.json()
        assert data["source_id"] is None
        [bucket] = data["data"]
        # 12:00-13:00 桶内：pc-online(60) + pc-offline(20)
        assert bucket["avg_cpu"] == 40.0
        assert bucket["sample_count"] == 2


class TestMaintenance:
    """手动清理"""

    def test_cleanup(self, client, db):
        db.append(make_sample(), observed_at=NOW - timedelta(hours=25))
        db.append(make_sample(), observed_at=NOW - timedelta(hours=23))

        response = client.post("/api/maintenance/cleanup")
        assert response.status_code == 200
        assert response.json()["samples_deleted"] == 1
        assert db.count_samples() == 1

    def test_cleanup_in_progress(self, client, manager):
        manager._running.acquire()
        try:
            response = client.post("/api/maintenance/cleanup")
        finally:
            manager._running.release()
        assert response.status_code == 409


class TestStoreUnavailable:
    """存储不可用"""

    def test_returns_503(self, app, tmp_path):
        path = tmp_path / "broken.db"
        path.write_bytes(b"this is not a sqlite database " * 20)
        broken = Database(str(path), timeout=1)

        async def _override_db():
            return broken

        app.dependency_overrides[get_database] = _override_db
        client = TestClient(app)

        response = client.get("/api/sources")
        assert response.status_code == 503
        assert "retry" in response.json()["detail"]


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
