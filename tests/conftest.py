"""
测试公共夹具

所有测试使用临时数据库和固定时钟，时间统一为 UTC。
"""

from datetime import datetime, timedelta, timezone

import pytest

from telemetry_aggregator.database import Database

NOW = datetime(2026, 1, 20, 12, 30, 0, tzinfo=timezone.utc)


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta):
        self.now += delta


def make_sample(source_id: str = "pc-01", cpu: float = 10.0, ram: float = 20.0, disk: float = 30.0, **extra):
    """构造一条合法样本"""
    data = {
        "source_id": source_id,
        "cpu": cpu,
        "ram": ram,
        "disk": disk,
        "os": "Ubuntu 22.04",
        "uptime_seconds": 3600,
    }
    data.update(extra)
    return data


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db(tmp_path, clock):
    """创建临时测试数据库"""
    db = Database(str(tmp_path / "test_telemetry.db"), timeout=5, clock=clock)
    db.init_schema()
    return db
