"""
测试最新状态

覆盖：
- 每台主机取 observed_at 最大的样本
- 时间戳相同时后入库者胜出
- 没有样本的主机
"""

from datetime import timedelta

import pytest

from telemetry_aggregator.errors import SourceNotFound
from telemetry_aggregator.latest import latest_all, latest_one

from .conftest import NOW, make_sample


def test_latest_one_returns_max_observed_at(db):
    """测试：t1 < t2 < t3 时返回 t3 的样本（与入库顺序无关）"""
    db.append(make_sample(cpu=3), observed_at=NOW)
    db.append(make_sample(cpu=1), observed_at=NOW - timedelta(minutes=2))
    db.append(make_sample(cpu=2), observed_at=NOW - timedelta(minutes=1))

    latest = latest_one(db, "pc-01")

    assert latest.cpu == 3
    assert latest.observed_at == NOW


def test_tie_break_last_inserted_wins(db):
    """测试：同一时间戳，后入库的样本胜出"""
    db.append(make_sample(cpu=1), observed_at=NOW)
    second = db.append(make_sample(cpu=2), observed_at=NOW)

    assert latest_one(db, "pc-01").id == second.id
    assert latest_all(db)["pc-01"].id == second.id


def test_latest_all_one_entry_per_source(db):
    db.append(make_sample("pc-02", cpu=5), observed_at=NOW - timedelta(hours=3))
    db.append(make_sample("pc-01", cpu=1), observed_at=NOW - timedelta(hours=2))
    db.append(make_sample("pc-01", cpu=2), observed_at=NOW - timedelta(hours=1))
    db.append(make_sample("pc-03", cpu=7), observed_at=NOW)

    latest = latest_all(db)

    assert list(latest) == ["pc-01", "pc-02", "pc-03"]
    assert {k: v.cpu for k, v in latest.items()} == {"pc-01": 2, "pc-02": 5, "pc-03": 7}


def test_latest_all_empty_store(db):
    assert latest_all(db) == {}


def test_latest_one_not_found(db):
    db.append(make_sample("pc-01"))

    with pytest.raises(SourceNotFound) as exc_info:
        latest_one(db, "pc-99")

    assert exc_info.value.source_id == "pc-99"
