"""
测试样本接收
"""

import logging

import pytest

from telemetry_aggregator.errors import SampleValidationError
from telemetry_aggregator.ingest import ingest_sample
from telemetry_aggregator.models import SampleIn

from .conftest import NOW, make_sample


def test_ingest_dict(db):
    sample = ingest_sample(db, make_sample("pc-07", cpu=55))

    assert sample.source_id == "pc-07"
    assert sample.cpu == 55
    assert sample.observed_at == NOW
    assert db.count_samples("pc-07") == 1


def test_ingest_model(db):
    sample = ingest_sample(db, SampleIn(**make_sample()))
    assert sample.id > 0


def test_client_id_and_timestamp_dropped(db):
    """测试：客户端伪造的 id / observed_at 被忽略"""
    sample = ingest_sample(db, make_sample(id=999, observed_at="2001-01-01T00:00:00.000000Z"))

    assert sample.id != 999
    assert sample.observed_at == NOW


def test_rejected_sample_logged(db, caplog):
    with caplog.at_level(logging.WARNING, logger="telemetry_aggregator.ingest"):
        with pytest.raises(SampleValidationError) as exc_info:
            ingest_sample(db, make_sample("pc-08", disk=101))

    assert exc_info.value.field == "disk"
    assert "pc-08" in caplog.text
    assert db.count_samples() == 0
