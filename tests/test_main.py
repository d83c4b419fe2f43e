"""
测试启动流程
"""

import asyncio
import logging

import pytest

from telemetry_aggregator import main
from telemetry_aggregator.config import AppConfig
from telemetry_aggregator.errors import ConfigurationError


def test_invalid_liveness_config_logged(tmp_path, monkeypatch, caplog):
    """测试：阈值配置错误时记录日志并退出"""
    config = AppConfig(database={"path": str(tmp_path / "telemetry.db")})

    def broken_classifier():
        raise ConfigurationError("offline_after must be shorter than inactive_after")

    monkeypatch.setattr(main, "setup_logging", lambda: None)
    monkeypatch.setattr(main, "get_config", lambda: config)
    monkeypatch.setattr(main, "get_db", lambda: None)
    monkeypatch.setattr(main, "get_classifier", broken_classifier)
    caplog.set_level(logging.INFO, logger="telemetry_aggregator.main")

    with pytest.raises(ConfigurationError):
        asyncio.run(main.main())

    assert "Invalid configuration: offline_after must be shorter" in caplog.text
    assert (tmp_path / "telemetry-aggregator.lock").exists()
