"""
配置加载模块

从 config.yaml 加载配置，支持 Pydantic 验证和环境变量覆盖。

环境变量使用 TELEMETRY_ 前缀，嵌套字段用双下划线分隔，例如：
    TELEMETRY_LIVENESS__OFFLINE_AFTER_SECONDS=120
环境变量优先级高于配置文件。
"""

import os
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """数据库配置"""
    path: str = "data/telemetry.db"
    timeout: int = 30


class APIConfig(BaseModel):
    """API 服务配置"""
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]


class LivenessConfig(BaseModel):
    """在线状态阈值（全局生效，不支持按主机配置）"""
    offline_after_seconds: int = Field(default=300, gt=0)
    inactive_after_hours: float = Field(default=24, gt=0)

    @property
    def offline_after(self) -> timedelta:
        return timedelta(seconds=self.offline_after_seconds)

    @property
    def inactive_after(self) -> timedelta:
        return timedelta(hours=self.inactive_after_hours)


class RollupConfig(BaseModel):
    """趋势分桶配置"""
    bucket_minutes: int = Field(default=60, gt=0)
    window_hours: int = Field(default=24, gt=0)


class RetentionConfig(BaseModel):
    """数据保留策略"""
    enabled: bool = True
    max_sample_age_hours: float = Field(default=24, gt=0)
    max_inactive_age_hours: float = Field(default=72, gt=0)
    interval_minutes: float = Field(default=60, gt=0)

    @property
    def max_sample_age(self) -> timedelta:
        return timedelta(hours=self.max_sample_age_hours)

    @property
    def max_inactive_age(self) -> timedelta:
        return timedelta(hours=self.max_inactive_age_hours)


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None
    max_size_mb: int = 50
    backup_count: int = 5


class AppConfig(BaseSettings):
    """应用配置（完整配置）"""

    model_config = SettingsConfigDict(
        env_prefix="TELEMETRY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    liveness: LivenessConfig = Field(default_factory=LivenessConfig)
    rollup: RollupConfig = Field(default_factory=RollupConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # 环境变量 > 配置文件（以初始化参数传入）
        return env_settings, init_settings, file_secret_settings


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置文件

    优先级：
    1. 参数指定的路径
    2. 环境变量 TELEMETRY_CONFIG_PATH
    3. 默认路径 config.yaml
    """
    if config_path is None:
        config_path = os.environ.get("TELEMETRY_CONFIG_PATH", "config.yaml")

    config_file = Path(config_path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
        if raw_config:
            # 配置文件中的相对路径以配置文件所在目录为基准，避免依赖 CWD
            base_dir = config_file.resolve().parent

            def _resolve_path(value: Optional[str]) -> Optional[str]:
                if not value:
                    return value
                path = Path(value)
                if path.is_absolute():
                    return str(path)
                return str((base_dir / path).resolve())

            for section, key in (("database", "path"), ("logging", "file")):
                values = raw_config.get(section) or {}
                if values.get(key):
                    values[key] = _resolve_path(values[key])
                    raw_config[section] = values

            return AppConfig(**raw_config)

    # 配置文件不存在时使用默认配置（仍会读取环境变量）
    return AppConfig()


# 全局配置实例（延迟加载）
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """获取全局配置实例（单例模式）"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    """重置配置（主要用于测试）"""
    global _config
    _config = None
