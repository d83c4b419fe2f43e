"""
在线状态判定

根据主机最新样本距今的时长判定 online / offline / inactive。
前端的在线标记和数据清理任务共用同一个判定器，避免两边结论不一致。
"""

import logging
import sqlite3
from datetime import datetime, timedelta
from typing import List, Optional

from .config import AppConfig, get_config
from .database import Database
from .errors import ConfigurationError
from .latest import latest_all, latest_one
from .models import LivenessRecord, LivenessState, Sample
from .utils import to_utc, utcnow

logger = logging.getLogger(__name__)


class LivenessClassifier:
    """
    在线状态判定器

    age <= offline_after                   -> online
    offline_after < age <= inactive_after  -> offline
    age > inactive_after                   -> inactive
    """

    def __init__(self, offline_after: timedelta, inactive_after: timedelta):
        if offline_after <= timedelta(0) or inactive_after <= timedelta(0):
            raise ConfigurationError("Liveness thresholds must be positive")
        if offline_after >= inactive_after:
            raise ConfigurationError(
                f"offline_after ({offline_after}) must be shorter than inactive_after ({inactive_after})"
            )
        self.offline_after = offline_after
        self.inactive_after = inactive_after

    @classmethod
    def from_config(cls, config: AppConfig) -> "LivenessClassifier":
        return cls(config.liveness.offline_after, config.liveness.inactive_after)

    def classify_age(self, age: timedelta) -> LivenessState:
        if age <= self.offline_after:
            return LivenessState.ONLINE
        if age <= self.inactive_after:
            return LivenessState.OFFLINE
        return LivenessState.INACTIVE

    def record(self, sample: Sample, now: datetime) -> LivenessRecord:
        age = to_utc(now) - to_utc(sample.observed_at)
        return LivenessRecord(
            source_id=sample.source_id,
            state=self.classify_age(age),
            last_seen_at=sample.observed_at,
            age_seconds=age.total_seconds(),
        )

    def classify(
        self,
        db: Database,
        now: Optional[datetime] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> List[LivenessRecord]:
        """所有主机的在线状态（按 source_id 排序）"""
        now = to_utc(now) if now is not None else utcnow()
        return [self.record(sample, now) for sample in latest_all(db, conn=conn).values()]

    def classify_one(self, db: Database, source_id: str, now: Optional[datetime] = None) -> LivenessRecord:
        """
        单台主机的在线状态

        Raises:
            SourceNotFound: 该主机没有任何样本
        """
        now = to_utc(now) if now is not None else utcnow()
        return self.record(latest_one(db, source_id), now)


# 全局判定器（延迟加载）
_classifier: Optional[LivenessClassifier] = None


def get_classifier() -> LivenessClassifier:
    """获取全局在线状态判定器"""
    global _classifier
    if _classifier is None:
        _classifier = LivenessClassifier.from_config(get_config())
        logger.info(
            f"Liveness thresholds: offline_after={_classifier.offline_after}, "
            f"inactive_after={_classifier.inactive_after}"
        )
    return _classifier


def reset_classifier():
    """重置判定器（主要用于测试）"""
    global _classifier
    _classifier = None
