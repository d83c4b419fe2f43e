"""
数据清理任务

按固定周期执行，策略依次为：
1. 删除 observed_at 早于 now - max_sample_age 的所有样本（不论主机状态）
2. 对判定为 inactive 且最新样本距今超过 max_inactive_age 的主机，删除其全部剩余样本

两步在同一个写事务内完成，失败时整体回滚。
同一时刻最多只有一个清理任务在执行。
"""

import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Optional

from .config import get_config
from .database import Database, get_db
from .errors import ConfigurationError
from .latest import latest_all
from .liveness import LivenessClassifier, get_classifier
from .models import CleanupResult, LivenessState
from .utils import to_utc, utcnow

logger = logging.getLogger(__name__)


class RetentionManager:
    """数据保留策略执行器"""

    def __init__(
        self,
        db: Database,
        classifier: LivenessClassifier,
        max_sample_age: timedelta = timedelta(hours=24),
        max_inactive_age: timedelta = timedelta(hours=72),
    ):
        _check_positive(max_sample_age, max_inactive_age)
        self.db = db
        self.classifier = classifier
        self.max_sample_age = max_sample_age
        self.max_inactive_age = max_inactive_age
        self._running = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    def run_cleanup(
        self,
        now: Optional[datetime] = None,
        max_sample_age: Optional[timedelta] = None,
        max_inactive_age: Optional[timedelta] = None,
    ) -> Optional[CleanupResult]:
        """
        执行一次清理

        Returns:
            清理结果；已有清理任务在执行时跳过并返回 None

        Raises:
            StoreUnavailable: 存储不可用（本次清理整体回滚）
        """
        if not self._running.acquire(blocking=False):
            logger.warning("Cleanup already in progress, skipping this run")
            return None
        try:
            return self._run(
                to_utc(now) if now is not None else utcnow(),
                max_sample_age if max_sample_age is not None else self.max_sample_age,
                max_inactive_age if max_inactive_age is not None else self.max_inactive_age,
            )
        finally:
            self._running.release()

    def _run(self, now: datetime, max_sample_age: timedelta, max_inactive_age: timedelta) -> CleanupResult:
        _check_positive(max_sample_age, max_inactive_age)
        result = CleanupResult(ran_at=now)

        with self.db.get_conn(write=True) as conn:
            # 1. 过期样本
            result.samples_deleted = self.db.delete_where(before=now - max_sample_age, conn=conn)

            # 2. 长期失联的主机
            for source_id, sample in latest_all(self.db, conn=conn).items():
                record = self.classifier.record(sample, now)
                if record.state != LivenessState.INACTIVE:
                    continue
                if now - to_utc(sample.observed_at) <= max_inactive_age:
                    continue
                deleted = self.db.delete_where(source_id=source_id, conn=conn)
                result.samples_deleted += deleted
                result.sources_fully_removed.append(source_id)
                logger.info(
                    f"Removed inactive source {source_id} "
                    f"(last seen {sample.observed_at.isoformat()}, {deleted} samples)"
                )

        logger.info(
            f"Cleanup completed: {result.samples_deleted} samples deleted, "
            f"{len(result.sources_fully_removed)} sources removed"
        )
        return result


def _check_positive(max_sample_age: timedelta, max_inactive_age: timedelta):
    if max_sample_age <= timedelta(0) or max_inactive_age <= timedelta(0):
        raise ConfigurationError("Retention ages must be positive")


# 全局清理器（延迟加载）
_manager: Optional[RetentionManager] = None


def get_retention_manager() -> RetentionManager:
    """获取全局清理器"""
    global _manager
    if _manager is None:
        config = get_config()
        _manager = RetentionManager(
            db=get_db(),
            classifier=get_classifier(),
            max_sample_age=config.retention.max_sample_age,
            max_inactive_age=config.retention.max_inactive_age,
        )
    return _manager


def reset_retention_manager():
    """重置清理器（主要用于测试）"""
    global _manager
    _manager = None


async def run_cleanup_loop():
    """
    运行数据清理任务

    每隔 interval_minutes 执行一次，清理本身在工作线程中运行，不阻塞 API。
    """
    config = get_config()
    interval = config.retention.interval_minutes * 60
    manager = get_retention_manager()

    logger.info(
        f"Starting cleanup task (interval={config.retention.interval_minutes}min, "
        f"max_sample_age={manager.max_sample_age}, max_inactive_age={manager.max_inactive_age})"
    )

    while True:
        try:
            await asyncio.sleep(interval)
            await asyncio.to_thread(manager.run_cleanup)
        except asyncio.CancelledError:
            logger.info("Cleanup task cancelled")
            raise
        except Exception as e:
            logger.error(f"Cleanup error: {e}", exc_info=True)
