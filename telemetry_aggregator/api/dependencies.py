"""
依赖注入模块

提供 FastAPI 依赖项，测试中可通过 dependency_overrides 替换。
"""

from datetime import datetime

from ..database import Database, get_db
from ..liveness import LivenessClassifier, get_classifier
from ..retention import RetentionManager, get_retention_manager
from ..utils import utcnow


async def get_database() -> Database:
    """获取数据库实例"""
    return get_db()


async def get_liveness_classifier() -> LivenessClassifier:
    """获取共享的在线状态判定器"""
    return get_classifier()


async def get_retention() -> RetentionManager:
    """获取共享的清理器"""
    return get_retention_manager()


async def get_now() -> datetime:
    """当前时间（UTC）"""
    return utcnow()
