"""
最新状态

每台主机 observed_at 最大的样本。每次读取时实时计算，不做缓存。
同一主机时间戳相同时，后入库的样本胜出。
"""

import sqlite3
from typing import Dict, Optional

from .database import Database
from .errors import SourceNotFound
from .models import Sample


def latest_all(db: Database, conn: Optional[sqlite3.Connection] = None) -> Dict[str, Sample]:
    """所有主机的最新样本：{source_id: Sample}"""
    return db.latest_samples(conn=conn)


def latest_one(db: Database, source_id: str) -> Sample:
    """
    单台主机的最新样本

    Raises:
        SourceNotFound: 该主机没有任何样本
    """
    latest = db.latest_samples(source_id=source_id)
    if source_id not in latest:
        raise SourceNotFound(source_id)
    return latest[source_id]
