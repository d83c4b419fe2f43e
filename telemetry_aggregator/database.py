"""
数据库操作抽象层

封装所有 SQLite 操作，提供样本的追加、查询、删除接口。

样本表只追加、不更新；删除只发生在数据清理任务中。
每个 get_conn() 代码块就是一个事务：成功提交，出错整体回滚。
写事务使用 BEGIN IMMEDIATE，由 SQLite 的写锁保证入库与清理互斥。
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .config import get_config
from .errors import InvalidRangeError, StoreUnavailable
from .models import Sample, SampleIn, validate_sample
from .utils import format_ts, parse_ts, to_utc, utcnow

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS samples (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source_id TEXT NOT NULL,
        cpu REAL NOT NULL,
        ram REAL NOT NULL,
        disk REAL NOT NULL,
        os TEXT NOT NULL,
        uptime_seconds INTEGER NOT NULL,
        observed_at TEXT NOT NULL
    )
    """,
    # 按主机 + 时间范围扫描（趋势、最新状态）
    "CREATE INDEX IF NOT EXISTS idx_samples_source_ts ON samples(source_id, observed_at, id)",
    # 按时间范围扫描（清理、全局统计）
    "CREATE INDEX IF NOT EXISTS idx_samples_ts ON samples(observed_at)",
)

SAMPLE_COLUMNS = "id, source_id, cpu, ram, disk, os, uptime_seconds, observed_at"


def _row_to_sample(row: sqlite3.Row) -> Sample:
    data = dict(row)
    data["observed_at"] = parse_ts(data["observed_at"])
    return Sample(**data)


class Database:
    """数据库操作类"""

    def __init__(
        self,
        db_path: Optional[str] = None,
        timeout: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        初始化数据库

        Args:
            db_path: 数据库文件路径，不指定则从配置加载
            timeout: 等待写锁的超时时间（秒）
            clock: 入库时间来源，默认当前 UTC 时间
        """
        if db_path is None or timeout is None:
            config = get_config()
            db_path = db_path or config.database.path
            timeout = timeout if timeout is not None else config.database.timeout

        self.db_path = Path(db_path)
        self.timeout = timeout
        self.clock = clock or utcnow

        # 确保目录存在
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot open database {self.db_path}: {e}", e) from e
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def get_conn(self, write: bool = False):
        """
        获取数据库连接（上下文管理器，一个代码块一个事务）

        使用方式：
            with db.get_conn(write=True) as conn:
                conn.execute("DELETE ...")
        """
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            yield conn
            conn.commit()
        except (sqlite3.IntegrityError, sqlite3.ProgrammingError):
            conn.rollback()
            raise
        except sqlite3.DatabaseError as e:
            conn.rollback()
            raise StoreUnavailable(f"Database error on {self.db_path}: {e}", e) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_schema(self):
        """建表（幂等），并切换到 WAL 模式使读不阻塞写"""
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.DatabaseError as e:
            raise StoreUnavailable(f"Cannot initialize database {self.db_path}: {e}", e) from e
        finally:
            conn.close()

        with self.get_conn(write=True) as conn:
            for statement in SCHEMA:
                conn.execute(statement)

    # =========================================================================
    # 写入
    # =========================================================================

    def append(
        self,
        sample: Union[SampleIn, Mapping[str, Any]],
        observed_at: Optional[datetime] = None,
    ) -> Sample:
        """
        追加一条样本

        先校验再写入，越界样本不会产生任何写入。
        取 clock() 时，若早于该主机已有的最新样本（时钟回拨），
        则沿用最新样本的时间，保证同一主机的 observed_at 按写入顺序不减。

        Args:
            sample: 样本数据
            observed_at: 入库时间，默认取 clock()；仅供维护工具和测试使用

        Raises:
            SampleValidationError: 字段缺失或越界
            StoreUnavailable: 存储不可用
        """
        validated = validate_sample(sample)
        observed = to_utc(observed_at) if observed_at is not None else to_utc(self.clock())

        with self.get_conn(write=True) as conn:
            if observed_at is None:
                row = conn.execute(
                    "SELECT MAX(observed_at) FROM samples WHERE source_id = ?",
                    (validated.source_id,),
                ).fetchone()
                if row[0] is not None and parse_ts(row[0]) > observed:
                    logger.warning(
                        f"Clock went backwards for {validated.source_id}: "
                        f"{format_ts(observed)} < {row[0]}, keeping last timestamp"
                    )
                    observed = parse_ts(row[0])

            cursor = conn.execute(
                """
                INSERT INTO samples (source_id, cpu, ram, disk, os, uptime_seconds, observed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    validated.source_id,
                    validated.cpu,
                    validated.ram,
                    validated.disk,
                    validated.os,
                    validated.uptime_seconds,
                    format_ts(observed),
                ),
            )
            sample_id = cursor.lastrowid

        return Sample(id=sample_id, observed_at=observed, **validated.model_dump())

    # =========================================================================
    # 查询
    # =========================================================================

    def query(
        self,
        source_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> List[Sample]:
        """
        查询样本，按 observed_at 升序（同一时间按入库顺序）

        Args:
            source_id: 主机标识，为空则查询所有主机
            since: 开始时间（包含）
            until: 结束时间（不包含）
        """
        where = []
        params: List[Any] = []
        if source_id is not None:
            where.append("source_id = ?")
            params.append(source_id)
        if since is not None:
            where.append("observed_at >= ?")
            params.append(format_ts(since))
        if until is not None:
            where.append("observed_at < ?")
            params.append(format_ts(until))

        sql = f"SELECT {SAMPLE_COLUMNS} FROM samples"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY observed_at ASC, id ASC"

        if conn is not None:
            return [_row_to_sample(row) for row in conn.execute(sql, params).fetchall()]
        with self.get_conn() as conn:
            return [_row_to_sample(row) for row in conn.execute(sql, params).fetchall()]

    def latest_samples(
        self,
        source_id: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Dict[str, Sample]:
        """
        每台主机最新的一条样本（按 source_id 排序）

        同一主机时间戳相同时，后入库的样本（id 更大）胜出。
        """
        params: List[Any] = []
        where = ""
        if source_id is not None:
            where = "WHERE source_id = ?"
            params.append(source_id)

        sql = f"""
            SELECT {SAMPLE_COLUMNS} FROM (
                SELECT {SAMPLE_COLUMNS},
                       ROW_NUMBER() OVER (
                           PARTITION BY source_id
                           ORDER BY observed_at DESC, id DESC
                       ) AS rn
                FROM samples
                {where}
            )
            WHERE rn = 1
            ORDER BY source_id
        """

        if conn is not None:
            rows = conn.execute(sql, params).fetchall()
        else:
            with self.get_conn() as conn:
                rows = conn.execute(sql, params).fetchall()
        return {row["source_id"]: _row_to_sample(row) for row in rows}

    def list_sources(self) -> List[str]:
        """获取所有有样本的主机"""
        with self.get_conn() as conn:
            cursor = conn.execute("SELECT DISTINCT source_id FROM samples ORDER BY source_id")
            return [row["source_id"] for row in cursor.fetchall()]

    def count_samples(self, source_id: Optional[str] = None) -> int:
        """样本总数"""
        with self.get_conn() as conn:
            if source_id is None:
                cursor = conn.execute("SELECT COUNT(*) FROM samples")
            else:
                cursor = conn.execute("SELECT COUNT(*) FROM samples WHERE source_id = ?", (source_id,))
            return cursor.fetchone()[0]

    # =========================================================================
    # 删除
    # =========================================================================

    def delete_where(
        self,
        source_id: Optional[str] = None,
        before: Optional[datetime] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """
        删除样本

        Args:
            source_id: 只删除该主机的样本
            before: 只删除 observed_at 早于该时间的样本（不包含）

        Returns:
            删除的样本数

        Raises:
            InvalidRangeError: 未指定任何条件
        """
        if source_id is None and before is None:
            raise InvalidRangeError("delete_where requires source_id or before")

        where = []
        params: List[Any] = []
        if source_id is not None:
            where.append("source_id = ?")
            params.append(source_id)
        if before is not None:
            where.append("observed_at < ?")
            params.append(format_ts(before))

        sql = "DELETE FROM samples WHERE " + " AND ".join(where)

        if conn is not None:
            return conn.execute(sql, params).rowcount
        with self.get_conn(write=True) as conn:
            return conn.execute(sql, params).rowcount


# 全局数据库实例（延迟加载）
_db: Optional[Database] = None


def get_db() -> Database:
    """获取全局数据库实例（首次获取时建表）"""
    global _db
    if _db is None:
        db = Database()
        db.init_schema()
        _db = db
        logger.info(f"Database initialized: {db.db_path}")
    return _db


def reset_db():
    """重置数据库实例（主要用于测试）"""
    global _db
    _db = None
