"""
数据模型定义

包括：
- 样本模型（入库校验 + 存储结构）
- 派生视图模型（最新状态、在线状态、趋势分桶、全局统计、清理结果）
- API 响应模型
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from .errors import SampleValidationError


# =============================================================================
# 样本
# =============================================================================

class SampleIn(BaseModel):
    """主机推送的样本（observed_at 由服务端在入库时生成）"""
    source_id: str = Field(..., min_length=1, description="主机标识（hostname / MAC 等）")
    cpu: float = Field(..., ge=0, le=100, description="CPU 使用率（%）")
    ram: float = Field(..., ge=0, le=100, description="内存使用率（%）")
    disk: float = Field(..., ge=0, le=100, description="磁盘使用率（%）")
    os: str = Field(..., description="操作系统描述")
    # SQLite INTEGER 为 64 位有符号整数
    uptime_seconds: int = Field(..., ge=0, le=2**63 - 1, description="开机时长（秒）")


class Sample(SampleIn):
    """已入库的样本"""
    id: int
    observed_at: datetime


def validate_sample(payload: Union[SampleIn, Mapping[str, Any]]) -> SampleIn:
    """
    校验样本

    Raises:
        SampleValidationError: 第一个不合法的字段
    """
    data = payload.model_dump() if isinstance(payload, BaseModel) else dict(payload)
    try:
        return SampleIn.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(loc) for loc in first["loc"]) or "sample"
        raise SampleValidationError(field, first["msg"]) from e


# =============================================================================
# 派生视图
# =============================================================================

class LivenessState(str, Enum):
    """在线状态"""
    ONLINE = "online"
    OFFLINE = "offline"
    INACTIVE = "inactive"


class LivenessRecord(BaseModel):
    """主机在线状态"""
    source_id: str
    state: LivenessState
    last_seen_at: datetime
    age_seconds: float


class Bucket(BaseModel):
    """趋势分桶（空桶不输出）"""
    bucket_start: datetime
    bucket_end: datetime
    avg_cpu: float
    avg_ram: float
    avg_disk: float
    sample_count: int


class OverviewStats(BaseModel):
    """全局统计（时间窗口内所有主机的平均值）"""
    window_start: datetime
    window_end: datetime
    avg_cpu: Optional[float] = None
    avg_ram: Optional[float] = None
    avg_disk: Optional[float] = None
    total_sources: int = 0


class CleanupResult(BaseModel):
    """一次清理任务的结果"""
    ran_at: datetime
    samples_deleted: int = 0
    sources_fully_removed: List[str] = Field(default_factory=list)


# =============================================================================
# API 响应模型
# =============================================================================

class SourceResponse(BaseModel):
    """主机响应模型（GET /api/sources）"""
    source_id: str
    state: LivenessState
    last_seen_at: datetime
    latest: Sample


class RollupResponse(BaseModel):
    """趋势响应"""
    source_id: Optional[str] = None
    window_start: datetime
    window_end: datetime
    bucket_minutes: int
    data: List[Bucket] = Field(default_factory=list)


class HistoryResponse(BaseModel):
    """原始样本历史"""
    source_id: str
    hours: int
    data: List[Sample] = Field(default_factory=list)


class OverviewResponse(BaseModel):
    """全局概览：统计值 + 各在线状态主机数"""
    stats: OverviewStats
    states: Dict[str, int] = Field(default_factory=dict)
