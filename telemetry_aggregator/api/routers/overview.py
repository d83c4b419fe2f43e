"""
全局概览 API

提供全局统计值和全局趋势（所有主机样本混合平均）。
"""

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...aggregator import overview_stats, rollup
from ...config import get_config
from ...database import Database
from ...liveness import LivenessClassifier
from ...models import LivenessState, OverviewResponse, RollupResponse
from ...utils import ceil_to_hour
from ..dependencies import get_database, get_liveness_classifier, get_now

router = APIRouter(prefix="/api/overview", tags=["overview"])


@router.get("", response_model=OverviewResponse)
def get_overview(
    hours: Optional[int] = Query(None, ge=1, le=720, description="统计窗口小时数，默认取配置"),
    db: Database = Depends(get_database),
    classifier: LivenessClassifier = Depends(get_liveness_classifier),
    now: datetime = Depends(get_now),
):
    """
    获取全局概览

    total_sources 为窗口内有样本的主机数；states 为当前各在线状态的主机数。
    """
    hours = hours or get_config().rollup.window_hours
    stats = overview_stats(db, now, timedelta(hours=hours))

    states = {state.value: 0 for state in LivenessState}
    for record in classifier.classify(db, now):
        states[record.state.value] += 1

    return OverviewResponse(stats=stats, states=states)


@router.get("/rollup", response_model=RollupResponse)
def get_overview_rollup(
    hours: Optional[int] = Query(None, ge=1, le=720, description="窗口小时数，默认取配置"),
    bucket_minutes: Optional[int] = Query(None, ge=1, le=1440, description="分桶宽度（分钟），默认取配置"),
    db: Database = Depends(get_database),
    now: datetime = Depends(get_now),
):
    """获取全局趋势（每个桶一个全局平均值）"""
    hours = hours or get_config().rollup.window_hours
    bucket_minutes = bucket_minutes or get_config().rollup.bucket_minutes
    window_end = ceil_to_hour(now)
    window_start = window_end - timedelta(hours=hours)
    buckets = rollup(db, window_start, window_end, timedelta(minutes=bucket_minutes))
    return RollupResponse(
        window_start=window_start,
        window_end=window_end,
        bucket_minutes=bucket_minutes,
        data=buckets,
    )
