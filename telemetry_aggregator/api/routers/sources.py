"""
主机 API

提供每台主机的最新状态、在线状态、原始历史和趋势。
"""

from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...aggregator import rollup
from ...config import get_config
from ...database import Database
from ...errors import SourceNotFound
from ...latest import latest_all, latest_one
from ...liveness import LivenessClassifier
from ...models import HistoryResponse, RollupResponse, Sample, SourceResponse
from ...utils import ceil_to_hour
from ..dependencies import get_database, get_liveness_classifier, get_now

router = APIRouter(prefix="/api/sources", tags=["sources"])


def to_source_response(sample: Sample, classifier: LivenessClassifier, now: datetime) -> SourceResponse:
    record = classifier.record(sample, now)
    return SourceResponse(
        source_id=sample.source_id,
        state=record.state,
        last_seen_at=record.last_seen_at,
        latest=sample,
    )


def get_latest_or_404(db: Database, source_id: str) -> Sample:
    try:
        return latest_one(db, source_id)
    except SourceNotFound as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )


@router.get("", response_model=List[SourceResponse])
def list_sources(
    db: Database = Depends(get_database),
    classifier: LivenessClassifier = Depends(get_liveness_classifier),
    now: datetime = Depends(get_now),
):
    """
    获取所有主机及最新状态

    每次请求实时计算，不做缓存。
    """
    return [
        to_source_response(sample, classifier, now)
        for sample in latest_all(db).values()
    ]


@router.get("/{source_id}", response_model=SourceResponse)
def get_source(
    source_id: str,
    db: Database = Depends(get_database),
    classifier: LivenessClassifier = Depends(get_liveness_classifier),
    now: datetime = Depends(get_now),
):
    """获取单台主机详情"""
    return to_source_response(get_latest_or_404(db, source_id), classifier, now)


@router.get("/{source_id}/history", response_model=HistoryResponse)
def get_history(
    source_id: str,
    hours: int = Query(24, ge=1, le=720, description="回溯小时数"),
    db: Database = Depends(get_database),
    now: datetime = Depends(get_now),
):
    """获取主机最近 N 小时的原始样本（按时间升序）"""
    get_latest_or_404(db, source_id)
    samples = db.query(source_id=source_id, since=now - timedelta(hours=hours))
    return HistoryResponse(source_id=source_id, hours=hours, data=samples)


@router.get("/{source_id}/rollup", response_model=RollupResponse)
def get_source_rollup(
    source_id: str,
    hours: Optional[int] = Query(None, ge=1, le=720, description="窗口小时数，默认取配置"),
    bucket_minutes: Optional[int] = Query(None, ge=1, le=1440, description="分桶宽度（分钟），默认取配置"),
    db: Database = Depends(get_database),
    now: datetime = Depends(get_now),
):
    """
    获取单台主机的趋势

    窗口结束于下一个整点，桶边界与整点对齐。
    """
    get_latest_or_404(db, source_id)
    hours = hours or get_config().rollup.window_hours
    bucket_minutes = bucket_minutes or get_config().rollup.bucket_minutes
    window_end = ceil_to_hour(now)
    window_start = window_end - timedelta(hours=hours)
    buckets = rollup(db, window_start, window_end, timedelta(minutes=bucket_minutes), source_id=source_id)
    return RollupResponse(
        source_id=source_id,
        window_start=window_start,
        window_end=window_end,
        bucket_minutes=bucket_minutes,
        data=buckets,
    )
