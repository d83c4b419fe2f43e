"""
维护 API

手动触发一次数据清理（与定时任务共用同一个清理器）。
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status

from ...models import CleanupResult
from ...retention import RetentionManager
from ..dependencies import get_now, get_retention

router = APIRouter(prefix="/api/maintenance", tags=["maintenance"])


@router.post("/cleanup", response_model=CleanupResult)
def trigger_cleanup(
    manager: RetentionManager = Depends(get_retention),
    now: datetime = Depends(get_now),
):
    """立即执行一次清理；已有清理任务在执行时返回 409"""
    result = manager.run_cleanup(now)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cleanup already in progress"
        )
    return result
