"""
样本接收 API

主机 Agent 每个周期推送一条样本。
"""

from fastapi import APIRouter, Depends, status

from ...database import Database
from ...ingest import ingest_sample
from ...models import Sample, SampleIn
from ..dependencies import get_database

router = APIRouter(prefix="/api/samples", tags=["samples"])


@router.post("", response_model=Sample, status_code=status.HTTP_201_CREATED)
def create_sample(payload: SampleIn, db: Database = Depends(get_database)):
    """
    接收一条样本

    observed_at 由服务端生成；字段越界返回 422，样本不会入库。
    """
    return ingest_sample(db, payload)
