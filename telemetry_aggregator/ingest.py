"""
样本接收

主机按固定周期推送样本（push 模式），每次调用只处理一条。
observed_at 由服务端生成，客户端提供的时间戳一律忽略。
"""

import logging
from typing import Any, Mapping, Union

from .database import Database
from .errors import SampleValidationError
from .models import Sample, SampleIn

logger = logging.getLogger(__name__)


def ingest_sample(db: Database, payload: Union[SampleIn, Mapping[str, Any]]) -> Sample:
    """
    接收一条样本并入库

    Raises:
        SampleValidationError: 字段缺失或越界
        StoreUnavailable: 存储不可用
    """
    if not isinstance(payload, SampleIn):
        payload = {k: v for k, v in dict(payload).items() if k not in ("id", "observed_at")}

    try:
        sample = db.append(payload)
    except SampleValidationError as e:
        source_id = payload.get("source_id") if isinstance(payload, dict) else payload.source_id
        logger.warning(f"Rejected sample from {source_id or '<unknown>'}: {e}")
        raise

    logger.debug(
        f"Ingested sample {sample.id} from {sample.source_id}: "
        f"cpu={sample.cpu} ram={sample.ram} disk={sample.disk}"
    )
    return sample
