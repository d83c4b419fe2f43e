"""
趋势聚合

将时间窗口按固定宽度分桶，计算每个桶内 CPU/RAM/磁盘 的平均值。
- 指定 source_id 时为单机趋势，否则为全局趋势（所有主机样本混合平均）
- 没有样本的桶不输出，避免图表出现误导性的平线
- 只在输出时保留两位小数，计算过程不做舍入
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .database import Database
from .errors import InvalidRangeError
from .models import Bucket, OverviewStats, Sample
from .utils import to_utc

logger = logging.getLogger(__name__)

PRECISION = 2


def partition_window(
    window_start: datetime,
    window_end: datetime,
    bucket_width: timedelta,
) -> List[Tuple[datetime, datetime]]:
    """
    将 [window_start, window_end) 切分为连续的半开区间

    最后一个桶可能不足 bucket_width，按实际长度保留。

    Raises:
        InvalidRangeError: bucket_width <= 0 或 window_end <= window_start
    """
    if bucket_width <= timedelta(0):
        raise InvalidRangeError(f"bucket_width must be positive, got {bucket_width}")
    window_start = to_utc(window_start)
    window_end = to_utc(window_end)
    if window_end <= window_start:
        raise InvalidRangeError(f"window_end ({window_end}) must be after window_start ({window_start})")

    buckets = []
    start = window_start
    while start < window_end:
        end = min(start + bucket_width, window_end)
        buckets.append((start, end))
        start = end
    return buckets


def calculate_aggregation(samples: Iterable[Sample]) -> Optional[Dict[str, Any]]:
    """
    计算聚合指标（不舍入）

    Args:
        samples: 同一个桶内的样本

    Returns:
        {avg_cpu, avg_ram, avg_disk, sample_count}，没有样本时返回 None
    """
    count = 0
    cpu_sum = ram_sum = disk_sum = 0.0
    for s in samples:
        count += 1
        cpu_sum += s.cpu
        ram_sum += s.ram
        disk_sum += s.disk

    if count == 0:
        return None

    return {
        "avg_cpu": cpu_sum / count,
        "avg_ram": ram_sum / count,
        "avg_disk": disk_sum / count,
        "sample_count": count,
    }


def rollup(
    db: Database,
    window_start: datetime,
    window_end: datetime,
    bucket_width: timedelta = timedelta(hours=1),
    source_id: Optional[str] = None,
) -> List[Bucket]:
    """
    计算趋势分桶，按时间升序

    Args:
        db: 数据库
        window_start: 窗口开始（包含）
        window_end: 窗口结束（不包含）
        bucket_width: 分桶宽度，默认 1 小时
        source_id: 主机标识，为空则计算全局趋势

    Raises:
        InvalidRangeError: 分桶参数不合法
    """
    edges = partition_window(window_start, window_end, bucket_width)
    window_start = edges[0][0]

    # 样本已按 observed_at 升序，按偏移量直接落桶
    grouped: Dict[int, List[Sample]] = {}
    for sample in db.query(source_id=source_id, since=window_start, until=edges[-1][1]):
        index = int((to_utc(sample.observed_at) - window_start) // bucket_width)
        grouped.setdefault(index, []).append(sample)

    result = []
    for index, (start, end) in enumerate(edges):
        agg = calculate_aggregation(grouped.get(index, ()))
        if agg is None:
            continue
        result.append(Bucket(
            bucket_start=start,
            bucket_end=end,
            avg_cpu=round(agg["avg_cpu"], PRECISION),
            avg_ram=round(agg["avg_ram"], PRECISION),
            avg_disk=round(agg["avg_disk"], PRECISION),
            sample_count=agg["sample_count"],
        ))

    logger.debug(
        f"Rollup source={source_id or '*'} window=[{window_start}, {edges[-1][1]}) "
        f"width={bucket_width}: {len(result)}/{len(edges)} buckets"
    )
    return result


def overview_stats(
    db: Database,
    now: datetime,
    window: timedelta = timedelta(hours=24),
) -> OverviewStats:
    """
    全局统计：窗口内所有样本的平均值，以及有样本的主机数

    窗口为 [now - window, now]，晚于 now 的样本不计入。
    total_sources 统计窗口内至少有一条样本的主机，而不是当前在线的主机。

    Raises:
        InvalidRangeError: window <= 0
    """
    if window <= timedelta(0):
        raise InvalidRangeError(f"window must be positive, got {window}")
    now = to_utc(now)
    window_start = now - window

    # 时间戳精确到微秒，until 不包含，所以加 1 微秒把 now 本身包含进来
    samples = db.query(since=window_start, until=now + timedelta(microseconds=1))
    agg = calculate_aggregation(samples)
    if agg is None:
        return OverviewStats(window_start=window_start, window_end=now)

    return OverviewStats(
        window_start=window_start,
        window_end=now,
        avg_cpu=round(agg["avg_cpu"], PRECISION),
        avg_ram=round(agg["avg_ram"], PRECISION),
        avg_disk=round(agg["avg_disk"], PRECISION),
        total_sources=len({s.source_id for s in samples}),
    )
