"""
时间工具函数

样本时间统一使用 UTC，入库格式为定长 ISO 8601（微秒精度），
保证字符串顺序与时间顺序一致，可直接用于范围查询。
"""

from datetime import datetime, timedelta, timezone

TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utcnow() -> datetime:
    """当前 UTC 时间（带时区）"""
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """统一转换为带时区的 UTC 时间，naive 时间视为 UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_ts(value: datetime) -> str:
    """格式化为入库时间戳"""
    return to_utc(value).strftime(TS_FORMAT)


def parse_ts(value: str) -> datetime:
    """解析入库时间戳"""
    return datetime.strptime(value, TS_FORMAT).replace(tzinfo=timezone.utc)


def ceil_to_hour(value: datetime) -> datetime:
    """向上取整到下一个整点（已是整点则不变）"""
    value = to_utc(value)
    floored = value.replace(minute=0, second=0, microsecond=0)
    if floored == value:
        return floored
    return floored + timedelta(hours=1)
