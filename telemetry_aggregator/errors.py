"""
异常定义

核心操作要么返回完整结果，要么抛出以下类型化异常，不做静默降级。
"""

from typing import Optional


class TelemetryError(Exception):
    """所有遥测核心异常的基类"""


class SampleValidationError(TelemetryError):
    """样本字段缺失或越界（样本不会入库）"""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class InvalidRangeError(TelemetryError):
    """时间窗口、分桶宽度或删除条件不合法"""


class SourceNotFound(TelemetryError):
    """指定主机没有任何样本"""

    def __init__(self, source_id: str):
        self.source_id = source_id
        super().__init__(f"Source '{source_id}' not found")


class StoreUnavailable(TelemetryError):
    """底层存储不可用（不在核心内重试，由调用方决定）"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class ConfigurationError(TelemetryError):
    """阈值等配置不合法"""
