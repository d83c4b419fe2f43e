"""
Telemetry Aggregator - 主机资源遥测聚合服务

负责：
- 接收各主机推送的 CPU/RAM/磁盘 样本并入库
- 计算每台主机的最新状态与在线状态（online/offline/inactive）
- 按小时分桶计算单机与全局趋势
- 定期清理过期样本与长期失联的主机
- 提供 REST API 给前端
"""

__version__ = "1.0.0"
