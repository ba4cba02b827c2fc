"""
板块 Z-Score 信号服务
基于周线价格计算板块相对基准的标准化强弱信号（Z-Score），并在不可靠的多源行情数据下保持数据新鲜

架构分层：
  数据获取层 (Acquisition)  → Yahoo / Stooq 多源拉取，重试 + 多路竞速
  缓存层     (Cache)        → TTL 缓存，可持久化到 Redis / MongoDB / 文件
  处理层     (Processing)   → 滚动收益 → 相对收益 → 滚动 Z-Score → 月度重采样
  分析层     (Analysis)     → 信号读数分类
"""

__version__ = "1.0.0"
