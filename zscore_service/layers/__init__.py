"""
数据流分层架构
  Layer 1 – Acquisition  : 数据获取（主源 Yahoo，备用源 Stooq）
  Layer 2 – Cache        : TTL 缓存（内存 + 可选持久化）
  Layer 3 – Processing   : Z-Score 变换流水线（纯函数）
  Layer 4 – Analysis     : 信号读数分类
"""
