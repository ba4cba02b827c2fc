"""
行情获取错误分类

  TransportError         网络 / 超时 / 非 2xx，可在同一数据源内重试
  FormatError            响应结构不符合该数据源的预期格式，不重试
  InsufficientDataError  解析后序列长度不足，不重试
  AllSourcesFailed       所有数据源均失败（终态，编排层抛出）
"""

from typing import Optional


class FetchError(Exception):
    """数据源客户端错误基类"""

    def __init__(self, message: str, source: str = "", ticker: str = ""):
        super().__init__(message)
        self.source = source
        self.ticker = ticker


class TransportError(FetchError):
    pass


class FormatError(FetchError):
    pass


class InsufficientDataError(FetchError):
    pass


class AllSourcesFailed(Exception):
    """单个代码在所有数据源上均获取失败"""

    def __init__(self, ticker: str, last_error: Optional[Exception]):
        self.ticker = ticker
        self.last_error = last_error
        super().__init__(f"{ticker}: 所有数据源均失败（最后错误：{last_error}）")
