"""时间序列数据模型"""

import datetime as dt
from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field


class PricePoint(BaseModel):
    """周线收盘价，生成后不可变"""
    model_config = ConfigDict(frozen=True)

    date: dt.date
    close: float = Field(gt=0)


class ReturnPoint(BaseModel):
    """滚动收益（百分比）"""
    model_config = ConfigDict(frozen=True)

    date: dt.date
    value: float


class RelativeReturnPoint(ReturnPoint):
    """板块收益减去对齐后的基准收益"""


class ZScorePoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: dt.date
    value: float
    relative_return: float


class CacheEntry(BaseModel):
    """缓存条目：data 为只读元组，调用方无法修改缓存内部状态"""
    model_config = ConfigDict(frozen=True)

    key: str
    timestamp: float
    data: Tuple[PricePoint, ...]


class Sector(BaseModel):
    """板块，身份由 ticker 唯一确定"""
    model_config = ConfigDict(frozen=True)

    ticker: str
    name: str
    color: str
    custom: bool = False
