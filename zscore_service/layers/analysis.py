"""
Layer 4 – 信号分析层
把各板块最新 Z-Score 读数转换为展示用的信号标签，并按读数排序
"""

from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from zscore_service.models.series import Sector, ZScorePoint

CYCLICAL_LOW = "CYCLICAL LOW"
CHEAP = "CHEAP"
EXTENDED = "EXTENDED"
NEUTRAL = "NEUTRAL"

_MISSING_SORT_KEY = 999.0


class Reading(BaseModel):
    ticker: str
    name: str
    color: str
    value: Optional[float] = None
    signal: Optional[str] = None
    tone: str = "neutral"


def classify_signal(value: float) -> str:
    """< -2 周期低点，< -1 偏便宜，> 2 过度延伸，其余中性"""
    if value < -2:
        return CYCLICAL_LOW
    if value < -1:
        return CHEAP
    if value > 2:
        return EXTENDED
    return NEUTRAL


def value_tone(value: Optional[float]) -> str:
    if value is None:
        return "neutral"
    if value < -1:
        return "negative"
    if value > 1:
        return "positive"
    return "neutral"


def current_value(points: Optional[Sequence[ZScorePoint]]) -> Optional[float]:
    """最新读数：序列最后一个点的值；无数据时为 None"""
    if not points:
        return None
    return points[-1].value


def build_readings(
    sectors: Sequence[Sector],
    series: Dict[str, Sequence[ZScorePoint]],
) -> List[Reading]:
    """按最新读数升序排列（最便宜在前），无读数的板块排在最后"""
    readings = []
    for sector in sectors:
        value = current_value(series.get(sector.ticker))
        readings.append(Reading(
            ticker=sector.ticker,
            name=sector.name,
            color=sector.color,
            value=value,
            signal=classify_signal(value) if value is not None else None,
            tone=value_tone(value),
        ))
    readings.sort(key=lambda r: _MISSING_SORT_KEY if r.value is None else r.value)
    return readings
