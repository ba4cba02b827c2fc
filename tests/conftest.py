"""
测试公共设施：周线价格构造、Yahoo / Stooq 响应构造、可编排的假数据源
"""

import asyncio
import json
import math
import os
import sys
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Sequence

# 确保仓库根目录在 sys.path，无论从仓库根目录还是 tests/ 目录运行 pytest
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from zscore_service.layers.sources import SourceClient  # noqa: E402
from zscore_service.models.series import PricePoint  # noqa: E402

START = date(2015, 1, 2)


def make_weekly(closes: Sequence[float], start: date = START) -> List[PricePoint]:
    return [
        PricePoint(date=start + timedelta(weeks=i), close=c) for i, c in enumerate(closes)
    ]


def trending_closes(n: int, weekly_gain: float = 0.001, base: float = 100.0) -> List[float]:
    return [base * (1 + weekly_gain) ** i for i in range(n)]


def wavy_closes(n: int, amplitude: float = 0.01, base: float = 100.0) -> List[float]:
    """带正弦扰动的收盘价，使相对收益具有非零方差"""
    return [base * (1 + amplitude * math.sin(i)) for i in range(n)]


def yahoo_payload(points: Sequence[PricePoint], use_adjclose: bool = True) -> str:
    timestamps = [
        int(datetime.combine(p.date, time(5, 0), tzinfo=timezone.utc).timestamp())
        for p in points
    ]
    closes = [p.close for p in points]
    indicators = {"quote": [{"close": closes}]}
    if use_adjclose:
        indicators["adjclose"] = [{"adjclose": closes}]
    return json.dumps({
        "chart": {
            "result": [{"timestamp": timestamps, "indicators": indicators}],
            "error": None,
        }
    })


def stooq_csv(points: Sequence[PricePoint]) -> str:
    lines = ["Date,Open,High,Low,Close,Volume"]
    for p in points:
        lines.append(f"{p.date.isoformat()},{p.close},{p.close},{p.close},{p.close},1000")
    return "\n".join(lines)


class ScriptedSource(SourceClient):
    """
    按脚本返回结果的假数据源

    outcomes 中的元素依次被消费（最后一个元素重复使用）：
    异常实例则抛出，列表则作为价格序列返回，可调用对象则以 path 调用并 await。
    """

    def __init__(self, tag: str, outcomes: list, paths: Optional[List[str]] = None):
        super().__init__(http=None, paths=paths, min_points=1)
        self.tag = tag
        self._outcomes = list(outcomes)
        self.calls: List[Optional[str]] = []

    async def fetch(self, ticker, lookback_years, path=None):
        self.calls.append(path)
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return await outcome(path)
        return outcome


class StubOrchestrator:
    """按代码返回预置价格序列；值为异常时抛出"""

    def __init__(self, prices: dict, delay: float = 0.0):
        self._prices = prices
        self._delay = delay
        self.requested: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_prices(self, ticker: str):
        self.requested.append(ticker)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._delay:
                await asyncio.sleep(self._delay)
            outcome = self._prices[ticker]
            if isinstance(outcome, Exception):
                raise outcome
            return list(outcome)
        finally:
            self.in_flight -= 1

