"""
信号批量计算服务
先顺序获取基准（所有板块计算都依赖它），再并发获取并计算每个板块。
单个板块失败只产生该板块的"无数据"结果，不影响其他板块。
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from zscore_service.errors import AllSourcesFailed
from zscore_service.layers.acquisition import FetchOrchestrator
from zscore_service.layers.analysis import current_value
from zscore_service.layers.processing import compute_sector_signal
from zscore_service.models.series import PricePoint, ZScorePoint

logger = logging.getLogger(__name__)

ERROR_ALL_SOURCES_FAILED = "all_sources_failed"
ERROR_TRANSFORM_FAILED = "transform_failed"
ERROR_FETCH_FAILED = "fetch_failed"


class SignalResult(BaseModel):
    """单个板块的结果：points 为空表示无信号或失败，error 为终态错误标签"""
    ticker: str
    points: List[ZScorePoint] = Field(default_factory=list)
    error: Optional[str] = None
    detail: Optional[str] = None

    @property
    def has_data(self) -> bool:
        return bool(self.points)

    @property
    def current(self) -> Optional[float]:
        return current_value(self.points)


class BatchResult(BaseModel):
    benchmark: str
    benchmark_points: int
    return_weeks: int
    zscore_weeks: int
    updated_at: datetime
    results: Dict[str, SignalResult]

    @property
    def failed(self) -> List[str]:
        return [t for t, r in self.results.items() if not r.has_data]


class SignalService:
    """批量协调器，持有最近一次批量结果"""

    def __init__(self, orchestrator: FetchOrchestrator, clamp: float = 4.0):
        self._orchestrator = orchestrator
        self._clamp = clamp
        self._lock = asyncio.Lock()
        self.latest: Optional[BatchResult] = None

    @property
    def orchestrator(self) -> FetchOrchestrator:
        return self._orchestrator

    @property
    def refreshing(self) -> bool:
        return self._lock.locked()

    async def refresh(
        self,
        benchmark: str,
        tickers: Iterable[str],
        return_weeks: int,
        zscore_weeks: int,
    ) -> BatchResult:
        """
        刷新一批板块的 Z-Score

        Args:
            benchmark: 基准代码
            tickers: 板块代码（重复代码只计算一次）
            return_weeks: 滚动收益回看周数
            zscore_weeks: Z-Score 窗口周数

        Raises:
            AllSourcesFailed: 基准获取失败，整批无法计算
        """
        async with self._lock:
            benchmark = benchmark.strip().upper()
            bench_prices = await self._orchestrator.fetch_prices(benchmark)
            logger.info(f"已加载基准 {benchmark}：{len(bench_prices)} 周")

            unique = list(dict.fromkeys(t.strip().upper() for t in tickers if t.strip()))
            async with asyncio.TaskGroup() as tg:
                tasks = {
                    ticker: tg.create_task(
                        self._compute(ticker, bench_prices, return_weeks, zscore_weeks)
                    )
                    for ticker in unique
                }

            batch = BatchResult(
                benchmark=benchmark,
                benchmark_points=len(bench_prices),
                return_weeks=return_weeks,
                zscore_weeks=zscore_weeks,
                updated_at=datetime.now(tz=timezone.utc),
                results={ticker: task.result() for ticker, task in tasks.items()},
            )
            if batch.failed:
                logger.warning(f"以下板块无数据: {', '.join(batch.failed)}")
            self.latest = batch
            return batch

    async def _compute(
        self,
        ticker: str,
        bench_prices: List[PricePoint],
        return_weeks: int,
        zscore_weeks: int,
    ) -> SignalResult:
        try:
            prices = await self._orchestrator.fetch_prices(ticker)
        except AllSourcesFailed as exc:
            logger.warning(f"{ticker} 加载失败: {exc}")
            return SignalResult(ticker=ticker, error=ERROR_ALL_SOURCES_FAILED, detail=str(exc))
        except Exception as exc:
            logger.error(f"{ticker} 加载异常: {exc}", exc_info=True)
            return SignalResult(ticker=ticker, error=ERROR_FETCH_FAILED, detail=repr(exc))

        try:
            points = compute_sector_signal(
                prices, bench_prices, return_weeks, zscore_weeks, self._clamp
            )
        except Exception as exc:
            logger.error(f"{ticker} 信号计算失败: {exc}", exc_info=True)
            return SignalResult(ticker=ticker, error=ERROR_TRANSFORM_FAILED, detail=str(exc))
        return SignalResult(ticker=ticker, points=points)

    def discard(self, ticker: str) -> None:
        """板块取消选择后移除其最近结果"""
        if self.latest is None:
            return
        ticker = ticker.strip().upper()
        results = {t: r for t, r in self.latest.results.items() if t != ticker}
        self.latest = self.latest.model_copy(update={"results": results})
