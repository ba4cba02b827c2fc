"""
Layer 1b – 数据获取编排
对单个代码产出可用的价格序列：
  1. 依次检查主源 / 备用源缓存键，命中新鲜缓存即返回
  2. 全部未命中时先试主源，失败（任何错误类型）再试备用源
  3. 同一数据源内仅对 TransportError 做有限次线性退避重试
  4. 可选：同一次逻辑请求并发发往多条网络路径，首个结构有效的响应胜出，其余取消
  5. 成功后按胜出数据源的键写入缓存
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Union

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from zscore_service.errors import AllSourcesFailed, FetchError, TransportError
from zscore_service.layers.cache import CacheStore
from zscore_service.layers.sources import SourceClient
from zscore_service.models.series import PricePoint

logger = logging.getLogger(__name__)


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.info(f"第 {state.attempt_number} 次请求失败，准备重试: {exc}")


class FetchOrchestrator:
    """数据获取编排：缓存优先 → 主源 → 备用源"""

    def __init__(
        self,
        sources: Sequence[SourceClient],
        cache: CacheStore,
        lookback_years: int = 15,
        retry_attempts: int = 3,
        retry_delay: float = 0.35,
        timeout: float = 15.0,
        race_paths: bool = True,
    ):
        if not sources:
            raise ValueError("至少需要一个数据源")
        self._sources = list(sources)
        self._cache = cache
        self._lookback_years = lookback_years
        self._retry_attempts = max(1, retry_attempts)
        self._retry_delay = retry_delay
        self._timeout = timeout
        self._race_paths = race_paths

    @property
    def cache(self) -> CacheStore:
        return self._cache

    async def fetch_prices(self, ticker: str) -> List[PricePoint]:
        """
        获取单个代码的周线价格序列

        Raises:
            AllSourcesFailed: 所有数据源均失败，携带最后一个底层错误
        """
        ticker = ticker.strip().upper()

        for client in self._sources:
            entry = self._cache.get(CacheStore.make_key(client.tag, ticker))
            if entry is not None:
                return list(entry.data)

        last_error: Optional[FetchError] = None
        for client in self._sources:
            try:
                series = await self._fetch_with_retry(client, ticker)
            except FetchError as exc:
                logger.warning(f"{client.tag} 获取 {ticker} 失败，尝试下一个数据源: {exc}")
                last_error = exc
                continue
            await self._cache.put(CacheStore.make_key(client.tag, ticker), series)
            logger.info(f"{ticker} 获取成功（来源：{client.tag}），共 {len(series)} 周")
            return series

        raise AllSourcesFailed(ticker, last_error)

    async def _fetch_with_retry(self, client: SourceClient, ticker: str) -> List[PricePoint]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_incrementing(start=self._retry_delay, increment=self._retry_delay),
            retry=retry_if_exception_type(TransportError),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._fetch_once(client, ticker)

    async def _fetch_once(self, client: SourceClient, ticker: str) -> List[PricePoint]:
        """单次尝试，受硬超时约束；超时视为 TransportError"""
        try:
            async with asyncio.timeout(self._timeout):
                if self._race_paths and len(client.paths) > 1:
                    return await self._race(client, ticker)
                return await client.fetch(ticker, self._lookback_years, client.paths[0])
        except TimeoutError as exc:
            raise TransportError(
                f"{client.tag}: 请求超时（{self._timeout}s）", source=client.tag, ticker=ticker
            ) from exc

    async def _race(self, client: SourceClient, ticker: str) -> List[PricePoint]:
        """
        多路竞速：所有网络路径并发请求，首个结构有效的结果胜出

        胜出后立即取消其余路径，被取消路径的结果与异常均不计入。
        全部失败时，若存在传输类错误则抛出 TransportError（可重试），
        否则抛出最后一个结构类错误。
        """
        errors: List[FetchError] = []
        async with asyncio.TaskGroup() as tg:
            tasks = [
                tg.create_task(self._try_path(client, ticker, path))
                for path in client.paths
            ]
            for finished in asyncio.as_completed(tasks):
                outcome = await finished
                if isinstance(outcome, FetchError):
                    errors.append(outcome)
                    continue
                for task in tasks:
                    task.cancel()
                return outcome

        transport = [e for e in errors if isinstance(e, TransportError)]
        raise transport[-1] if transport else errors[-1]

    async def _try_path(
        self, client: SourceClient, ticker: str, path: str
    ) -> Union[List[PricePoint], FetchError]:
        try:
            return await client.fetch(ticker, self._lookback_years, path)
        except FetchError as exc:
            logger.debug(f"{client.tag} 路径 {path} 失败: {exc}")
            return exc
