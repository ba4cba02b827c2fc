"""
Layer 2 – 缓存层
以 "数据源:代码" 为键缓存价格序列；新鲜度在读取时惰性判断，无后台淘汰。
每次成功写入后将整个缓存序列化到持久化后端，启动时加载并丢弃已过期条目。

并发约定：同一键上的并发写入（刷新风暴中的重复请求）按最后写入为准，
各条目是同一逻辑数据的快照，幂等覆盖不会破坏缓存。
"""

import asyncio
import json
import logging
import time
from typing import Callable, Dict, Optional, Sequence

from zscore_service.db.blob_store import BlobStore
from zscore_service.models.series import CacheEntry, PricePoint

logger = logging.getLogger(__name__)

_BLOB_KEY = "price_cache"


class CacheStore:
    """价格序列 TTL 缓存"""

    def __init__(
        self,
        ttl: float,
        backend: Optional[BlobStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._ttl = ttl
        self._backend = backend
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._persist_lock = asyncio.Lock()

    @staticmethod
    def make_key(source_tag: str, ticker: str) -> str:
        return f"{source_tag}:{ticker.upper()}"

    @property
    def ttl(self) -> float:
        return self._ttl

    def is_fresh(self, entry: CacheEntry, ttl: Optional[float] = None) -> bool:
        ttl = self._ttl if ttl is None else ttl
        return self._clock() - entry.timestamp < ttl

    def get(self, key: str) -> Optional[CacheEntry]:
        """读取新鲜条目；过期条目视为不存在"""
        entry = self._entries.get(key)
        if entry is None or not self.is_fresh(entry):
            return None
        logger.debug(f"缓存命中: {key}")
        return entry

    async def put(self, key: str, series: Sequence[PricePoint]) -> CacheEntry:
        entry = CacheEntry(key=key, timestamp=self._clock(), data=tuple(series))
        self._entries[key] = entry
        logger.debug(f"缓存写入: {key}（{len(entry.data)} 条）")
        await self._persist()
        return entry

    async def clear(self, key: Optional[str] = None) -> int:
        """清理单个键或全部条目，返回清理数量"""
        if key is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            removed = 1 if self._entries.pop(key, None) is not None else 0
        await self._persist()
        return removed

    def stats(self) -> dict:
        fresh = sum(1 for e in self._entries.values() if self.is_fresh(e))
        return {
            "entries": len(self._entries),
            "fresh": fresh,
            "ttl_seconds": self._ttl,
            "backend": self._backend.name if self._backend else "memory",
        }

    # ── 持久化 ────────────────────────────────────────────

    def dumps(self) -> str:
        payload = {
            key: {
                "timestamp": entry.timestamp,
                "data": [
                    {"date": p.date.isoformat(), "close": p.close} for p in entry.data
                ],
            }
            for key, entry in self._entries.items()
        }
        return json.dumps(payload)

    def loads(self, raw: str) -> int:
        """从序列化快照恢复，跳过过期或损坏条目，返回恢复数量"""
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("缓存快照顶层必须为对象")
        restored = 0
        for key, doc in payload.items():
            try:
                entry = CacheEntry(
                    key=key,
                    timestamp=float(doc["timestamp"]),
                    data=tuple(PricePoint(**p) for p in doc["data"]),
                )
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(f"丢弃损坏的缓存条目 {key}: {exc}")
                continue
            if not self.is_fresh(entry):
                continue
            self._entries[key] = entry
            restored += 1
        return restored

    async def load(self) -> int:
        if self._backend is None:
            return 0
        try:
            raw = await self._backend.get(_BLOB_KEY)
        except Exception as exc:
            logger.warning(f"缓存快照读取失败（{self._backend.name}）: {exc}")
            return 0
        if not raw:
            return 0
        try:
            restored = self.loads(raw)
        except ValueError as exc:
            logger.warning(f"缓存快照格式错误，已忽略: {exc}")
            return 0
        logger.info(f"缓存快照已加载（{self._backend.name}），恢复 {restored} 条")
        return restored

    async def _persist(self) -> None:
        if self._backend is None:
            return
        async with self._persist_lock:
            try:
                await self._backend.set(_BLOB_KEY, self.dumps())
            except Exception as exc:
                logger.warning(f"缓存快照写入失败（{self._backend.name}）: {exc}")
