"""
持久化边界：整块读写的键值存储

价格缓存快照与用户板块选择都以 JSON 字符串整体存取，
后端按 Redis → MongoDB → 文件 的顺序降级选择。
"""

import logging
import os
from typing import Optional

from zscore_service.db import get_mongo_db, get_redis

logger = logging.getLogger(__name__)

_MONGO_COLLECTION = "blob_store"


class BlobStore:
    """键值存储接口：get 返回整块字符串，set 覆盖整块"""

    name = "base"

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def set(self, key: str, value: str) -> None:
        raise NotImplementedError


class FileBlobStore(BlobStore):
    name = "file"

    def __init__(self, directory: str):
        self._dir = directory

    def _path(self, key: str) -> str:
        safe = key.replace(":", "_").replace("/", "_")
        return os.path.join(self._dir, f"{safe}.json")

    async def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as fh:
            return fh.read()

    async def set(self, key: str, value: str) -> None:
        os.makedirs(self._dir, exist_ok=True)
        # 临时文件 + 原子替换
        path = self._path(key)
        tmp = f"{path}.tmp"
        with open(tmp, "w", encoding="utf-8") as fh:
            fh.write(value)
        os.replace(tmp, path)


class RedisBlobStore(BlobStore):
    name = "redis"

    def __init__(self, redis, prefix: str = "zscore:"):
        self._redis = redis
        self._prefix = prefix

    async def get(self, key: str) -> Optional[str]:
        return await self._redis.get(self._prefix + key)

    async def set(self, key: str, value: str) -> None:
        await self._redis.set(self._prefix + key, value)


class MongoBlobStore(BlobStore):
    name = "mongodb"

    def __init__(self, db):
        self._collection = db[_MONGO_COLLECTION]

    async def get(self, key: str) -> Optional[str]:
        doc = await self._collection.find_one({"key": key})
        return doc.get("value") if doc else None

    async def set(self, key: str, value: str) -> None:
        await self._collection.update_one(
            {"key": key},
            {"$set": {"key": key, "value": value}},
            upsert=True,
        )


def build_blob_store(backend: str, cache_dir: str) -> Optional[BlobStore]:
    """
    按配置选择持久化后端

    Args:
        backend: auto / redis / mongodb / file / none
        cache_dir: 文件后端目录

    auto 模式下优先使用已连接的 Redis，其次 MongoDB，最后退回文件；
    显式指定的后端不可用时同样退回文件。
    """
    backend = backend.lower()
    if backend == "none":
        return None

    redis = get_redis()
    db = get_mongo_db()
    if backend in ("auto", "redis") and redis is not None:
        return RedisBlobStore(redis)
    if backend in ("auto", "mongodb") and db is not None:
        return MongoBlobStore(db)
    if backend not in ("auto", "file"):
        logger.warning(f"持久化后端 {backend} 不可用，降级为文件模式")
    return FileBlobStore(cache_dir)
