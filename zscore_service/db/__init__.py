"""
持久化后端连接
Redis 与 MongoDB 只用于保存价格缓存快照和板块选择，两者均可选；
连接失败时返回 False，由 blob_store 退回文件持久化。
"""

import logging
from typing import Awaitable, Callable, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from redis.asyncio import ConnectionPool, Redis

from zscore_service.config import settings

logger = logging.getLogger(__name__)

# ── 连接实例（生命周期内初始化） ───────────────────────────
_mongo_client: Optional[AsyncIOMotorClient] = None
_mongo_db: Optional[AsyncIOMotorDatabase] = None
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_mongodb() -> bool:
    """连接 MongoDB 并 ping 一次；未启用或失败时返回 False"""
    global _mongo_client, _mongo_db
    if not settings.MONGODB_ENABLED:
        logger.info("MongoDB 未启用")
        return False

    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        serverSelectionTimeoutMS=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
        connectTimeoutMS=settings.MONGO_CONNECT_TIMEOUT_MS,
    )
    try:
        await client.admin.command("ping")
    except Exception as exc:
        logger.warning(f"MongoDB 不可用，快照不会写入 MongoDB: {exc}")
        client.close()
        return False

    _mongo_client = client
    _mongo_db = client[settings.MONGODB_DATABASE]
    logger.info(f"MongoDB 已连接: {settings.MONGODB_HOST}:{settings.MONGODB_PORT}/{settings.MONGODB_DATABASE}")
    return True


async def init_redis() -> bool:
    """连接 Redis 并 ping 一次；未启用或失败时返回 False"""
    global _redis_pool, _redis_client
    if not settings.REDIS_ENABLED:
        logger.info("Redis 未启用")
        return False

    pool = ConnectionPool.from_url(
        settings.REDIS_URL,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        decode_responses=True,
        socket_connect_timeout=5,
    )
    client = Redis(connection_pool=pool)
    try:
        await client.ping()
    except Exception as exc:
        logger.warning(f"Redis 不可用，快照不会写入 Redis: {exc}")
        await client.aclose()
        await pool.disconnect()
        return False

    _redis_pool, _redis_client = pool, client
    logger.info(f"Redis 已连接: {settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}")
    return True


async def close_connections() -> None:
    global _mongo_client, _mongo_db, _redis_pool, _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        await _redis_pool.disconnect()
        _redis_pool = _redis_client = None
    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = _mongo_db = None
    logger.info("持久化连接已关闭")


def get_mongo_db() -> Optional[AsyncIOMotorDatabase]:
    return _mongo_db


def get_redis() -> Optional[Redis]:
    return _redis_client


async def _probe(enabled: bool, ping: Optional[Callable[[], Awaitable]], host: str) -> dict:
    if ping is None:
        return {"status": "disconnected" if enabled else "disabled"}
    try:
        await ping()
    except Exception as exc:
        return {"status": "unhealthy", "error": str(exc)}
    return {"status": "healthy", "host": host}


async def check_health() -> dict:
    """各持久化后端的连接状态：disabled / disconnected / healthy / unhealthy"""
    mongo_ping = (lambda: _mongo_client.admin.command("ping")) if _mongo_client else None
    redis_ping = _redis_client.ping if _redis_client else None
    return {
        "mongodb": await _probe(settings.MONGODB_ENABLED, mongo_ping, settings.MONGODB_HOST),
        "redis": await _probe(settings.REDIS_ENABLED, redis_ping, settings.REDIS_HOST),
    }
