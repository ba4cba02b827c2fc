"""
缓存管理路由
GET  /api/cache/stats     - 缓存统计
POST /api/cache/clear     - 清理缓存
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from zscore_service.layers.cache import CacheStore
from zscore_service.models.response import ApiResponse
from zscore_service.routers.deps import get_cache_store

router = APIRouter(prefix="/api/cache", tags=["缓存管理"])


class ClearRequest(BaseModel):
    source: Optional[str] = None
    ticker: Optional[str] = None


@router.get("/stats", response_model=ApiResponse)
async def cache_stats(cache: CacheStore = Depends(get_cache_store)):
    """获取价格缓存统计信息"""
    return ApiResponse.ok(data=cache.stats())


@router.post("/clear", response_model=ApiResponse)
async def clear_cache(body: ClearRequest, cache: CacheStore = Depends(get_cache_store)):
    """清理指定 数据源:代码 的缓存；未指定时清空全部"""
    key = None
    if body.source and body.ticker:
        key = CacheStore.make_key(body.source, body.ticker)
    removed = await cache.clear(key)
    return ApiResponse.ok(
        data={"removed": removed},
        message=f"缓存已清理: {key or '全部'}",
    )
