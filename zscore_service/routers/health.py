"""健康检查路由"""

import time

from fastapi import APIRouter, Depends

from zscore_service import __version__
from zscore_service import db
from zscore_service.layers.cache import CacheStore
from zscore_service.routers.deps import get_cache_store

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health(cache: CacheStore = Depends(get_cache_store)):
    """服务健康检查"""
    db_health = await db.check_health()
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "service": "Sector Z-Score Service",
            "databases": db_health,
            "cache": cache.stats(),
        },
        "message": "服务运行正常",
    }


@router.get("/healthz")
async def healthz():
    """Kubernetes liveness probe"""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz():
    """Kubernetes readiness probe"""
    return {"ready": True}
