"""
路由依赖：从应用状态中取出生命周期内构建的服务实例
服务在 lifespan 中显式构建并挂载到 app.state，不使用模块级全局单例
"""

from fastapi import Request

from zscore_service.layers.cache import CacheStore
from zscore_service.services.sector_service import SectorService
from zscore_service.services.signal_service import SignalService


def get_signal_service(request: Request) -> SignalService:
    return request.app.state.signal_service


def get_sector_service(request: Request) -> SectorService:
    return request.app.state.sector_service


def get_cache_store(request: Request) -> CacheStore:
    return request.app.state.cache
