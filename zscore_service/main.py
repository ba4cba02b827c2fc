"""
板块 Z-Score 信号服务
FastAPI 应用程序入口

启动方式:
    uvicorn zscore_service.main:app --host 0.0.0.0 --port 8002
    python -m zscore_service.main
"""

import logging
import time
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from zscore_service import __version__
from zscore_service import db
from zscore_service.config import ZscoreServiceSettings, settings
from zscore_service.db.blob_store import build_blob_store
from zscore_service.layers.acquisition import FetchOrchestrator
from zscore_service.layers.cache import CacheStore
from zscore_service.layers.sources import StooqClient, YahooClient
from zscore_service.routers import cache, health, sectors, signals
from zscore_service.services.sector_service import SectorService
from zscore_service.services.signal_service import SignalService

# ── 日志配置 ──────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def build_services(app: FastAPI, cfg: ZscoreServiceSettings, http: httpx.AsyncClient) -> None:
    """按配置构建缓存、数据源、编排器与服务，挂载到 app.state"""
    store = build_blob_store(cfg.PERSISTENCE_BACKEND, cfg.CACHE_DIR)
    price_cache = CacheStore(ttl=cfg.CACHE_TTL, backend=store)
    await price_cache.load()

    orchestrator = FetchOrchestrator(
        sources=[
            YahooClient(http, paths=cfg.YAHOO_PATHS, min_points=cfg.MIN_PRICE_POINTS),
            StooqClient(http, paths=cfg.STOOQ_PATHS, min_points=cfg.MIN_PRICE_POINTS),
        ],
        cache=price_cache,
        lookback_years=cfg.LOOKBACK_YEARS,
        retry_attempts=cfg.FETCH_RETRY_ATTEMPTS,
        retry_delay=cfg.FETCH_RETRY_DELAY,
        timeout=cfg.FETCH_TIMEOUT,
        race_paths=cfg.FETCH_RACE_PATHS,
    )
    sector_service = SectorService(store)
    await sector_service.load()

    app.state.cache = price_cache
    app.state.signal_service = SignalService(orchestrator, clamp=cfg.ZSCORE_CLAMP)
    app.state.sector_service = sector_service
    logger.info(
        f"持久化后端: {store.name if store else '无'}，"
        f"已选板块: {', '.join(sector_service.tickers) or '无'}"
    )


# ── 生命周期管理 ──────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用启动/关闭生命周期钩子"""
    logger.info("=" * 60)
    logger.info(f"Sector Z-Score Service v{__version__} 启动中")
    logger.info(f"   Clamp     : ±{settings.ZSCORE_CLAMP}")
    logger.info(f"   Cache TTL : {settings.CACHE_TTL}s")
    logger.info(f"   Race paths: {settings.FETCH_RACE_PATHS}")
    logger.info("=" * 60)

    # 持久化后端连接失败不阻断启动，降级运行
    mongo_ok = await db.init_mongodb()
    redis_ok = await db.init_redis()
    if not (mongo_ok or redis_ok):
        logger.info("Redis / MongoDB 均未连接，持久化使用文件模式")

    http = httpx.AsyncClient(timeout=settings.FETCH_TIMEOUT, follow_redirects=True)
    await build_services(app, settings, http)

    yield

    logger.info("服务正在关闭...")
    await http.aclose()
    await db.close_connections()
    logger.info("服务已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="Sector Z-Score Service",
    description=(
        "板块相对强弱 Z-Score 信号服务：\n"
        "- 周线价格（Yahoo 主源 / Stooq 备用源，重试 + 多路竞速）\n"
        "- TTL 价格缓存（Redis / MongoDB / 文件持久化）\n"
        "- 滚动收益 → 相对收益 → 滚动 Z-Score → 月度重采样\n"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS 中间件 ───────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── 请求计时中间件 ─────────────────────────────────────────
@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
    return response


# ── 全局异常处理 ──────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"未处理的异常: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "内部服务错误", "message": str(exc)},
    )


# ── 注册路由 ──────────────────────────────────────────────
app.include_router(health.router)
app.include_router(signals.router)
app.include_router(sectors.router)
app.include_router(cache.router)


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "Sector Z-Score Service",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "zscore_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
