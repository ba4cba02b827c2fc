"""
Z-Score 信号服务配置模块
支持从环境变量读取配置，自动检测 Docker 容器环境并启用服务发现

两种已知部署变体（±4 / 6h / 顺序重试 与 ±6 / 24h / 多路竞速）的差异
均为策略参数，全部通过环境变量调整，不在代码中写死。
"""

import os
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _is_docker() -> bool:
    """检测当前是否运行在 Docker 容器内"""
    return (
        os.path.exists("/.dockerenv")
        or os.environ.get("DOCKER_CONTAINER", "").lower() in ("1", "true", "yes")
    )


def _default_mongo_host() -> str:
    """Docker 环境使用服务名 'mongodb'，本地使用 'localhost'"""
    return "mongodb" if _is_docker() else "localhost"


def _default_redis_host() -> str:
    """Docker 环境使用服务名 'redis'，本地使用 'localhost'"""
    return "redis" if _is_docker() else "localhost"


class ZscoreServiceSettings(BaseSettings):
    """Z-Score 信号服务配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8002)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── MongoDB 配置（支持服务发现） ───────────────────────
    MONGODB_HOST: str = Field(default_factory=_default_mongo_host)
    MONGODB_PORT: int = Field(default=27017)
    MONGODB_USERNAME: str = Field(default="")
    MONGODB_PASSWORD: str = Field(default="")
    MONGODB_DATABASE: str = Field(default="sector_zscore")
    MONGODB_AUTH_SOURCE: str = Field(default="admin")
    MONGODB_ENABLED: bool = Field(default=False)
    MONGO_CONNECT_TIMEOUT_MS: int = Field(default=30000)
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = Field(default=5000)

    @property
    def MONGO_URI(self) -> str:
        if self.MONGODB_USERNAME and self.MONGODB_PASSWORD:
            return (
                f"mongodb://{self.MONGODB_USERNAME}:{self.MONGODB_PASSWORD}"
                f"@{self.MONGODB_HOST}:{self.MONGODB_PORT}"
                f"/{self.MONGODB_DATABASE}?authSource={self.MONGODB_AUTH_SOURCE}"
            )
        return f"mongodb://{self.MONGODB_HOST}:{self.MONGODB_PORT}/{self.MONGODB_DATABASE}"

    # ── Redis 配置（支持服务发现） ─────────────────────────
    REDIS_HOST: str = Field(default_factory=_default_redis_host)
    REDIS_PORT: int = Field(default=6379)
    REDIS_PASSWORD: str = Field(default="")
    REDIS_DB: int = Field(default=0)
    REDIS_ENABLED: bool = Field(default=False)
    REDIS_MAX_CONNECTIONS: int = Field(default=20)

    @property
    def REDIS_URL(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── 持久化 / 缓存配置 ─────────────────────────────────
    # auto: Redis → MongoDB → 文件 依次降级；none: 仅内存
    PERSISTENCE_BACKEND: str = Field(default="auto")
    CACHE_TTL: int = Field(default=6 * 3600)     # 价格序列缓存 TTL（秒）
    CACHE_DIR: str = Field(default="./cache")    # 文件持久化目录

    # ── 数据源配置 ─────────────────────────────────────────
    LOOKBACK_YEARS: int = Field(default=15)
    MIN_PRICE_POINTS: int = Field(default=60)
    FETCH_TIMEOUT: float = Field(default=15.0)        # 单次请求硬超时（秒）
    FETCH_RETRY_ATTEMPTS: int = Field(default=3)
    FETCH_RETRY_DELAY: float = Field(default=0.35)    # 线性退避步长（秒）
    FETCH_RACE_PATHS: bool = Field(default=True)
    # 网络路径模板：{url} 为原始地址，{quoted} 为 URL 编码后的地址
    YAHOO_PATHS: List[str] = Field(
        default_factory=lambda: ["{url}", "https://api.allorigins.win/raw?url={quoted}"]
    )
    STOOQ_PATHS: List[str] = Field(
        default_factory=lambda: ["{url}", "https://api.allorigins.win/raw?url={quoted}"]
    )

    # ── 信号计算配置 ──────────────────────────────────────
    ZSCORE_CLAMP: float = Field(default=4.0)
    DEFAULT_BENCHMARK: str = Field(default="SPY")
    RETURN_YEARS: float = Field(default=1.0)
    ZSCORE_YEARS: float = Field(default=3.0)

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")


@lru_cache
def get_settings() -> ZscoreServiceSettings:
    """获取全局配置（单例）"""
    return ZscoreServiceSettings()


settings = get_settings()
