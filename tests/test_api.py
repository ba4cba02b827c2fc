"""
配置模块与 HTTP 路由测试（TestClient，不需要真实数据库与网络）
"""

import os
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import StubOrchestrator, make_weekly, wavy_closes, yahoo_payload
from zscore_service.errors import AllSourcesFailed, TransportError
from zscore_service.layers.acquisition import FetchOrchestrator
from zscore_service.layers.cache import CacheStore
from zscore_service.layers.sources import YahooClient
from zscore_service.models.response import ApiResponse
from zscore_service.services.signal_service import SignalService

BENCH = make_weekly([100.0] * 260)
SECTOR = make_weekly(wavy_closes(260))


# ─────────────────────────────────────────────────────────
# 1. 配置模块测试
# ─────────────────────────────────────────────────────────

class TestConfig:
    def test_defaults(self):
        """默认配置不依赖外部服务即可实例化"""
        from zscore_service.config import ZscoreServiceSettings
        s = ZscoreServiceSettings()
        assert s.PORT == 8002
        assert s.MONGODB_DATABASE == "sector_zscore"
        assert s.CACHE_TTL == 6 * 3600
        assert s.ZSCORE_CLAMP == 4.0

    def test_policy_from_environment(self):
        """±6 / 24h / 关闭竞速 等部署差异通过环境变量切换"""
        from zscore_service.config import ZscoreServiceSettings
        env = {"ZSCORE_CLAMP": "6", "CACHE_TTL": "86400", "FETCH_RACE_PATHS": "false"}
        with patch.dict(os.environ, env, clear=False):
            s = ZscoreServiceSettings()
        assert s.ZSCORE_CLAMP == 6.0
        assert s.CACHE_TTL == 86400
        assert s.FETCH_RACE_PATHS is False

    def test_mongo_uri_with_auth(self):
        from zscore_service.config import ZscoreServiceSettings
        s = ZscoreServiceSettings(
            MONGODB_USERNAME="user",
            MONGODB_PASSWORD="pass",
            MONGODB_HOST="db-host",
            MONGODB_PORT=27017,
            MONGODB_DATABASE="mydb",
        )
        assert "user:pass@db-host:27017/mydb" in s.MONGO_URI

    def test_redis_url_with_auth(self):
        from zscore_service.config import ZscoreServiceSettings
        s = ZscoreServiceSettings(REDIS_PASSWORD="secret", REDIS_HOST="cache", REDIS_PORT=6379)
        assert ":secret@cache:6379" in s.REDIS_URL

    def test_docker_service_discovery(self):
        """Docker 环境下默认使用服务名而非 localhost"""
        with patch.dict(os.environ, {"DOCKER_CONTAINER": "true"}, clear=False):
            from zscore_service import config as cfg_module
            assert cfg_module._default_mongo_host() == "mongodb"
            assert cfg_module._default_redis_host() == "redis"


class TestApiResponse:
    def test_ok_with_warnings(self):
        r = ApiResponse.ok(data={"key": "value"}, warnings=["XLE: 数据加载失败"])
        assert r.success is True
        assert r.warnings == ["XLE: 数据加载失败"]

    def test_fail(self):
        r = ApiResponse.fail(error="not found")
        assert r.success is False
        assert r.error == "not found"
        assert r.warnings == []


# ─────────────────────────────────────────────────────────
# 2. HTTP 路由测试
# ─────────────────────────────────────────────────────────

@pytest.fixture
def client():
    """创建测试客户端，mock 数据库连接，关闭持久化"""
    from zscore_service.config import settings
    with patch("zscore_service.db.init_mongodb", new_callable=AsyncMock, return_value=False), \
         patch("zscore_service.db.init_redis", new_callable=AsyncMock, return_value=False), \
         patch("zscore_service.db.close_connections", new_callable=AsyncMock), \
         patch("zscore_service.db.check_health", new_callable=AsyncMock, return_value={
             "mongodb": {"status": "disabled"},
             "redis": {"status": "disabled"},
         }), \
         patch.object(settings, "PERSISTENCE_BACKEND", "none"):
        from zscore_service.main import app
        with TestClient(app) as c:
            yield c


def _use_prices(client, prices):
    orch = StubOrchestrator(prices)
    client.app.state.signal_service = SignalService(orch)
    return orch


class TestHealthRoutes:
    def test_health_endpoint(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["status"] == "ok"
        assert body["data"]["cache"]["backend"] == "memory"
        assert "X-Process-Time" in resp.headers

    def test_probes(self, client):
        assert client.get("/healthz").json() == {"status": "ok"}
        assert client.get("/readyz").json() == {"ready": True}

    def test_root_endpoint(self, client):
        body = client.get("/").json()
        assert body["service"] == "Sector Z-Score Service"
        assert body["docs"] == "/docs"


class TestSectorRoutes:
    def test_defaults(self, client):
        data = client.get("/api/sectors").json()["data"]
        assert [s["ticker"] for s in data["active"]] == ["XLB", "XLE", "XLF"]
        assert len(data["catalog"]) == 19
        xlk = next(s for s in data["catalog"] if s["ticker"] == "XLK")
        assert xlk["active"] is False

    def test_toggle(self, client):
        resp = client.post("/api/sectors/xlk/toggle")
        assert resp.status_code == 200
        assert resp.json()["data"] == {"ticker": "XLK", "active": True}
        resp = client.post("/api/sectors/XLB/toggle")
        assert resp.json()["data"]["active"] is False

    def test_toggle_unknown(self, client):
        assert client.post("/api/sectors/NOPE/toggle").status_code == 404

    def test_custom_lifecycle(self, client):
        resp = client.post("/api/sectors/custom", json={"ticker": "arkk", "name": "Innovation"})
        assert resp.status_code == 200
        assert resp.json()["data"]["ticker"] == "ARKK"
        assert resp.json()["data"]["custom"] is True

        assert client.delete("/api/sectors/custom/ARKK").status_code == 200
        assert client.delete("/api/sectors/custom/ARKK").status_code == 404

    def test_custom_empty_ticker(self, client):
        assert client.post("/api/sectors/custom", json={"ticker": "  "}).status_code == 400


class TestSignalRoutes:
    def test_partial_failure_reported_as_warning(self, client):
        _use_prices(client, {
            "SPY": BENCH,
            "XLB": SECTOR,
            "XLE": SECTOR,
            "XLF": AllSourcesFailed("XLF", TransportError("down")),
        })
        resp = client.get("/api/signals")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["warnings"] == ["XLF: 数据加载失败"]

        panels = {p["ticker"]: p for p in body["data"]["sectors"]}
        assert panels["XLB"]["status"] == "ok"
        assert panels["XLB"]["points"]
        assert panels["XLF"]["status"] == "failed"
        assert panels["XLF"]["error"] == "all_sources_failed"
        assert panels["XLF"]["points"] == []
        assert body["data"]["readings"][-1]["ticker"] == "XLF"
        assert body["data"]["return_weeks"] == 52
        assert body["data"]["zscore_weeks"] == 156

    def test_benchmark_failure_is_502(self, client):
        _use_prices(client, {"SPY": AllSourcesFailed("SPY", TransportError("down"))})
        resp = client.get("/api/signals")
        assert resp.status_code == 502
        assert "SPY" in resp.json()["detail"]

    def test_custom_parameters(self, client):
        orch = _use_prices(client, {"QQQ": BENCH, "XLB": SECTOR, "XLE": SECTOR, "XLF": SECTOR})
        resp = client.get("/api/signals", params={
            "benchmark": "qqq", "return_years": 0.5, "zscore_years": 2,
        })
        data = resp.json()["data"]
        assert data["benchmark"] == "QQQ"
        assert data["return_weeks"] == 26
        assert data["zscore_weeks"] == 104
        assert orch.requested[0] == "QQQ"

    def test_invalid_parameters(self, client):
        _use_prices(client, {"SPY": BENCH})
        assert client.get("/api/signals", params={"return_years": 0}).status_code == 422
        assert client.get("/api/signals", params={"return_years": 0.001}).status_code == 400

    def test_latest(self, client):
        _use_prices(client, {"SPY": BENCH, "XLB": SECTOR, "XLE": SECTOR, "XLF": SECTOR})
        assert client.get("/api/signals/latest").status_code == 404
        client.get("/api/signals")
        resp = client.get("/api/signals/latest")
        assert resp.status_code == 200
        assert len(resp.json()["data"]["sectors"]) == 3

    def test_deselected_sector_dropped_from_latest(self, client):
        _use_prices(client, {"SPY": BENCH, "XLB": SECTOR, "XLE": SECTOR, "XLF": SECTOR})
        client.get("/api/signals")
        client.post("/api/sectors/XLE/toggle")
        tickers = [p["ticker"] for p in client.get("/api/signals/latest").json()["data"]["sectors"]]
        assert tickers == ["XLB", "XLF"]

    def test_end_to_end_with_mock_transport(self, client):
        """真实编排器 + Yahoo 客户端，网络由 MockTransport 替代"""
        def handler(request):
            ticker = request.url.path.rsplit("/", 1)[-1]
            points = BENCH if ticker == "SPY" else SECTOR
            return httpx.Response(200, text=yahoo_payload(points))

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        cache = CacheStore(ttl=3600)
        orch = FetchOrchestrator(
            [YahooClient(http, paths=["{url}"])], cache, retry_delay=0
        )
        client.app.state.cache = cache
        client.app.state.signal_service = SignalService(orch)

        body = client.get("/api/signals").json()
        assert body["warnings"] == []
        assert all(p["status"] == "ok" for p in body["data"]["sectors"])

        stats = client.get("/api/cache/stats").json()["data"]
        assert stats["entries"] == 4
        assert stats["fresh"] == 4
        client.portal.call(http.aclose)


class TestCacheRoutes:
    def test_clear_single_key_then_all(self, client):
        cache = CacheStore(ttl=3600)
        client.app.state.cache = cache
        client.portal.call(cache.put, "yahoo:XLK", SECTOR)
        client.portal.call(cache.put, "stooq:XLE", SECTOR)

        resp = client.post("/api/cache/clear", json={"source": "yahoo", "ticker": "xlk"})
        assert resp.json()["data"] == {"removed": 1}
        resp = client.post("/api/cache/clear", json={})
        assert resp.json()["data"] == {"removed": 1}
        assert client.get("/api/cache/stats").json()["data"]["entries"] == 0
