"""
Layer 1a – 数据源客户端
每个客户端只负责一个上游：构造周线历史请求、校验响应结构、解析为价格序列。
客户端不感知缓存、重试和其他数据源。

  YahooClient : 主数据源，JSON（chart API），带 chart.error 错误字段
  StooqClient : 备用数据源，CSV，首行以 "Date," 开头
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from io import StringIO
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote, urlencode

import httpx
import pandas as pd

from zscore_service.errors import (
    FetchError,
    FormatError,
    InsufficientDataError,
    TransportError,
)
from zscore_service.models.series import PricePoint

logger = logging.getLogger(__name__)

_YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/"
_STOOQ_HISTORY_URL = "https://stooq.com/q/d/l/"
_DAYS_PER_YEAR = 365.25


# ── 解析结果（带标签） ─────────────────────────────────────

@dataclass(frozen=True)
class ParsedOk:
    series: List[PricePoint]


@dataclass(frozen=True)
class ParsedError:
    reason: str
    insufficient: bool = False

    def to_exception(self, source: str, ticker: str) -> FetchError:
        cls = InsufficientDataError if self.insufficient else FormatError
        return cls(f"{source}: {self.reason}", source=source, ticker=ticker)


ParseResult = Union[ParsedOk, ParsedError]


def normalize_prices(records: List[Dict[str, Any]], min_points: int) -> ParseResult:
    """
    将 (date, close) 记录标准化为价格序列

    丢弃日期无效、收盘价缺失或非正的记录；重复日期保留最后一条；按日期升序。
    """
    df = pd.DataFrame(records, columns=["date", "close"])
    df["close"] = pd.to_numeric(df["close"], errors="coerce")
    df["date"] = pd.to_datetime(df["date"], errors="coerce")
    df = df.dropna(subset=["date", "close"])
    df = df[df["close"] > 0].copy()
    df["date"] = df["date"].dt.date
    df = df.drop_duplicates(subset=["date"], keep="last")
    df = df.sort_values("date").reset_index(drop=True)

    if len(df) < min_points:
        return ParsedError(f"数据点过少（{len(df)} < {min_points}）", insufficient=True)
    return ParsedOk([
        PricePoint(date=d, close=float(c)) for d, c in zip(df["date"], df["close"])
    ])


class SourceClient:
    """数据源客户端基类"""

    tag = "base"
    headers: Dict[str, str] = {}

    def __init__(
        self,
        http: httpx.AsyncClient,
        paths: Optional[List[str]] = None,
        min_points: int = 60,
    ):
        self._http = http
        self.paths = list(paths or ["{url}"])
        self._min_points = min_points

    def build_url(
        self, ticker: str, lookback_years: int, now: Optional[datetime] = None
    ) -> str:
        raise NotImplementedError

    def parse(self, ticker: str, body: str) -> ParseResult:
        raise NotImplementedError

    def path_url(self, url: str, path: str) -> str:
        """将原始地址套入网络路径模板（直连或代理镜像）"""
        return path.format(url=url, quoted=quote(url, safe=""))

    async def fetch(
        self, ticker: str, lookback_years: int, path: Optional[str] = None
    ) -> List[PricePoint]:
        """
        拉取并解析单个代码的周线历史

        Raises:
            TransportError: 网络异常、超时或非 2xx 响应
            FormatError: 响应不是该数据源可识别的结构
            InsufficientDataError: 有效数据点少于下限
        """
        url = self.path_url(self.build_url(ticker, lookback_years), path or self.paths[0])
        try:
            resp = await self._http.get(url, headers=self.headers)
        except httpx.HTTPError as exc:
            raise TransportError(
                f"{self.tag}: 请求失败 {exc!r}", source=self.tag, ticker=ticker
            ) from exc
        if not resp.is_success:
            raise TransportError(
                f"{self.tag}: HTTP {resp.status_code}", source=self.tag, ticker=ticker
            )

        result = self.parse(ticker, resp.text)
        if isinstance(result, ParsedError):
            raise result.to_exception(self.tag, ticker)
        logger.debug(f"{self.tag} 解析成功: {ticker} 共 {len(result.series)} 周")
        return result.series


# ── Yahoo Finance ─────────────────────────────────────────

class YahooClient(SourceClient):
    tag = "yahoo"
    headers = {"Accept": "application/json", "User-Agent": "Mozilla/5.0"}

    def build_url(
        self, ticker: str, lookback_years: int, now: Optional[datetime] = None
    ) -> str:
        now = now or datetime.now(tz=timezone.utc)
        period2 = int(now.timestamp())
        period1 = period2 - int(lookback_years * _DAYS_PER_YEAR * 24 * 60 * 60)
        params = {
            "period1": period1,
            "period2": period2,
            "interval": "1wk",
            "includeAdjustedClose": "true",
        }
        return f"{_YAHOO_CHART_URL}{quote(ticker, safe='')}?{urlencode(params)}"

    def parse(self, ticker: str, body: str) -> ParseResult:
        text = body.strip()
        if not text.startswith(("{", "[")):
            return ParsedError("返回非 JSON 内容（可能被限流或代理异常）")
        try:
            payload = json.loads(text)
        except ValueError as exc:
            return ParsedError(f"JSON 解析失败: {exc}")

        chart = payload.get("chart") if isinstance(payload, dict) else None
        if not isinstance(chart, dict):
            return ParsedError("缺少 chart 字段")
        error = chart.get("error")
        if error:
            detail = error.get("description") or error.get("code") if isinstance(error, dict) else error
            return ParsedError(f"上游错误: {detail}")

        results = chart.get("result")
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            return ParsedError("缺少 chart.result[0]")
        result = results[0]

        timestamps = result.get("timestamp") or []
        if not isinstance(timestamps, list):
            return ParsedError("timestamp 字段格式错误")
        indicators = result.get("indicators") or {}
        if not isinstance(indicators, dict):
            return ParsedError("indicators 字段格式错误")
        closes = (
            _first_column(indicators.get("adjclose"), "adjclose")
            or _first_column(indicators.get("quote"), "close")
            or []
        )
        dates = pd.to_datetime(
            pd.to_numeric(pd.Series(timestamps, dtype="object"), errors="coerce"),
            unit="s",
            utc=True,
            errors="coerce",
        )
        records = [{"date": d, "close": c} for d, c in zip(dates, closes)]
        return normalize_prices(records, self._min_points)


def _first_column(blocks: Any, field: str) -> Optional[list]:
    if isinstance(blocks, list) and blocks and isinstance(blocks[0], dict):
        values = blocks[0].get(field)
        if isinstance(values, list):
            return values
    return None


# ── Stooq ─────────────────────────────────────────────────

def to_stooq_symbol(ticker: str) -> str:
    """Stooq 美股代码约定：XLK → xlk.us；带后缀的代码原样小写"""
    t = ticker.strip().lower()
    if "." in t:
        return t
    return f"{t}.us"


class StooqClient(SourceClient):
    tag = "stooq"

    def build_url(
        self, ticker: str, lookback_years: int, now: Optional[datetime] = None
    ) -> str:
        now = now or datetime.now(tz=timezone.utc)
        start = now - timedelta(days=lookback_years * _DAYS_PER_YEAR)
        params = {
            "s": to_stooq_symbol(ticker),
            "i": "w",
            "d1": start.strftime("%Y%m%d"),
            "d2": now.strftime("%Y%m%d"),
        }
        return f"{_STOOQ_HISTORY_URL}?{urlencode(params)}"

    def parse(self, ticker: str, body: str) -> ParseResult:
        text = body.strip()
        if not text.startswith("Date,"):
            return ParsedError("返回内容不是预期的 CSV（缺少 Date 表头）")
        try:
            df = pd.read_csv(StringIO(text))
        except ValueError as exc:
            return ParsedError(f"CSV 解析失败: {exc}")
        if "Close" not in df.columns:
            return ParsedError("CSV 缺少 Close 列")

        records = df[["Date", "Close"]].rename(
            columns={"Date": "date", "Close": "close"}
        ).to_dict("records")
        return normalize_prices(records, self._min_points)
