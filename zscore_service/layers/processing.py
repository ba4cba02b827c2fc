"""
Layer 3 – Z-Score 变换流水线
纯函数，无 I/O，给定输入结果确定：

  rolling_return → relative_return → rolling_zscore → resample_monthly

统计上的边界情况（方差过低、窗口不足）一律以"省略该点"处理，不抛出异常。
"""

import logging
import math
from typing import List, Sequence, TypeVar

import pandas as pd

from zscore_service.models.series import (
    PricePoint,
    RelativeReturnPoint,
    ReturnPoint,
    ZScorePoint,
)

logger = logging.getLogger(__name__)

WEEKS_PER_YEAR = 52
MIN_ZSCORE_WINDOW = 20      # 窗口内至少 20 个值才计算
DEAD_STD = 0.5              # std <= 0.5 视为无信号
ALIGN_TOLERANCE_DAYS = 7    # 基准对齐向前最多回溯 7 天
SHORT_HISTORY_RATIO = 0.3

_P = TypeVar("_P")


def weeks_from_years(years: float) -> int:
    return int(round(years * WEEKS_PER_YEAR))


def _frame(points: Sequence, column: str) -> pd.DataFrame:
    return pd.DataFrame({
        "date": pd.to_datetime([p.date for p in points]),
        column: [getattr(p, column) for p in points],
    })


def rolling_return(series: Sequence[PricePoint], lag_weeks: int) -> List[ReturnPoint]:
    """
    滚动收益：对每个 i >= lag，value = (close[i] / close[i-lag] - 1) * 100

    输出日期取 series[i].date，顺序与输入一致；任一收盘价缺失的点被跳过。
    """
    if lag_weeks < 1:
        raise ValueError(f"lag_weeks 必须为正整数: {lag_weeks}")
    if len(series) <= lag_weeks:
        return []

    df = _frame(series, "close")
    prev = df["close"].shift(lag_weeks)
    df["value"] = (df["close"] / prev - 1) * 100
    df = df.iloc[lag_weeks:]
    df = df[prev.iloc[lag_weeks:].gt(0) & df["close"].gt(0)].dropna(subset=["value"])
    return [
        ReturnPoint(date=d.date(), value=float(v))
        for d, v in zip(df["date"], df["value"])
    ]


def relative_return(
    sector_returns: Sequence[ReturnPoint],
    bench_returns: Sequence[ReturnPoint],
) -> List[RelativeReturnPoint]:
    """
    相对收益：板块收益减去同日基准收益

    同日无基准值时向前回溯最多 7 天取最近的基准日期；仍无则丢弃该点。
    用于补偿不同数据源交易日历 / 周线采样边界的偏移。
    """
    if not sector_returns or not bench_returns:
        return []

    sector = _frame(sector_returns, "value")
    bench = _frame(bench_returns, "value").rename(columns={"value": "bench"})
    bench = bench.sort_values("date").drop_duplicates(subset=["date"], keep="last")
    sector["order"] = range(len(sector))

    merged = pd.merge_asof(
        sector.sort_values("date", kind="stable"),
        bench,
        on="date",
        direction="backward",
        tolerance=pd.Timedelta(days=ALIGN_TOLERANCE_DAYS),
    )
    merged = merged.dropna(subset=["bench"]).sort_values("order")
    return [
        RelativeReturnPoint(date=d.date(), value=float(v - b))
        for d, v, b in zip(merged["date"], merged["value"], merged["bench"])
    ]


def rolling_zscore(
    relative_returns: Sequence[ReturnPoint],
    window_weeks: int,
    clamp: float = 4.0,
) -> List[ZScorePoint]:
    """
    滚动 Z-Score

    起始下标 = min(window, floor(0.3 * n))，使较短历史也能产出结果；
    对下标 i 取其之前最多 window 个值（严格不含当前点）作为窗口，
    窗口不足 20 个值或总体标准差 <= 0.5 时跳过该点；
    Z = clamp((value - mean) / std, -clamp, clamp)。
    """
    if clamp <= 0:
        raise ValueError(f"clamp 必须为正数: {clamp}")
    n = len(relative_returns)
    # 窗口容量不足 20 时永远无法满足最小样本要求
    if n == 0 or window_weeks < MIN_ZSCORE_WINDOW:
        return []

    values = pd.Series([p.value for p in relative_returns], dtype="float64")
    trailing = values.shift(1).rolling(window=window_weeks, min_periods=MIN_ZSCORE_WINDOW)
    mean = trailing.mean()
    std = trailing.std(ddof=0)

    start = min(window_weeks, math.floor(SHORT_HISTORY_RATIO * n))
    eligible = std.gt(DEAD_STD) & (values.index >= start)
    z = ((values - mean) / std).clip(lower=-clamp, upper=clamp)

    out = []
    for i in eligible[eligible].index:
        out.append(ZScorePoint(
            date=relative_returns[i].date,
            value=float(z.iloc[i]),
            relative_return=float(values.iloc[i]),
        ))
    return out


def resample_monthly(points: Sequence[_P]) -> List[_P]:
    """每个自然月保留输入顺序中的最后一个点，结果按日期升序（幂等）"""
    if not points:
        return []
    months = pd.Series(pd.to_datetime([p.date for p in points])).dt.to_period("M")
    last_positions = pd.Series(range(len(points))).groupby(months, sort=False).last()
    chosen = [points[i] for i in last_positions]
    return sorted(chosen, key=lambda p: p.date)


def compute_sector_signal(
    sector_prices: Sequence[PricePoint],
    benchmark_prices: Sequence[PricePoint],
    return_lag_weeks: int,
    zscore_window_weeks: int,
    clamp: float = 4.0,
) -> List[ZScorePoint]:
    """板块价格 + 基准价格 → 月度 Z-Score 序列"""
    sector_returns = rolling_return(sector_prices, return_lag_weeks)
    bench_returns = rolling_return(benchmark_prices, return_lag_weeks)
    relative = relative_return(sector_returns, bench_returns)
    zscores = rolling_zscore(relative, zscore_window_weeks, clamp)
    logger.debug(
        f"信号计算: 收益 {len(sector_returns)} / 相对 {len(relative)} / Z {len(zscores)}"
    )
    return resample_monthly(zscores)
