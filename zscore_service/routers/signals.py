"""
Z-Score 信号路由
GET /api/signals          - 以当前选中板块刷新并返回信号
GET /api/signals/latest   - 返回最近一次刷新结果（不触发拉取）
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from zscore_service.config import settings
from zscore_service.errors import AllSourcesFailed
from zscore_service.layers.analysis import build_readings
from zscore_service.layers.processing import weeks_from_years
from zscore_service.models.response import ApiResponse
from zscore_service.models.series import Sector
from zscore_service.routers.deps import get_sector_service, get_signal_service
from zscore_service.services.sector_service import SectorService
from zscore_service.services.signal_service import BatchResult, SignalService

router = APIRouter(prefix="/api/signals", tags=["Z-Score 信号"])


def _serialize(batch: BatchResult, sectors: List[Sector]) -> Dict[str, Any]:
    panels = []
    for sector in sectors:
        result = batch.results.get(sector.ticker)
        if result is None:
            state = "pending"
        elif result.has_data:
            state = "ok"
        else:
            state = "failed"
        panels.append({
            **sector.model_dump(),
            "status": state,
            "current": result.current if result else None,
            "error": result.error if result else None,
            "points": [p.model_dump(mode="json") for p in result.points] if result else [],
        })
    series = {t: r.points for t, r in batch.results.items()}
    return {
        "benchmark": batch.benchmark,
        "benchmark_points": batch.benchmark_points,
        "return_weeks": batch.return_weeks,
        "zscore_weeks": batch.zscore_weeks,
        "updated_at": batch.updated_at.isoformat(),
        "sectors": panels,
        "readings": [r.model_dump() for r in build_readings(sectors, series)],
    }


@router.get("", response_model=ApiResponse)
async def refresh_signals(
    benchmark: Optional[str] = Query(default=None, description="基准代码，默认 SPY"),
    return_years: Optional[float] = Query(default=None, gt=0, description="滚动收益年数"),
    zscore_years: Optional[float] = Query(default=None, gt=0, description="Z-Score 窗口年数"),
    signals: SignalService = Depends(get_signal_service),
    sectors: SectorService = Depends(get_sector_service),
):
    """以当前选中的板块刷新 Z-Score 信号"""
    bench = benchmark or settings.DEFAULT_BENCHMARK
    return_weeks = weeks_from_years(return_years or settings.RETURN_YEARS)
    zscore_weeks = weeks_from_years(zscore_years or settings.ZSCORE_YEARS)
    if return_weeks < 1 or zscore_weeks < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="回看周期过短",
        )

    active = sectors.active
    try:
        batch = await signals.refresh(bench, [s.ticker for s in active], return_weeks, zscore_weeks)
    except AllSourcesFailed as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"基准 {exc.ticker} 加载失败: {exc.last_error}",
        )
    return ApiResponse.ok(
        data=_serialize(batch, active),
        message=f"已刷新 {len(active)} 个板块",
        warnings=[f"{t}: 数据加载失败" for t in batch.failed],
    )


@router.get("/latest", response_model=ApiResponse)
async def latest_signals(
    signals: SignalService = Depends(get_signal_service),
    sectors: SectorService = Depends(get_sector_service),
):
    """返回最近一次刷新结果"""
    if signals.latest is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="尚未刷新过信号",
        )
    return ApiResponse.ok(data=_serialize(signals.latest, sectors.active))
