"""
板块选择路由
GET    /api/sectors                  - 板块目录与当前选择
POST   /api/sectors/{ticker}/toggle  - 切换目录板块
POST   /api/sectors/custom           - 添加自定义代码
DELETE /api/sectors/custom/{ticker}  - 移除自定义代码
"""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from zscore_service.models.response import ApiResponse
from zscore_service.routers.deps import get_sector_service, get_signal_service
from zscore_service.services.sector_service import SectorService
from zscore_service.services.signal_service import SignalService

router = APIRouter(prefix="/api/sectors", tags=["板块选择"])


class CustomSectorRequest(BaseModel):
    ticker: str
    name: str = ""


@router.get("", response_model=ApiResponse)
async def list_sectors(sectors: SectorService = Depends(get_sector_service)):
    return ApiResponse.ok(data={
        "catalog": [
            {**s.model_dump(), "active": sectors.is_active(s.ticker)} for s in sectors.catalog
        ],
        "active": [s.model_dump() for s in sectors.active],
    })


@router.post("/{ticker}/toggle", response_model=ApiResponse)
async def toggle_sector(
    ticker: str,
    sectors: SectorService = Depends(get_sector_service),
    signals: SignalService = Depends(get_signal_service),
):
    try:
        active = await sectors.toggle(ticker)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"目录中不存在板块 {ticker.upper()}",
        )
    if not active:
        signals.discard(ticker)
    return ApiResponse.ok(
        data={"ticker": ticker.upper(), "active": active},
        message="已选中" if active else "已取消选中",
    )


@router.post("/custom", response_model=ApiResponse)
async def add_custom_sector(
    body: CustomSectorRequest,
    sectors: SectorService = Depends(get_sector_service),
):
    try:
        sector = await sectors.add_custom(body.ticker, body.name)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return ApiResponse.ok(data=sector.model_dump(), message=f"已添加 {sector.ticker}")


@router.delete("/custom/{ticker}", response_model=ApiResponse)
async def remove_custom_sector(
    ticker: str,
    sectors: SectorService = Depends(get_sector_service),
    signals: SignalService = Depends(get_signal_service),
):
    if not await sectors.remove_custom(ticker):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"未找到自定义板块 {ticker.upper()}",
        )
    signals.discard(ticker)
    return ApiResponse.ok(message=f"已移除 {ticker.upper()}")
