"""
板块选择服务
维护静态板块目录与用户当前选中的板块集合（含自定义代码），
选择状态通过持久化后端保存，进程重启后恢复。
"""

import json
import logging
import random
from typing import List, Optional, Tuple

from zscore_service.db.blob_store import BlobStore
from zscore_service.models.series import Sector

logger = logging.getLogger(__name__)

STATE_KEY = "sector_selection"

AVAILABLE_SECTORS: Tuple[Sector, ...] = (
    Sector(ticker="XLB", name="Materials", color="#f97316"),
    Sector(ticker="XLE", name="Energy", color="#3b82f6"),
    Sector(ticker="XLF", name="Financials", color="#a855f7"),
    Sector(ticker="XLI", name="Industrials", color="#06b6d4"),
    Sector(ticker="XLK", name="Technology", color="#10b981"),
    Sector(ticker="XLP", name="Consumer Staples", color="#f59e0b"),
    Sector(ticker="XLU", name="Utilities", color="#6366f1"),
    Sector(ticker="XLV", name="Healthcare", color="#ec4899"),
    Sector(ticker="XLY", name="Consumer Disc", color="#14b8a6"),
    Sector(ticker="XLRE", name="Real Estate", color="#8b5cf6"),
    Sector(ticker="XLC", name="Communication", color="#f43f5e"),
    Sector(ticker="SMH", name="Semiconductors", color="#22d3ee"),
    Sector(ticker="XHB", name="Homebuilders", color="#a3e635"),
    Sector(ticker="XOP", name="Oil & Gas E&P", color="#fbbf24"),
    Sector(ticker="XME", name="Metals & Mining", color="#fb923c"),
    Sector(ticker="KRE", name="Regional Banks", color="#c084fc"),
    Sector(ticker="XBI", name="Biotech", color="#f472b6"),
    Sector(ticker="ITB", name="Home Construction", color="#4ade80"),
    Sector(ticker="IYT", name="Transportation", color="#38bdf8"),
)

DEFAULT_ACTIVE = ("XLB", "XLE", "XLF")


def find_sector(ticker: str) -> Optional[Sector]:
    ticker = ticker.strip().upper()
    return next((s for s in AVAILABLE_SECTORS if s.ticker == ticker), None)


def generate_color() -> str:
    return f"hsl({random.uniform(0, 360):.0f}, 70%, 60%)"


class SectorService:
    """当前选中板块集合；同一 ticker 至多出现一次"""

    def __init__(self, store: Optional[BlobStore] = None):
        self._store = store
        self._active: List[Sector] = []

    @property
    def catalog(self) -> Tuple[Sector, ...]:
        return AVAILABLE_SECTORS

    @property
    def active(self) -> List[Sector]:
        return list(self._active)

    @property
    def tickers(self) -> List[str]:
        return [s.ticker for s in self._active]

    def is_active(self, ticker: str) -> bool:
        ticker = ticker.strip().upper()
        return any(s.ticker == ticker for s in self._active)

    # ── 持久化 ────────────────────────────────────────────

    async def load(self) -> List[Sector]:
        """恢复已保存的选择；无保存记录时使用默认板块，记录损坏时为空"""
        raw = None
        if self._store is not None:
            try:
                raw = await self._store.get(STATE_KEY)
            except Exception as exc:
                logger.warning(f"板块选择读取失败: {exc}")
                self._active = []
                return self.active

        if not raw:
            self._active = [s for s in (find_sector(t) for t in DEFAULT_ACTIVE) if s]
            return self.active

        try:
            saved = json.loads(raw).get("activeSectors") or []
            sectors = [Sector(**item) for item in saved]
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning(f"板块选择记录损坏，已重置: {exc}")
            sectors = []

        self._active = []
        for sector in sectors:
            if not self.is_active(sector.ticker):
                self._active.append(sector)
        return self.active

    async def save(self) -> None:
        if self._store is None:
            return
        payload = {"activeSectors": [s.model_dump() for s in self._active]}
        try:
            await self._store.set(STATE_KEY, json.dumps(payload, ensure_ascii=False))
        except Exception as exc:
            logger.warning(f"板块选择保存失败: {exc}")

    # ── 选择操作 ──────────────────────────────────────────

    async def toggle(self, ticker: str) -> bool:
        """
        切换目录中板块的选中状态，返回切换后是否选中

        Raises:
            KeyError: ticker 不在目录中
        """
        ticker = ticker.strip().upper()
        if self.is_active(ticker):
            self._active = [s for s in self._active if s.ticker != ticker]
            await self.save()
            return False

        sector = find_sector(ticker)
        if sector is None:
            raise KeyError(ticker)
        self._active.append(sector)
        await self.save()
        return True

    async def add_custom(self, ticker: str, name: str = "") -> Sector:
        """
        添加自定义代码；目录内代码按切换处理，已选中的代码不重复添加

        Raises:
            ValueError: ticker 为空
        """
        ticker = ticker.strip().upper()
        if not ticker:
            raise ValueError("ticker 不能为空")

        existing = next((s for s in self._active if s.ticker == ticker), None)
        if existing is not None:
            return existing

        if find_sector(ticker) is not None:
            await self.toggle(ticker)
            return find_sector(ticker)

        sector = Sector(
            ticker=ticker,
            name=name.strip() or ticker,
            color=generate_color(),
            custom=True,
        )
        self._active.append(sector)
        await self.save()
        logger.info(f"已添加自定义板块 {ticker}")
        return sector

    async def remove_custom(self, ticker: str) -> bool:
        ticker = ticker.strip().upper()
        before = len(self._active)
        self._active = [s for s in self._active if not (s.ticker == ticker and s.custom)]
        if len(self._active) == before:
            return False
        await self.save()
        return True
