"""
Market Breadth: API Routes

All HTTP endpoints. Thin layer: delegates to the dashboard engine and
the market analyst.
"""

from __future__ import annotations

import time as _time
from datetime import date
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from market_breadth import __version__
from market_breadth.agents.analyst import MarketAnalyst
from market_breadth.cache import get_cache_store
from market_breadth.config import get_settings
from market_breadth.data import catalog
from market_breadth.data.breadth_client import BreadthSeriesClient
from market_breadth.data.index_client import IndexSeriesClient
from market_breadth.engines.dashboard_engine import DashboardEngine
from market_breadth.engines.sector_engine import SectorRotationEngine
from market_breadth.models import (
    AnalysisRange,
    ChatMessage,
    DashboardConfig,
    DashboardSnapshot,
    SelectedMode,
    TimeRange,
)

APP_START_TIME: float = _time.monotonic()


# ──────────────────────────────────────────────
# Dependencies
# ──────────────────────────────────────────────

@lru_cache
def get_index_client() -> IndexSeriesClient:
    return IndexSeriesClient()


@lru_cache
def get_breadth_client() -> BreadthSeriesClient:
    return BreadthSeriesClient()


def get_dashboard_engine() -> DashboardEngine:
    """A fresh engine per request over the shared fetchers.

    The refresh generation counter lives on the engine, so supersession
    only applies between refreshes of one engine, never across requests.
    """
    return DashboardEngine(get_index_client(), get_breadth_client())


@lru_cache
def get_market_analyst() -> MarketAnalyst:
    return MarketAnalyst(SectorRotationEngine(get_index_client()))


def dashboard_config(
    time_range: TimeRange = Query(TimeRange.Y1, description="1M, 3M, 6M, 1Y, 3Y, 5Y, 7Y"),
    from_date: Optional[date] = Query(None, description="Custom start date (YYYY-MM-DD)"),
    to_date: Optional[date] = Query(None, description="Custom end date (YYYY-MM-DD)"),
    cap_code: str = Query("vnmid"),
    selected_mode: SelectedMode = Query(SelectedMode.SECTOR),
    index_code: str = Query("8300", description="ICB sector code"),
    active_stock: str = Query("PVD"),
    lookback: int = Query(84, ge=1),
    floor: str = Query("hnx,hose,upcom"),
    min_ad_close: float = Query(2),
    max_ad_close: float = Query(500),
    min_ma20: float = Query(50),
    max_ma20: float = Query(200000),
    breadth_url: Optional[str] = Query(None),
    selected_series_url: Optional[str] = Query(None),
) -> DashboardConfig:
    return DashboardConfig(
        time_range=time_range,
        from_date=from_date,
        to_date=to_date,
        cap_code=cap_code,
        selected_mode=selected_mode,
        index_code=index_code,
        active_stock=active_stock,
        lookback=lookback,
        floor=floor,
        min_ad_close=min_ad_close,
        max_ad_close=max_ad_close,
        min_ma20=min_ma20,
        max_ma20=max_ma20,
        breadth_url=breadth_url,
        selected_series_url=selected_series_url,
    )


async def _load_snapshot(engine: DashboardEngine, config: DashboardConfig) -> DashboardSnapshot:
    """Refresh and return the snapshot; 409 if the same engine started a newer refresh."""
    snapshot = await engine.refresh(config)
    if snapshot is None:
        raise HTTPException(status_code=409, detail="Refresh superseded by a newer request")
    return snapshot


# ──────────────────────────────────────────────
# Request / Response Schemas
# ──────────────────────────────────────────────

class AnalysisRequest(BaseModel):
    config: DashboardConfig = Field(default_factory=DashboardConfig)
    analysis_range: AnalysisRange = AnalysisRange.Y1
    model: Optional[str] = None


class AnalysisResponse(BaseModel):
    analysis: str
    model: str
    analysis_range: AnalysisRange
    records: int


class ChatRequest(AnalysisRequest):
    analysis: str = Field(..., min_length=1, description="The analysis this chat follows")
    messages: list[ChatMessage] = []
    question: str = Field(..., min_length=1, max_length=10000)


class ChatResponse(BaseModel):
    answer: str
    messages: list[ChatMessage]


# ──────────────────────────────────────────────
# Health
# ──────────────────────────────────────────────

health_router = APIRouter()


@health_router.get("/health")
async def health_check():
    """Application health with cache backend status."""
    settings = get_settings()
    cache_stats = get_cache_store().stats()
    services = {
        "cache": {
            "status": "ok" if cache_stats.get("available") else "unavailable",
            "backend": cache_stats.get("backend", "unknown"),
        },
        "gemini": {"status": "ok" if settings.google_api_key else "no_api_key"},
    }
    overall = "ok" if services["cache"]["status"] == "ok" else "degraded"
    return {
        "status": overall,
        "version": __version__,
        "environment": settings.app_env,
        "uptime_seconds": round(_time.monotonic() - APP_START_TIME, 1),
        "services": services,
    }


# ──────────────────────────────────────────────
# Dashboard Routes
# ──────────────────────────────────────────────

dashboard_router = APIRouter()


@dashboard_router.get("/catalog")
async def get_catalog():
    """Selectable sectors, cap indices, ranges and AI models."""
    settings = get_settings()
    return {
        "sectors": [s.model_dump() for s in catalog.SECTORS],
        "cap_indices": [c.model_dump() for c in catalog.CAP_INDICES],
        "time_ranges": [r.value for r in TimeRange],
        "analysis_ranges": [r.value for r in AnalysisRange],
        "models": settings.gemini_models,
        "default_model": settings.gemini_model,
    }


@dashboard_router.get("/dashboard", response_model=DashboardSnapshot)
async def get_dashboard(
    config: DashboardConfig = Depends(dashboard_config),
    engine: DashboardEngine = Depends(get_dashboard_engine),
):
    """Merged breadth + index dataset for the requested config."""
    return await _load_snapshot(engine, config)


@dashboard_router.get("/dashboard/sector/{code}", response_model=DashboardSnapshot)
async def get_sector_dashboard(
    code: str,
    config: DashboardConfig = Depends(dashboard_config),
    engine: DashboardEngine = Depends(get_dashboard_engine),
):
    """Dashboard with the selected chart switched to an ICB sector.

    Ranges beyond a year fall back to 1Y and custom dates are dropped.
    """
    if catalog.sector_name(code) is None:
        raise HTTPException(status_code=404, detail=f"Unknown sector code: {code}")
    return await _load_snapshot(engine, DashboardEngine.select_sector(config, code))


# ──────────────────────────────────────────────
# Analysis Routes
# ──────────────────────────────────────────────

analysis_router = APIRouter()


@analysis_router.post("/analysis", response_model=AnalysisResponse)
async def run_analysis(
    request: AnalysisRequest,
    engine: DashboardEngine = Depends(get_dashboard_engine),
    analyst: MarketAnalyst = Depends(get_market_analyst),
):
    """AI narrative over the dashboard data for the requested window."""
    snapshot = await _load_snapshot(engine, request.config)
    session = await analyst.analyze(
        snapshot.records,
        sector_name=snapshot.selected_name,
        cap_name=snapshot.cap_name,
        analysis_range=request.analysis_range,
        model=request.model,
    )
    return AnalysisResponse(
        analysis=session.analysis,
        model=session.model,
        analysis_range=request.analysis_range,
        records=len(session.context.records),
    )


@analysis_router.post("/analysis/chat", response_model=ChatResponse)
async def analysis_chat(
    request: ChatRequest,
    engine: DashboardEngine = Depends(get_dashboard_engine),
    analyst: MarketAnalyst = Depends(get_market_analyst),
):
    """Follow-up question on a previous analysis, replaying its transcript."""
    snapshot = await _load_snapshot(engine, request.config)
    session = await analyst.restore_session(
        snapshot.records,
        sector_name=snapshot.selected_name,
        cap_name=snapshot.cap_name,
        analysis_range=request.analysis_range,
        previous_analysis=request.analysis,
        messages=request.messages,
        model=request.model,
    )
    answer = await analyst.follow_up(session, request.question)
    return ChatResponse(answer=answer, messages=session.messages)
