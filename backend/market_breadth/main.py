"""
Market Breadth: FastAPI Application Entry Point

The API server. Dashboard, catalog and AI analysis endpoints are mounted here.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from market_breadth import __version__
from market_breadth.config import get_settings
from market_breadth.routes import analysis_router, dashboard_router, health_router

log = structlog.get_logger("market_breadth.startup")


def _validate_config(settings) -> None:
    """Warn on missing critical API keys at startup."""
    checks = {
        "google_api_key": "Google Gemini (AI analysis will not work)",
    }
    for attr, description in checks.items():
        if not getattr(settings, attr, ""):
            log.warning("config.missing_key", key=attr, impact=description)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    settings = get_settings()
    log.info(
        "startup",
        env=settings.app_env,
        cache_backend=settings.cache_backend,
        redis=settings.redis_url,
    )

    _validate_config(settings)

    # ── Cache: warm the backend connection ──
    from market_breadth.cache import get_cache_store
    stats = get_cache_store().stats()
    if stats.get("backend") == "redis":
        log.info("redis.ready", url=settings.redis_url)
    else:
        log.warning("cache.in_memory", detail="cached series are per-process and lost on restart")

    yield

    log.info("shutdown")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    app = FastAPI(
        title="Market Breadth",
        description="""# Market Breadth API

Vietnamese stock market breadth dashboard backend.

## Features
- **Market Breadth**: share of stocks above MA20 / MA50 / MA200
- **Index Overlays**: VNINDEX, cap index, and a selected sector or stock
- **AI Analysis**: Gemini narrative with follow-up chat
""",
        version=__version__,
        debug=settings.app_debug,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "Health", "description": "Service health check"},
            {"name": "Dashboard", "description": "Catalog and merged breadth dataset"},
            {"name": "Analysis", "description": "AI market analysis and follow-up chat"},
        ],
    )

    # ── Global Error Handlers ──
    from market_breadth.error_handlers import register_error_handlers
    register_error_handlers(app)

    # ── CORS (configurable from settings) ──
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Request Logging ──
    from market_breadth.middleware import RequestLoggerMiddleware
    app.add_middleware(RequestLoggerMiddleware)

    # ── Routes (unversioned) ──
    app.include_router(health_router, tags=["Health"])

    # ── Routes (v1 API) ──
    API_V1 = "/v1/api"
    app.include_router(dashboard_router, prefix=API_V1, tags=["Dashboard"])
    app.include_router(analysis_router, prefix=API_V1, tags=["Analysis"])

    return app


app = create_app()
