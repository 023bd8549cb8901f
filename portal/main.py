from __future__ import annotations

import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles
from pythonjsonlogger import jsonlogger
from redis.asyncio import Redis
from starlette.concurrency import run_in_threadpool

from .config import Settings, settings
from .cache import CacheService
from .database import Base, database_is_reachable, engine
from .errors import register_exception_handlers
from .middleware import MethodOverrideMiddleware, RequestLoggingMiddleware, SecurityHeadersMiddleware
from .rate_limit import limiter
from .schemas import HealthOut
from .session_store import SessionMiddleware, SessionStore
from .templating import STATIC_DIR
from .api import routes_account, routes_home, routes_news, routes_players
from .auth.routes_auth import router as auth_router
from .auth.seed import seed_admin
from . import models as _models  # noqa: F401 (registers tables)

logger = logging.getLogger("portal")

# ---------------------------------------------------------------------------
# Structured logging
# ---------------------------------------------------------------------------

def _configure_logging() -> None:
    """Configure structured JSON logging when log_format=json (default)."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format == "json":
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
        handler.setFormatter(formatter)
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)

_configure_logging()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    config: Optional[Settings] = None,
    redis_client: Optional[Redis] = None,
    session_redis_client: Optional[Redis] = None,
) -> FastAPI:
    """
    Build the portal application. The cache and the session store use
    separate Redis databases so that flushing the cache on shutdown
    leaves sessions alone. Pass clients in to point the app at other
    instances (tests use fakeredis).
    """
    config = config or settings
    client = redis_client or Redis.from_url(config.redis_url, decode_responses=True)
    session_client = session_redis_client or Redis.from_url(
        config.session_redis_url, decode_responses=True
    )
    cache = CacheService(client)
    session_store = SessionStore(session_client, ttl_seconds=config.session_ttl_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Base.metadata.create_all(bind=engine)
        seed_admin()
        await cache.init()
        app.state.started_at = time.time()
        logger.info("Server started", extra={"port": config.port, "environment": config.environment})
        yield
        # uvicorn has stopped accepting connections and drained in-flight requests
        logger.info("Graceful shutdown started")
        engine.dispose()
        await cache.reset()
        await client.aclose()
        await session_client.aclose()
        logger.info("Graceful shutdown complete")

    app = FastAPI(
        title=config.server_name,
        version="1.0.0",
        description="Community portal: accounts, player roster and news.",
        lifespan=lifespan,
        docs_url="/docs" if config.environment == "development" else None,
        redoc_url=None,
    )
    app.state.settings = config
    app.state.cache = cache
    app.state.session_store = session_store
    app.state.started_at = time.time()

    # Rate limiting
    app.state.limiter = limiter
    register_exception_handlers(app)

    # Added innermost first: the last one added sees the request first.
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        SessionMiddleware,
        store=session_store,
        cookie_name=config.session_cookie_name,
        secure=config.secure_cookies,
    )
    app.add_middleware(SecurityHeadersMiddleware, environment=config.environment)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allow_cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(MethodOverrideMiddleware)

    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

    app.include_router(routes_home.router)
    app.include_router(auth_router)
    app.include_router(routes_account.router)
    app.include_router(routes_news.router)
    app.include_router(routes_players.router)

    @app.get("/health", response_model=HealthOut, tags=["meta"])
    async def health(request: Request) -> HealthOut:
        database_ok = await run_in_threadpool(database_is_reachable)
        cache_ok = await request.app.state.cache.ping()
        return HealthOut(
            uptime=round(time.time() - request.app.state.started_at, 3),
            message="OK",
            timestamp=int(time.time() * 1000),
            database="connected" if database_ok else "disconnected",
            cache="connected" if cache_ok else "unavailable",
        )

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the module-level app with uvicorn."""
    uvicorn.run(
        "portal.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
        proxy_headers=True,
    )


if __name__ == "__main__":
    run()
