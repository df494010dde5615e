"""
Feed Engine API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Initialise DB connection pool (TiDB) and create tables if not present
  3. Connect to Redis (degraded mode if unreachable: reads fall back to TiDB)
  4. Expose Prometheus /metrics endpoint
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError

from feed_engine.config import settings
from feed_engine.database import engine, init_db
from feed_engine.telemetry import setup_tracing, instrument_app
from feed_engine.clients.redis_client import init_cache
from feed_engine.feed.graph_cache import CacheInvalidationError
from feed_engine.routers import users, posts, feed

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting Feed Engine API (env=%s)", settings.environment)

    await init_db()
    app.state.cache = await init_cache()

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    await app.state.cache.close()
    await engine.dispose()


app = FastAPI(
    title="Feed Engine API",
    description=(
        "Feed assembly over a cached social graph: Home, Following and "
        "Explore feeds with block/mute exclusion and per-viewer hydration."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(posts.router, prefix="/posts", tags=["Posts"])
app.include_router(feed.router, prefix="/feed", tags=["Feed"])


# ── Error translation ──────────────────────────────────────────────────────
# Both are transient: the caller retries the whole request.
@app.exception_handler(CacheInvalidationError)
async def cache_invalidation_failed(request: Request, exc: CacheInvalidationError):
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Social graph cache unavailable, retry the request"},
    )


@app.exception_handler(SQLAlchemyError)
async def datastore_failed(request: Request, exc: SQLAlchemyError):
    logger.error("Datastore error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Datastore unavailable, retry the request"},
    )


# ── Prometheus metrics endpoint ────────────────────────────────────────────
# Mounted at /metrics — scraped by Prometheus
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
