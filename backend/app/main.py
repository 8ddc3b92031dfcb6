from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import time

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import api_router
from app.core.config import get_settings
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.services.seed import seed_demo_data


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

settings = get_settings()
logger = logging.getLogger("cashflow.api")

# probes are polled by the platform and never count against client quotas
UNLIMITED_PATHS = {"/healthz", f"{settings.api_prefix}/health"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── startup ──
    if settings.auto_create_schema:
        Base.metadata.create_all(bind=engine)
    if settings.seed_demo_data:
        with SessionLocal() as db:
            try:
                seed_demo_data(db)
            except Exception:
                db.rollback()
                logger.exception("Skipping demo seed due to startup error.")
    logger.info(
        "Cash flow API ready (history=%s months, starting balance=%s, batch size=%s).",
        settings.history_months,
        settings.simulation_starting_balance,
        settings.simulation_batch_size,
    )
    yield
    # ── shutdown ──
    engine.dispose()
    logger.info("Cash flow API shutdown complete.")


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_request_buckets: dict[str, deque[float]] = {}
_last_sweep = 0.0


def _evict_idle_buckets(now: float) -> None:
    window = settings.rate_limit_window_seconds
    idle = [key for key, bucket in _request_buckets.items() if not bucket or now - bucket[-1] > window]
    for key in idle:
        del _request_buckets[key]


def _rate_limited(key: str, now: float) -> bool:
    global _last_sweep
    # at most one full sweep per window
    if now - _last_sweep > settings.rate_limit_window_seconds:
        _evict_idle_buckets(now)
        _last_sweep = now
    bucket = _request_buckets.setdefault(key, deque())
    while bucket and now - bucket[0] > settings.rate_limit_window_seconds:
        bucket.popleft()
    if len(bucket) >= settings.rate_limit_requests:
        return True
    bucket.append(now)
    return False


@app.middleware("http")
async def request_log_and_rate_limit(request: Request, call_next):
    started = time.monotonic()
    path = request.url.path
    client = request.client.host if request.client else "unknown"
    if path not in UNLIMITED_PATHS and _rate_limited(f"{client}:{path}", time.time()):
        logger.warning("Rate limit hit for %s on %s %s", client, request.method, path)
        return JSONResponse(
            status_code=429,
            content={"detail": "Rate limit exceeded. Please retry later."},
        )

    try:
        response = await call_next(request)
    except Exception as exc:  # pragma: no cover
        logger.exception("Unhandled error for %s %s", request.method, path, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    elapsed_ms = (time.monotonic() - started) * 1000
    response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.2f}"
    logger.info("%s %s -> %s %.2fms", request.method, path, response.status_code, elapsed_ms)
    return response


@app.get("/healthz")
def healthz() -> dict:
    return {
        "ok": True,
        "service": settings.app_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/", include_in_schema=False)
def root() -> dict:
    return {
        "service": settings.app_name,
        "status": "ok",
        "health": "/healthz",
        "docs": "/docs",
        "endpoints": {
            name: f"{settings.api_prefix}/{name}"
            for name in ("health", "cashflow", "kpis", "alerts", "recommendations", "forecasts", "simulation")
        },
    }


@app.get("/favicon.ico", include_in_schema=False)
def favicon() -> Response:
    return Response(status_code=204)


app.include_router(api_router, prefix=settings.api_prefix)
