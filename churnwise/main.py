import asyncio
import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from churnwise.config import settings
from churnwise.rate_limit import limiter
from churnwise.routers import catalog, eligibility, issuers, retention
from churnwise.services.catalog_loader import (
    CatalogNotFoundError,
    get_catalog,
    load_configured_catalog,
    reload_if_changed,
)

logger = logging.getLogger(__name__)


async def _catalog_reload_loop(interval: int) -> None:
    """Background task that periodically reloads the rule catalog when its files change."""
    while True:
        await asyncio.sleep(interval)
        try:
            reload_if_changed()
        except Exception:
            logger.exception("Error during rule catalog reload")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        load_configured_catalog()
    except CatalogNotFoundError:
        logger.warning(
            "No rule catalog at %s; serving an empty catalog until one appears",
            settings.rules_catalog_path,
        )

    reload_task = None
    if settings.catalog_reload_interval > 0:
        reload_task = asyncio.create_task(
            _catalog_reload_loop(settings.catalog_reload_interval)
        )
        logger.info(
            "Rule catalog hot-reload enabled (interval=%ds)",
            settings.catalog_reload_interval,
        )

    yield

    if reload_task:
        reload_task.cancel()
        try:
            await reload_task
        except asyncio.CancelledError:
            pass


app = FastAPI(title="churnwise API", version="1.0.0", lifespan=lifespan)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(status_code=429, content={"detail": "Too many requests. Please try again later."})


def _cors_kwargs() -> dict:
    """Build CORSMiddleware origin kwargs based on ALLOWED_ORIGINS setting."""
    raw = settings.allowed_origins.strip()
    if raw == "*" or not raw:
        return {"allow_origin_regex": ".*"}
    origins = []
    for origin in raw.split(","):
        origin = origin.strip()
        if not origin:
            continue
        parsed = urlparse(origin)
        if parsed.scheme and parsed.netloc:
            origins.append(origin)
        else:
            logger.warning("Skipping invalid ALLOWED_ORIGINS entry (missing scheme/host): %s", origin)
    return {"allow_origins": origins}


app.add_middleware(
    CORSMiddleware,
    **_cors_kwargs(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(catalog.router)
app.include_router(eligibility.router)
app.include_router(issuers.router)
app.include_router(retention.router)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.get("/api/health")
def health():
    catalog_ = get_catalog()
    return {"status": "ok", "catalog_version": catalog_.version, "rules": len(catalog_.rules)}
