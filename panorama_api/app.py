"""FastAPI application."""
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from panorama_api import auth_endpoints, endpoints
from panorama_api.db import create_tables
from panorama_api.errors import register_exception_handlers
from panorama_api.logging_config import setup_logging
from panorama_api.settings import settings
from panorama_api.suggester import build_metadata_suggester

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)

    if settings.AUTO_CREATE_TABLES:
        await create_tables()

    # Decided once; routes see either a suggester or None
    app.state.metadata_suggester = build_metadata_suggester(settings)

    logger.info("Panorama Gallery API started")
    yield
    logger.info("Panorama Gallery API stopped")


app = FastAPI(
    title="Panorama Gallery API",
    description="Upload, search, bookmark and share panorama images",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "HTTP %s %s -> %s (%.1fms) user=%s ip=%s",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
        getattr(request.state, "user_id", None) or "anonymous",
        request.client.host if request.client else "-",
    )
    return response


register_exception_handlers(app)

# Read-only artifacts: /uploads/originals/<file>, /uploads/thumbnails/<file>
Path(settings.UPLOADS_DIR).mkdir(parents=True, exist_ok=True)
app.mount(settings.UPLOADS_URL_PREFIX, StaticFiles(directory=settings.UPLOADS_DIR), name="uploads")

# Include API routers
app.include_router(auth_endpoints.router)
app.include_router(endpoints.router)


@app.get("/")
async def root():
    """Root endpoint."""
    prefix = settings.API_PREFIX
    return {
        "service": "Panorama Gallery API",
        "version": "1.0.0",
        "endpoints": {
            "register": f"POST {prefix}/auth/register",
            "login": f"POST {prefix}/auth/login",
            "list": f"GET {prefix}/images",
            "upload": f"POST {prefix}/images/upload-multiple",
            "share": f"POST {prefix}/images/hash/{{hash}}",
            "stats": f"GET {prefix}/images/stats",
            "tags": f"GET {prefix}/images/tags",
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
