import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Models must be imported before create_all so every billing table is registered
from . import models, models_invoice  # noqa: F401
from .config import FRONTEND_URL, REDIS_URL
from .database import Base, engine
from .domain.invoices import router as invoices_router
from .shared.errors import AppError, ErrorCodes

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Billing API starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("✅ Billing tables ready")
    except Exception as e:
        # Several uvicorn workers may race to create the same tables
        if "already exists" in str(e) or "duplicate key" in str(e):
            logger.info("ℹ️ Billing tables were created by another worker")
        else:
            logger.error(f"❌ Could not create billing tables: {e}")

    if REDIS_URL:
        try:
            from .rate_limiter import get_redis_client

            get_redis_client()
            logger.info("✅ Rate limiter using Redis")
        except Exception as e:
            logger.warning(f"⚠️ Redis unreachable, rate limiter falls back to memory: {e}")

    yield
    logger.info("👋 Billing API shutting down")


app = FastAPI(title="TutorHub Billing API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Return AppErrors that escape a route as a JSON failure payload"""
    status_code = 404 if exc.code == ErrorCodes.NO_RECORDS_FOUND else 500
    logger.error(f"{request.method} {request.url.path} - {exc!r}")
    return JSONResponse(status_code=status_code, content={"success": False, **exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"⚠️ Rejected {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"❌ {request.method} {request.url.path} raised: {e}")
        raise
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f}ms)")
    return response


# Admin dashboard origins
CORS_ORIGINS = os.getenv("ALLOWED_ORIGINS", f"{FRONTEND_URL},http://localhost:3000").split(",")
logger.info(f"🌐 CORS origins: {CORS_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(invoices_router)


@app.get("/")
def root():
    return {"message": "TutorHub Billing API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/health/redis")
async def rate_limit_store_health():
    """Report which store backs rate limiting and whether Redis answers"""
    if not REDIS_URL:
        return {"status": "healthy", "store": "memory"}
    try:
        from .rate_limiter import get_redis_client

        started = time.perf_counter()
        get_redis_client().ping()
        latency_ms = round((time.perf_counter() - started) * 1000, 2)
        return {"status": "healthy", "store": "redis", "latency_ms": latency_ms}
    except Exception as e:
        return {"status": "degraded", "store": "memory", "error": str(e)}
