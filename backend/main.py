"""
ExamHall API - main entry point.
Creates FastAPI app, sets up lifespan (indexes), error handlers, CORS,
metrics middleware, registers all routes.
"""

import os
import time
import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, APIRouter, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import logger, get_version_info, is_production
from app.database import client, ensure_indexes
from app.errors import AppError
from app.services.metrics import log_api_metric
from app.routes import register_all_routes
from app.utils.response import error_body


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - ensures indexes, closes the Mongo client"""
    logger.info("🚀 ExamHall API starting up...")
    await ensure_indexes()
    logger.info("=" * 60)

    yield

    logger.info("🛑 ExamHall API shutting down...")
    client.close()


# Create the main app with lifespan
app = FastAPI(title="ExamHall API", lifespan=lifespan)

# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")


@api_router.get("/version")
async def get_version():
    """Public version endpoint for deployment verification"""
    return get_version_info()


# Register all route modules on the api_router
register_all_routes(api_router)

# Include the api_router on the app
app.include_router(api_router)


# Root-level health check endpoint (for Kubernetes probes)
@app.get("/health")
async def root_health_check():
    """Health check for Kubernetes liveness/readiness probes"""
    return {"status": "healthy", "service": "ExamHall API"}


# ============== ERROR HANDLERS ==============

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.errors))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"] if part != "body"),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body("Validation failed", errors))


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    logger.warning(f"Duplicate key on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=409, content=error_body("Resource already exists"))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    message = "Internal server error" if is_production() else f"Internal server error: {exc}"
    return JSONResponse(status_code=500, content=error_body(message))


# ============== METRICS TRACKING MIDDLEWARE ==============

@app.middleware("http")
async def metrics_tracking_middleware(request: Request, call_next):
    """Track API metrics for all requests"""
    start_time = time.time()

    error_type = None
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception as e:
        error_type = type(e).__name__
        logger.error(f"Request failed: {str(e)}")
        raise
    finally:
        response_time_ms = int((time.time() - start_time) * 1000)

        asyncio.create_task(log_api_metric(
            endpoint=request.url.path,
            method=request.method,
            response_time_ms=response_time_ms,
            status_code=status_code,
            error_type=error_type,
            ip_address=request.client.host if request.client else None
        ))

    return response


# ============== CORS ==============

cors_origins_env = os.environ.get("CORS_ORIGINS")
cors_origins = [origin.strip() for origin in cors_origins_env.split(",")] if cors_origins_env else [
    "http://localhost:3000",
    "http://127.0.0.1:3000"
]

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
