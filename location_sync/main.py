"""
Location Sync Service - FastAPI Backend
Addresses, location entities and their synchronized coordinate cache
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import IntegrityError

from location_sync import database
from location_sync.config import get_settings
from location_sync.exceptions import (
    AddressReferenceError,
    ConcurrencyConflict,
    LocationSyncError,
    NotFoundError,
    SynchronizationError,
    ValidationError,
)
from location_sync.logging_config import setup_logging
from location_sync.routers import addresses, location_entities, reconciliation
from location_sync.utils.metrics import get_metrics, get_content_type

settings = get_settings()
logger = logging.getLogger(__name__)

# Domain error -> HTTP status; first match wins
ERROR_STATUS = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (AddressReferenceError, 409),
    (ConcurrencyConflict, 409),
    (SynchronizationError, 500),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown"""
    # Startup
    setup_logging(settings)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"CORS Origins: {settings.cors_origins_list}")
    logger.info(
        f"Coordinate representation: {settings.coordinate_representation}, "
        f"address delete policy: {settings.address_delete_policy}"
    )
    await database.init_db()

    yield

    # Shutdown
    await database.close_db()
    logger.info("Shutting down...")


app = FastAPI(
    title=settings.app_name,
    description="Address coordinate cache synchronization for location entities",
    version=settings.app_version,
    lifespan=lifespan
)

# CORS middleware - MUST be added before exception handlers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LocationSyncError)
async def location_sync_exception_handler(request: Request, exc: LocationSyncError):
    """Map domain errors to status codes"""
    status_code = 500
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__}
    )


@app.exception_handler(IntegrityError)
async def integrity_exception_handler(request: Request, exc: IntegrityError):
    """Unique / foreign key violations"""
    logger.info(f"{request.method} {request.url.path} integrity violation: {exc.orig}")
    return JSONResponse(
        status_code=409,
        content={"detail": f"Integrity violation: {exc.orig}", "error": "IntegrityError"}
    )


# Global exception handler to ensure proper error responses
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and return proper JSON response"""
    logger.error(f"Unhandled exception: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal server error: {str(exc)}"}
    )

# Include routers
app.include_router(addresses.router, prefix="/api/addresses", tags=["Addresses"])
app.include_router(location_entities.router, prefix="/api/location-entities", tags=["Location Entities"])
app.include_router(reconciliation.router, prefix="/api/reconciliation", tags=["Reconciliation"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    db = await database.health_check()
    status = "healthy" if db["healthy"] else "unhealthy"
    return JSONResponse(
        status_code=200 if db["healthy"] else 503,
        content={"status": status, "version": settings.app_version, "database": db}
    )


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return Response(
        content=get_metrics(),
        media_type=get_content_type()
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "location_sync.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
