"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from api.routes import analytics, health, posted_items, sheets
from core.config import settings
from core.exceptions import PipelineException, SchemaValidationError
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from ingestion.scheduler import ReconciliationScheduler

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Sales Reconciliation API",
    description="Spreadsheet sales sync, product identity resolution and unsold-item reconciliation",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Periodic reconciliation runs only when enabled
scheduler = ReconciliationScheduler() if settings.RECONCILE_SCHEDULER_ENABLED else None


# Include routers
app.include_router(health.router)
app.include_router(sheets.router)
app.include_router(posted_items.router)
app.include_router(analytics.router)


@app.exception_handler(SchemaValidationError)
async def schema_validation_handler(request: Request, exc: SchemaValidationError):
    logger.warning(f"Rejected payload on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=400,
        content={
            "detail": exc.message,
            "errors": exc.context.get("field_errors", []),
        },
    )


@app.exception_handler(PipelineException)
async def pipeline_exception_handler(request: Request, exc: PipelineException):
    logger.error(
        f"Pipeline error on {request.url.path}: {exc.message}",
        extra={"error_context": exc.to_dict()}
    )
    return JSONResponse(
        status_code=500,
        content={"detail": exc.message, "error_type": type(exc).__name__},
    )


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Sales Reconciliation API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if scheduler is not None:
        scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Sales Reconciliation API")
    if scheduler is not None:
        scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Sales Reconciliation API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "sheets": ["/sheets/sync", "/sheets/bulk-import"],
            "posted_items": "/posted-items",
            "analytics": [
                "/analytics/unsold",
                "/analytics/summary",
                "/analytics/top-products",
                "/analytics/categories",
                "/analytics/rebuild-product-stats",
            ],
        }
    }
