"""
Shipdesk
FastAPI application entry point

- /api/order, /api/rates, /api/purchase for the packing-station page
- Static admin page served from / (admin.html)
- Permissive CORS (GET, POST, OPTIONS; Content-Type)
- Error sanitization middleware
- Shippo / PrintNode / ledger clients created and closed with the app
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from shipdesk.api.routes import fulfillment
from shipdesk.core.config import settings
from shipdesk.core.error_handler import ErrorSanitizationMiddleware
from shipdesk.core.logging_config import configure_logging
from shipdesk.services.fulfillment_service import create_fulfillment_service

logger = logging.getLogger(__name__)

BUNDLED_STATIC_DIR = Path(__file__).resolve().parent / "static"
STATIC_DIR = Path(settings.STATIC_DIR) if settings.STATIC_DIR else BUNDLED_STATIC_DIR


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the outbound clients on startup and close them on shutdown."""
    configure_logging(settings.LOG_LEVEL)

    created_here = False
    if getattr(app.state, "fulfillment", None) is None:
        app.state.fulfillment = create_fulfillment_service(settings)
        created_here = True

    logger.info(f"{settings.APP_NAME} started on port {settings.PORT}")
    logger.info(f"Admin page: http://localhost:{settings.PORT}/{settings.ADMIN_PAGE}")
    if not settings.printing_enabled:
        logger.info("PrintNode not configured - labels and packing slips will only be logged")

    yield

    if created_here:
        await app.state.fulfillment.close()
        app.state.fulfillment = None
        logger.info("Outbound clients closed")


app = FastAPI(
    lifespan=lifespan,
    title=f"{settings.APP_NAME} API",
    description="Rate quoting, label purchase and printing for the packing station.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Error sanitization (catches unhandled exceptions)
app.add_middleware(ErrorSanitizationMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report bad request bodies the way the admin page expects: {"error": ...}."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    logger.warning(f"Invalid request to {request.url.path}: {errors}")
    return JSONResponse(
        status_code=400,
        content={"error": f"{location}: {message}" if location else message},
    )


app.include_router(fulfillment.router, prefix="/api")


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness plus which collaborators are configured."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "printing_enabled": settings.printing_enabled,
        "order_ledger": "redis" if settings.REDIS_URL else "memory",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/", include_in_schema=False)
async def admin_page():
    return FileResponse(STATIC_DIR / settings.ADMIN_PAGE, media_type="text/html")


# Everything else is a static asset; registered last so /api and /health win.
app.mount("/", StaticFiles(directory=str(STATIC_DIR), check_dir=False), name="static")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "shipdesk.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.DEBUG,
    )
