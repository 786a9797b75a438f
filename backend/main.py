"""
FastAPI application entry point for CoursePush

Initializes the FastAPI app, registers routers, and sets up startup/shutdown events.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coursepush.core.config import settings
from coursepush.core.logging_config import setup_logging
from coursepush.core.metrics import init_metrics, get_metrics, get_content_type, get_uptime_seconds
from coursepush.middleware.logging_middleware import RequestLoggingMiddleware
from coursepush.api.v1.push import router as push_router
from coursepush.api.v1.tokens import router as tokens_router
from coursepush.services.push.credentials import CredentialSelector, get_credential_selector
from coursepush.services.push.dispatch_service import shutdown_push_dispatch_service
from coursepush.services.push.exceptions import PushServiceError
from coursepush.services.push.registry import DeviceRegistry, get_device_registry

# Application version
APP_VERSION = "1.0.0"

# Initialize structured JSON logging
setup_logging(app_version=APP_VERSION)
logger = logging.getLogger(__name__)

# Initialize Prometheus metrics
init_metrics(version=APP_VERSION)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup and shutdown events.

    - Startup: Provisions the device registry and loads partner credentials
    - Shutdown: Closes the delivery gateway
    """
    logger.info(
        "Application starting",
        extra={
            "event_type": "app_startup",
            "version": APP_VERSION,
            "log_level": settings.LOG_LEVEL,
            "debug_mode": settings.DEBUG,
        }
    )

    registry = get_device_registry()
    selector = get_credential_selector()
    logger.info(
        "Push services initialized",
        extra={
            "event_type": "push_services_ready",
            "registry_backend": registry.backend,
            "partners": selector.partners,
        }
    )
    if not selector.partners:
        logger.warning(
            "No FCM partner credentials configured, every push will be rejected",
            extra={"event_type": "no_partner_credentials"}
        )

    yield

    await shutdown_push_dispatch_service()
    logger.info(
        "Application shutdown complete",
        extra={"event_type": "app_shutdown_complete", "version": APP_VERSION}
    )


# Create FastAPI app
app = FastAPI(
    title="CoursePush API",
    description="Push notifications for course students, targeted by student, course, app version or topic",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _cors_headers(request: Request) -> dict:
    """CORS headers for error responses, which bypass CORS middleware."""
    origin = request.headers.get("origin", "")
    origins = settings.cors_origins_list
    if origin and (origin in origins or "*" in origins):
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
        }
    return {}


@app.exception_handler(PushServiceError)
async def push_service_error_handler(request: Request, exc: PushServiceError):
    """Render service errors as {"error": message} with their HTTP status."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message},
        headers=_cors_headers(request),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors (400), not 422."""
    logger.warning(
        "Request validation failed",
        extra={"path": request.url.path, "errors": str(exc.errors())}
    )
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body"},
        headers=_cors_headers(request),
    )


@app.exception_handler(HTTPException)
async def cors_http_exception_handler(request: Request, exc: HTTPException):
    """HTTPException handler that keeps the {"error": ...} body and CORS headers."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=_cors_headers(request),
    )


# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# Routes are mounted at the paths mobile clients already call
app.include_router(push_router)
app.include_router(tokens_router)


@app.get("/")
async def root():
    """Root endpoint - API status check"""
    return {
        "name": "CoursePush API",
        "version": APP_VERSION,
        "status": "running"
    }


@app.get("/health")
def health_check(
    registry: DeviceRegistry = Depends(get_device_registry),
    selector: CredentialSelector = Depends(get_credential_selector),
):
    """Health check endpoint"""
    return {
        "status": "healthy",
        "registry_backend": registry.backend,
        "partners": selector.partners,
        "uptime_seconds": round(get_uptime_seconds(), 1),
    }


@app.get("/metrics")
async def prometheus_metrics():
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=get_metrics(),
        media_type=get_content_type()
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
