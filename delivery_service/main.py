"""
FastAPI Application Entry Point - Delivery Service
"""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from delivery_service.api import admin, coupons, couriers, health, merchants, notifications, orders, payments
from delivery_service.api.deps import shutdown_fanout
from delivery_service.config import settings
from delivery_service.database import init_db
from delivery_service.exceptions import DeliveryError
from delivery_service.logging_config import configure_logging

logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Delivery Service",
    description="Order lifecycle, courier dispatch and realtime notifications",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(orders.router)
app.include_router(merchants.router)
app.include_router(couriers.router)
app.include_router(coupons.router)
app.include_router(payments.router)
app.include_router(notifications.router)
app.include_router(admin.router)

# Prometheus metrics
Instrumentator().instrument(app).expose(app)


@app.exception_handler(DeliveryError)
async def delivery_error_handler(request: Request, exc: DeliveryError):
    """Render domain errors as {"error": code, "detail": message}"""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.message})


@app.on_event("startup")
def startup_event():
    """Initialize logging and database on startup"""
    configure_logging(settings.LOG_LEVEL)
    logger.info("Starting %s...", settings.SERVICE_NAME)
    init_db()
    logger.info("Database initialized")
    logger.info("Event broker %s", "enabled" if settings.EVENT_BROKER_ENABLED else "disabled")
    logger.info("%s is running on port %s", settings.SERVICE_NAME, settings.SERVICE_PORT)


@app.on_event("shutdown")
def shutdown_event():
    """Drain pending push notifications"""
    logger.info("Shutting down %s...", settings.SERVICE_NAME)
    shutdown_fanout()
