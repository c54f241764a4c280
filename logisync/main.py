import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from logisync.core.config import settings
from logisync.core.database import engine
from logisync.core.logging_config import setup_logging
from logisync.core.redis import redis_client
from logisync.middleware.logging import LoggingMiddleware
from logisync.api.v1.api import api_router
from logisync.utils.date_time import utcnow

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(f"🚀 Starting LogiSync delivery core ({settings.ENVIRONMENT})")
    try:
        await redis_client.connect()
    except Exception:
        # Events are best effort, the API still serves without Redis
        logger.warning("Redis unavailable at startup, events will be retried per publish")
    yield
    await redis_client.disconnect()
    await engine.dispose()
    logger.info("LogiSync delivery core stopped")

# Create FastAPI app
app_config = {
    "title": "LogiSync Delivery Core",
    "description": "Shipment lifecycle, driver routing and GPS tracking",
    "version": "1.0.0",
    "lifespan": lifespan,
}

app = FastAPI(**app_config)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=settings.ALLOWED_METHODS,
    allow_headers=settings.ALLOWED_HEADERS
)
app.add_middleware(LoggingMiddleware)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Field error map: {"errors": {"field": ["message", ...]}}"""
    errors = defaultdict(list)
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors[".".join(loc) or "request"].append(error.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"message": "Validation failed", "errors": dict(errors)}
    )

# Include routers
app.include_router(api_router, prefix="/api/v1")

@app.get("/health")
async def health_check():
    components = {"database": "connected", "redis": "connected"}
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check database error: {str(e)}")
        components["database"] = "unavailable"
    try:
        await redis_client.ping()
    except Exception:
        components["redis"] = "unavailable"

    healthy = components["database"] == "connected"
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "degraded",
            "timestamp": utcnow().isoformat(),
            "components": components,
        }
    )
