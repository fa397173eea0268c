"""
FastAPI application entry point for the TPHub Alerts API.

Wires the alert router, the database pool lifecycle and the error
envelope. Every error leaves the service as {"error": "<message>"}:

- HTTPException raised by routes or dependencies keeps its status
- Unsupported methods answer 405 "Method not allowed"
- Request validation errors answer 400 "Invalid request body"
- Anything unexpected is logged and answers 500 "Internal server error"
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tphub_alerts import __version__
from tphub_alerts.api.alerts import router as alerts_router
from tphub_alerts.core.config import get_settings
from tphub_alerts.core.database import close_db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for startup and shutdown.

    The database pool is created lazily by the first query, so a missing
    DATABASE_URL only affects the endpoints that need it. On shutdown the
    pool is closed if it was ever opened.
    """
    logger.info("TPHub Alerts API starting")

    yield

    logger.info("TPHub Alerts API shutting down")
    try:
        await close_db()
        logger.info("Database connection pool closed")
    except Exception as e:
        logger.error(f"Error closing database pool: {e}")


# Create FastAPI application
app = FastAPI(
    title="TPHub Alerts API",
    version=__version__,
    description=(
        "Daily anomaly alerts for TPHub consultants: debug inspection, "
        "test sends and the production Slack/email run."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().app_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Error envelope
# =============================================================================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        message = 'Method not allowed'
    else:
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={'error': message}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info(f"Invalid request on {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={'error': 'Invalid request body'})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={'error': 'Internal server error'},
    )


# Register API routers
app.include_router(alerts_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tphub_alerts.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
