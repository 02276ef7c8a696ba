"""
Pyggpot API Application Factory
"""

import uuid

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import uvicorn

from .. import __version__
from ..errors import ConsistencyError, StoreError, ValidationError
from ..logging_config import correlation_context, get_logger, log_action
from .coins import router as coins_router


logger = get_logger("pyggpot.api")

CORRELATION_HEADER = "X-Correlation-ID"


async def correlation_id_middleware(request: Request, call_next):
    """Bind the caller's correlation ID, or a fresh one, to the request's logs"""
    correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
    with correlation_context(correlation_id):
        response = await call_next(request)
    response.headers[CORRELATION_HEADER] = correlation_id
    return response


async def _validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


async def _store_error_handler(request: Request, exc: StoreError):
    log_action(logger, "error", f"Storage failure on {request.method} {request.url.path}: {exc}",
               action="request_failed")
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


async def _consistency_error_handler(request: Request, exc: ConsistencyError):
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Pyggpot API",
        description="Coin pots with proportional random removal",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_exception_handler(ValidationError, _validation_error_handler)
    app.add_exception_handler(StoreError, _store_error_handler)
    app.add_exception_handler(ConsistencyError, _consistency_error_handler)

    app.middleware("http")(correlation_id_middleware)

    app.include_router(coins_router, prefix="/pots", tags=["Coins"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "pyggpot_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Pyggpot API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "add_coins": "POST /pots/{pot_id}/coins",
                "remove_coins": "POST /pots/{pot_id}/coins/remove",
                "list_coins": "GET /pots/{pot_id}/coins"
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8080, debug: bool = False,
               log_level: str = "info"):
    """Run the FastAPI server"""
    uvicorn.run(
        "pyggpot.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level=log_level.lower()
    )
