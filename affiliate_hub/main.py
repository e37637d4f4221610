import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text

from affiliate_hub.api.redirect import router as redirect_router
from affiliate_hub.api.v1.router import router as api_router
from affiliate_hub.api.webhooks.postback import router as postback_router
from affiliate_hub.config import settings
from affiliate_hub.core.exceptions import AffiliateHubException
from affiliate_hub.core.middleware import setup_middlewares
from affiliate_hub.database import close_db
from affiliate_hub.dependencies import DB
from affiliate_hub.schemas.common import HealthResponse

VERSION = "1.0.0"

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name}...")
    yield
    logger.info(f"Shutting down {settings.app_name}...")
    await close_db()
    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="Affiliate link tracking, fraud scoring, commissions and experiments",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

setup_middlewares(app)


@app.exception_handler(AffiliateHubException)
async def affiliate_hub_exception_handler(request: Request, exc: AffiliateHubException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
        },
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        errors.append(
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
            }
        )

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "Validation error",
            "details": errors,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception: {exc}")

    if settings.debug:
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(exc),
                "type": type(exc).__name__,
            },
        )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
        },
    )


@app.get("/health", response_model=HealthResponse)
async def health_check(db: DB):
    database = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database = "unhealthy"

    return HealthResponse(
        status="healthy" if database == "healthy" else "degraded",
        version=VERSION,
        timestamp=datetime.now(UTC),
        services={"database": database},
    )


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": VERSION,
        "docs": "/docs",
    }


app.include_router(redirect_router)
app.include_router(api_router, prefix="/api")
app.include_router(postback_router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "affiliate_hub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        workers=1 if settings.debug else 4,
    )
