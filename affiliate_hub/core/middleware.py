import logging
import time
from collections.abc import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from redis import asyncio as aioredis
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from affiliate_hub.config import settings

logger = logging.getLogger(__name__)

# Redirects and postbacks come from visitors and partner networks
RATE_LIMIT_EXEMPT_PREFIXES = ("/docs", "/openapi", "/go/", "/api/v1/postback")


def get_client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: FastAPI,
        redis_url: str,
        requests_limit: int = 100,
        window_seconds: int = 60,
    ):
        super().__init__(app)
        self.redis_url = redis_url
        self.requests_limit = requests_limit
        self.window_seconds = window_seconds
        self.redis: aioredis.Redis | None = None
        self.enabled = settings.is_production

    async def get_redis(self) -> aioredis.Redis:
        if self.redis is None:
            self.redis = await aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self.redis

    def is_exempt(self, request: Request) -> bool:
        if request.method == "OPTIONS":
            return True
        path = request.url.path
        if path in ("/", "/health"):
            return True
        return path.startswith(RATE_LIMIT_EXEMPT_PREFIXES)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled or self.is_exempt(request):
            return await call_next(request)

        client_ip = get_client_ip(request) or "unknown"
        rate_key = f"rate_limit:{client_ip}"

        try:
            redis = await self.get_redis()
            current = await redis.get(rate_key)

            if current is None:
                await redis.setex(rate_key, self.window_seconds, 1)
            elif int(current) >= self.requests_limit:
                logger.warning(f"Rate limit exceeded for IP: {client_ip}")
                return JSONResponse(
                    status_code=429,
                    content={
                        "success": False,
                        "error": f"Rate limit exceeded. Try again in {self.window_seconds} seconds.",
                    },
                    headers={"Retry-After": str(self.window_seconds)},
                )
            else:
                await redis.incr(rate_key)

        except aioredis.RedisError as e:
            logger.error(f"Redis error in rate limiting: {e}")

        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(
            f"{request.method} {request.url.path} "
            f"status={response.status_code} "
            f"duration={process_time:.3f}s"
        )

        response.headers["X-Process-Time"] = str(process_time)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


def setup_cors(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Process-Time"],
    )


def setup_middlewares(app: FastAPI) -> None:
    # Last added is outermost; CORS wraps everything
    app.add_middleware(
        RateLimitMiddleware,
        redis_url=settings.redis_url,
        requests_limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    setup_cors(app)
