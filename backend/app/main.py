import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.ai import router as ai_router
from app.api.v1.documents import router as documents_router
from app.api.v1.exports import router as exports_router
from app.api.v1.templates import router as templates_router
from app.core.config import get_settings
from app.utils.rate_limit import bucket_for, get_client_ip, rate_limiter

settings = get_settings()

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "Internal server error"

app = FastAPI(
    title="FinExtract API",
    version="1.0.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.openapi_enabled else None,
)

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

app.include_router(documents_router, prefix="/api/v1", tags=["documents"])
app.include_router(exports_router, prefix="/api/v1", tags=["exports"])
app.include_router(templates_router, prefix="/api/v1", tags=["templates"])
app.include_router(ai_router, prefix="/api/v1", tags=["ai"])


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code >= 500 and not get_settings().expose_error_details:
        return JSONResponse(status_code=exc.status_code, content={"detail": INTERNAL_ERROR})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    if get_settings().expose_error_details:
        return JSONResponse(status_code=500, content={"detail": str(exc)})
    return JSONResponse(status_code=500, content={"detail": INTERNAL_ERROR})


@app.middleware("http")
async def api_rate_limit_middleware(request: Request, call_next):
    current = get_settings()
    if not current.rate_limit_api_enabled:
        return await call_next(request)

    bucket = bucket_for(request.url.path, request.method)
    if bucket is None:
        return await call_next(request)

    name, limit = bucket
    ip = get_client_ip(request) or "unknown"
    allowed, _ = rate_limiter.allow(f"{name}:ip:{ip}", limit, 60)
    if not allowed:
        logger.warning("Rate limit hit: bucket=%s ip=%s path=%s", name, ip, request.url.path)
        return JSONResponse(
            status_code=429,
            content={"detail": "Too Many Requests"},
            headers={"Retry-After": "60"},
        )
    return await call_next(request)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    if not get_settings().security_headers_enabled:
        return response

    defaults = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
        "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
        "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'; base-uri 'none'",
    }
    for name, value in defaults.items():
        response.headers.setdefault(name, value)
    return response


@app.get("/health")
async def health_check():
    return {"status": "ok"}
