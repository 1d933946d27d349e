import logging
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from aurora_hunts.api import auth, hunts, maintenance, participants
from aurora_hunts.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Aurora Hunts", version="0.1.0")


# =============================================================================
# CSRF Origin Validation Middleware
# =============================================================================


class CSRFOriginMiddleware(BaseHTTPMiddleware):
    """
    Validate Origin/Referer headers on state-changing requests to prevent CSRF.

    - POST, PUT, PATCH, DELETE must include a matching Origin or Referer header
    - GET, HEAD, OPTIONS are always allowed (safe methods)
    - Health check and cron-secret protected endpoints are exempt
    """

    SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}
    EXEMPT_PATHS = {"/health", "/maintenance/cleanup-hunt-participants"}

    def _reject(self, kind: str, value: str, expected_host: str, path: str) -> JSONResponse:
        logger.warning(
            "CSRF %s mismatch: %s=%s, expected=%s, path=%s",
            kind,
            kind,
            value,
            expected_host,
            path,
        )
        return JSONResponse(status_code=403, content={"detail": "Origin validation failed"})

    async def dispatch(self, request: Request, call_next):
        if request.method in self.SAFE_METHODS:
            return await call_next(request)

        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        expected_host = request.headers.get("host", "")

        # Origin takes precedence over Referer
        for header in ("origin", "referer"):
            value = request.headers.get(header)
            if value:
                if urlparse(value).netloc != expected_host:
                    return self._reject(header, value, expected_host, request.url.path)
                return await call_next(request)

        logger.warning(
            "CSRF missing origin/referer: method=%s, path=%s",
            request.method,
            request.url.path,
        )
        return JSONResponse(status_code=403, content={"detail": "Origin validation failed"})


app.add_middleware(CSRFOriginMiddleware)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# Include routers
app.include_router(auth.router)
app.include_router(hunts.router)
app.include_router(participants.router)
app.include_router(maintenance.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
