from urllib.parse import urlparse
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response, JSONResponse
from app.core.config import get_settings

settings = get_settings()

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}


class CSRFMiddleware(BaseHTTPMiddleware):
    """
    Origin/Referer check for state-changing requests that authenticate with
    the access token cookie. Bearer-token clients are not exposed to CSRF and
    pass through unchecked.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method in SAFE_METHODS:
            return await call_next(request)

        if "access_token" not in request.cookies:
            return await call_next(request)

        origin = request.headers.get("origin")
        if not origin:
            referer = request.headers.get("referer")
            if referer:
                parsed = urlparse(referer)
                origin = f"{parsed.scheme}://{parsed.netloc}"

        if not origin:
            return self._reject(request, "missing origin/referer")
        if origin not in settings.allowed_origins:
            return self._reject(request, "invalid origin")

        return await call_next(request)

    @staticmethod
    def _reject(request: Request, reason: str) -> JSONResponse:
        message = f"CSRF validation failed: {reason}"
        # Relay clients expect the relay error envelope.
        if request.url.path.startswith(settings.functions_prefix):
            return JSONResponse(status_code=403, content={"error": message})
        return JSONResponse(status_code=403, content={"detail": message})
