from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.core.constants import API_VERSION_HEADER
from src.utils.settings.app import AppSettings

CORS_HEADERS = {
    "Access-Control-Allow-Origin",
    "Access-Control-Allow-Methods",
    "Access-Control-Allow-Headers",
    "Access-Control-Allow-Credentials",
    "Access-Control-Expose-Headers",
    "Access-Control-Max-Age",
}

# Balances, payment details and admin listings must never be cached
NO_STORE_PREFIXES = ("/v1/keys", "/v1/payments", "/v1/admin", "/payos")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Security and versioning headers for every response."""

    def __init__(self, app, is_production: bool = False):
        super().__init__(app)
        self.is_production = is_production
        settings = AppSettings()
        self.base_headers = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Referrer-Policy": "no-referrer",
            "X-Permitted-Cross-Domain-Policies": "none",
            API_VERSION_HEADER: settings.API_VERSION,
        }
        if is_production:
            # JSON only API, nothing may be embedded or scripted
            self.base_headers["Content-Security-Policy"] = (
                "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"
            )

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        headers = dict(self.base_headers)
        if request.url.path.startswith(NO_STORE_PREFIXES):
            headers["Cache-Control"] = "no-store"
        if self.is_production and request.url.scheme == "https":
            headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        for key, value in headers.items():
            if key not in response.headers and key not in CORS_HEADERS:
                response.headers[key] = value

        return response
