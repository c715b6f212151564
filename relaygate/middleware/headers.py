from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": (
        "Content-Type, X-Req-Id, X-Request-Id, X-Correlation-Id, "
        "X-Forwarded-For, X-Real-IP, X-Forwarded-Proto, X-Forwarded-Host"
    ),
}


class CorsMiddleware(BaseHTTPMiddleware):
    """Static CORS headers on everything; any OPTIONS request ends here with 204."""

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)

        response: Response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        if "server" in response.headers:
            del response.headers["server"]
        if "X-Powered-By" in response.headers:
            del response.headers["X-Powered-By"]

        # Lander answers are per-visitor
        if request.url.path == "/":
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"

        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["X-Content-Type-Options"] = "nosniff"

        return response
