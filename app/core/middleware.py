import json
import time
from typing import Callable

from fastapi import Request, Response, status
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.config import settings
from app.core.dependencies import get_client_ip
from app.core.exceptions import (
    Forbidden,
    RateLimited,
    error_response,
    log_unhandled_error,
    server_error_response,
)
from app.core.logging import api_logger, log_security_event
from app.core.security import csrf_tokens_match
from app.database import AsyncSessionLocal
from app.services.sessions import SessionStore
from app.services.throttle import Throttle

DOCS_PATHS = {"/docs", "/docs/oauth2-redirect", "/redoc", "/openapi.json"}

PAYLOAD_TOO_LARGE = "Request body too large"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all API requests with details including path, parameters,
    timestamp, status code, and response time.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process the request and log details.

        Args:
            request: The incoming request
            call_next: The next middleware or route handler

        Returns:
            Response: The response from the route handler
        """
        if request.url.path in settings.LOG_EXCLUDED_PATHS:
            return await call_next(request)

        start_time = time.time()

        method = request.method
        path = request.url.path
        query_params = dict(request.query_params) if request.query_params else {}
        client_ip = get_client_ip(request)
        user_agent = request.headers.get("User-Agent", "Unknown")

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            api_logger.error(
                f"{method} {path} - Status: 500 - IP: {client_ip} - "
                f"Identity: {self._identity_label(request)} - "
                f"Query: {json.dumps(query_params)} - Error: {e.__class__.__name__}"
            )
            raise

        duration_ms = int((time.time() - start_time) * 1000)

        # Identity is resolved further down the stack, so read it afterwards
        api_logger.info(
            f"{method} {path} - Status: {status_code} - "
            f"IP: {client_ip} - Identity: {self._identity_label(request)} - "
            f"UserAgent: {user_agent} - Query: {json.dumps(query_params)} - "
            f"Duration: {duration_ms}ms"
        )
        return response

    @staticmethod
    def _identity_label(request: Request) -> str:
        identity = getattr(request.state, "identity", None)
        return identity.label if identity else "Anonymous"


class SessionInjectionMiddleware(BaseHTTPMiddleware):
    """
    Middleware to resolve the session cookie and inject the Identity into
    request state.

    This middleware:
    - Reads the opaque session id from the session cookie
    - Looks the session up server-side, ignoring expired ones
    - Stores the Identity in request.state.identity for downstream use
    - Leaves identity as None for missing or unknown sessions
    - Skips public paths that never need an identity
    """

    PUBLIC_PATHS = {"/", "/health", "/csrf-token"} | DOCS_PATHS

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.identity = None
        request.state.session_token = None

        if request.url.path in self.PUBLIC_PATHS:
            return await call_next(request)

        token = request.cookies.get(settings.SESSION_COOKIE_NAME)
        if token:
            request.state.session_token = token
            async with AsyncSessionLocal() as db:
                request.state.identity = await SessionStore(db).load(token)

        return await call_next(request)


class CSRFMiddleware(BaseHTTPMiddleware):
    """Double-submit check on every state-changing request."""

    PROTECTED_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method in self.PROTECTED_METHODS:
            cookie_token = request.cookies.get(settings.CSRF_COOKIE_NAME)
            header_token = request.headers.get(settings.CSRF_HEADER_NAME)
            if not csrf_tokens_match(cookie_token, header_token):
                log_security_event(
                    "csrf_rejected",
                    method=request.method,
                    path=request.url.path,
                    ip=get_client_ip(request),
                )
                return error_response(
                    Forbidden.status_code, "csrf_invalid", "Invalid or missing CSRF token"
                )
        return await call_next(request)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Global per-IP request budget."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in settings.RATE_LIMIT_EXEMPT_PATHS:
            return await call_next(request)

        client_ip = get_client_ip(request)
        async with AsyncSessionLocal() as db:
            is_limited, reset_time = await Throttle(db).is_rate_limited(
                f"ip:global:{client_ip}",
                settings.GLOBAL_RATE_LIMIT_REQUESTS,
                settings.GLOBAL_RATE_LIMIT_WINDOW_SECONDS,
            )

        if is_limited:
            log_security_event("rate_limited", scope="global", ip=client_ip)
            return error_response(
                RateLimited.status_code,
                RateLimited.code,
                RateLimited.default_message,
                headers={"Retry-After": str(reset_time)},
            )
        return await call_next(request)


class RequestSizeLimitMiddleware:
    """
    Cap request bodies at MAX_REQUEST_BODY_BYTES.

    A declared Content-Length over the cap is refused before the app runs.
    Bodies sent without one (chunked uploads) are counted as they arrive, and
    once the count passes the cap the client gets a 413 and the app a disconnect.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        max_bytes = settings.MAX_REQUEST_BODY_BYTES
        content_length = Headers(scope=scope).get("content-length")
        if content_length is not None:
            try:
                size = int(content_length)
            except ValueError:
                response = error_response(
                    status.HTTP_400_BAD_REQUEST, "invalid_input", "Invalid Content-Length"
                )
                await response(scope, receive, send)
                return
            if size > max_bytes:
                await self._too_large()(scope, receive, send)
                return

        received = 0
        rejected = False
        response_started = False

        async def guarded_send(message: Message) -> None:
            nonlocal response_started
            # The 413 below already answered the client
            if rejected:
                return
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        async def limited_receive() -> Message:
            nonlocal received, rejected
            if rejected:
                return {"type": "http.disconnect"}
            message = await receive()
            if message["type"] != "http.request":
                return message
            received += len(message.get("body", b""))
            if received <= max_bytes:
                return message

            if not response_started:
                await self._too_large()(scope, receive, send)
                rejected = True
            # Downstream sees the client go away and stops reading
            return {"type": "http.disconnect"}

        await self.app(scope, limited_receive, guarded_send)

    @staticmethod
    def _too_large() -> Response:
        return error_response(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "payload_too_large", PAYLOAD_TOO_LARGE
        )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Hardened response headers on every response."""

    def __init__(self, app, allowed_origins: list[str] | None = None):
        super().__init__(app)
        connect_src = " ".join(["'self'", *(allowed_origins or [])])
        self.content_security_policy = (
            "default-src 'self'; "
            "script-src 'self'; "
            "style-src 'self'; "
            "img-src 'self' data:; "
            f"connect-src {connect_src}; "
            "frame-ancestors 'none'; "
            "base-uri 'self'; "
            "form-action 'self'"
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            response = await call_next(request)
        except Exception as exc:
            # Render here so the 500 still passes through the headers below
            log_unhandled_error(request, exc)
            response = server_error_response()

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = (
            "max-age=15552000; includeSubDomains; preload"
        )
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["X-XSS-Protection"] = "0"
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
        # Swagger UI loads its assets from a CDN
        if request.url.path not in DOCS_PATHS:
            response.headers["Content-Security-Policy"] = self.content_security_policy
        return response
