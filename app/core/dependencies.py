from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.constants import Role
from app.core.exceptions import Forbidden, Unauthorized
from app.database import get_db
from app.services.sessions import Identity
from app.services.throttle import RequestRateLimiter


def get_client_ip(request: Request) -> str:
    """
    Resolve the client IP used for rate limiting and logging.

    Forwarding headers are only honoured when the app runs behind a trusted
    proxy, otherwise any client could pick its own rate-limit bucket.
    """
    if settings.TRUST_PROXY_HEADERS:
        client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
        if not client_ip:
            client_ip = request.headers.get("X-Real-IP", "").strip()
        if client_ip:
            return client_ip
    if request.client:
        return request.client.host
    return "unknown"


def get_session_token(request: Request) -> str | None:
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


async def get_current_identity(request: Request) -> Identity:
    """
    Get the authenticated identity from request state.

    SessionInjectionMiddleware has already resolved the session cookie. This
    dependency simply retrieves the identity and raises 401 if not present.

    Raises:
        Unauthorized: no valid, unexpired session
    """
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise Unauthorized()
    return identity


def require_role(role: Role):
    """Build a dependency that admits only identities holding ``role``."""

    async def guard(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role != role:
            raise Forbidden(f"This action requires the {role.value} role")
        return identity

    return guard


require_customer = require_role(Role.CUSTOMER)
require_employee = require_role(Role.EMPLOYEE)


async def enforce_auth_rate_limit(
    request: Request, db: AsyncSession = Depends(get_db)
) -> None:
    """Per-IP request budget shared by all authentication endpoints."""
    await RequestRateLimiter(db).check(
        "auth",
        get_client_ip(request),
        settings.AUTH_RATE_LIMIT_REQUESTS,
        settings.AUTH_RATE_LIMIT_WINDOW_SECONDS,
    )
