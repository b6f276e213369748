from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware

from app.api.endpoints import auth, csrf, transactions
from app.config import settings
from app.core.exceptions import Conflict, register_exception_handlers
from app.core.logging import app_logger
from app.core.middleware import (
    CSRFMiddleware,
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
    SessionInjectionMiddleware,
)
from app.database import AsyncSessionLocal, engine
from app.models import Base
from app.schemas.auth import EmployeeCreate
from app.services.auth import AuthService


async def bootstrap_employee() -> None:
    """Provision the configured employee account if it does not exist yet."""
    if not (
        settings.BOOTSTRAP_EMPLOYEE_NUMBER
        and settings.BOOTSTRAP_EMPLOYEE_NAME
        and settings.BOOTSTRAP_EMPLOYEE_PASSWORD
    ):
        return

    data = EmployeeCreate(
        employee_number=settings.BOOTSTRAP_EMPLOYEE_NUMBER,
        full_name=settings.BOOTSTRAP_EMPLOYEE_NAME,
        password=settings.BOOTSTRAP_EMPLOYEE_PASSWORD,
    )
    async with AsyncSessionLocal() as db:
        try:
            await AuthService(db).create_employee(data)
        except Conflict:
            app_logger.info(f"Bootstrap employee {data.employee_number} already exists")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DB_CREATE_TABLES:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    await bootstrap_employee()
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

register_exception_handlers(app)

# Middleware added last runs first on the way in.

# Resolve the session cookie into request.state.identity (innermost)
app.add_middleware(SessionInjectionMiddleware)

# Reject state-changing requests without a matching CSRF token
app.add_middleware(CSRFMiddleware)

# Global per-IP request budget
app.add_middleware(RateLimitMiddleware)

app.add_middleware(RequestSizeLimitMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", settings.CSRF_HEADER_NAME],
)

# Compress larger responses for clients that accept gzip
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Logs every request, including ones rejected by the middleware above
app.add_middleware(RequestLoggingMiddleware)

# Hardened headers on every response (outermost)
app.add_middleware(SecurityHeadersMiddleware, allowed_origins=settings.ALLOWED_ORIGINS)

if settings.HTTPS_ONLY:
    app.add_middleware(HTTPSRedirectMiddleware)

app.include_router(csrf.router, tags=["csrf"])
app.include_router(auth.router, tags=["auth"])
app.include_router(transactions.router, tags=["transactions"])


@app.get("/")
async def root():
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
