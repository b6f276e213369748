from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import (
    enforce_auth_rate_limit,
    get_client_ip,
    get_current_identity,
    get_session_token,
)
from app.core.security import clear_session_cookie, set_session_cookie
from app.database import get_db
from app.schemas.auth import (
    AuthResponse,
    CustomerLogin,
    CustomerRegister,
    EmployeeLogin,
    MeResponse,
)
from app.schemas.common import MessageResponse
from app.services.auth import AuthService, ClientInfo
from app.services.sessions import Identity

router = APIRouter(prefix="/auth", dependencies=[Depends(enforce_auth_rate_limit)])


def client_info(request: Request) -> ClientInfo:
    return ClientInfo(
        session_token=get_session_token(request),
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )


@router.post(
    "/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED
)
async def register(
    data: CustomerRegister,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """
    Register a customer and sign them in.

    - **username**: 3-30 letters, digits, _ or -
    - **fullName**: letters, spaces, ' and -
    - **idNumber**: 6-20 letters or digits
    - **accountNumber**: 8-20 digits
    - **password**: 8-128 chars with upper, lower, digit and symbol
    """
    result = await AuthService(db).register(data, client_info(request))
    set_session_cookie(response, result.session_token)
    return AuthResponse(message="Registered", user=result.identity)


@router.post("/login", response_model=AuthResponse)
async def login(
    data: CustomerLogin,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Customer login. Issues a fresh session cookie."""
    result = await AuthService(db).login(data, client_info(request))
    set_session_cookie(response, result.session_token)
    return AuthResponse(message="Logged in", user=result.identity)


@router.post("/employee/login", response_model=AuthResponse)
async def employee_login(
    data: EmployeeLogin,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Employee login. Issues a fresh session cookie with the employee role."""
    result = await AuthService(db).employee_login(data, client_info(request))
    set_session_cookie(response, result.session_token)
    return AuthResponse(message="Employee logged in", user=result.identity)


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    """Destroy the current session. Succeeds without one too."""
    await AuthService(db).logout(get_session_token(request))
    clear_session_cookie(response)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=MeResponse)
async def me(identity: Identity = Depends(get_current_identity)):
    return MeResponse(user=identity)
