from fastapi import APIRouter, Response

from app.core.security import create_csrf_token, set_csrf_cookie
from app.schemas.common import CsrfTokenResponse

router = APIRouter()


@router.get("/csrf-token", response_model=CsrfTokenResponse)
async def get_csrf_token(response: Response):
    """
    Issue a CSRF token.

    The same value is set as an HttpOnly cookie; clients echo the body copy
    in the X-CSRF-Token header on every state-changing request.
    """
    token = create_csrf_token()
    set_csrf_cookie(response, token)
    return CsrfTokenResponse(csrf_token=token)
