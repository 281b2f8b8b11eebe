from fastapi import APIRouter, Depends

from attendance_bridge.api.deps import get_login_service
from attendance_bridge.schemas.attendance import ErrorResponse, LoginRequest, LoginResponse
from attendance_bridge.services import LoginService

router = APIRouter()


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    }
)
async def login(
    credentials: LoginRequest,
    service: LoginService = Depends(get_login_service)
):
    """Sign in a staff member by mobile number."""
    return await service.login(credentials.mobile)
