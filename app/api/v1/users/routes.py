from fastapi import APIRouter, Depends, status

from app.api.deps import get_user_service, require_admin
from app.api.v1.auth.schemas import UserListResponse, UserResponse
from app.domain.auth.models import User
from app.domain.auth.service import UserService

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("", response_model=UserListResponse, status_code=status.HTTP_200_OK)
async def list_users(
    _admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
):
    """List all users without password hashes (admin only)"""
    users = await user_service.list_users()
    return UserListResponse(users=[UserResponse.model_validate(user) for user in users])
