"""
用户API路由 - FastAPI表现层
"""
from fastapi import APIRouter, Depends

from application.services.user_service import UserApplicationService
from core.response import success_response, Response as ApiResponse
from application.dto import (
    CurrentUserDTO,
    ProfileUpdateResultDTO,
    UpdateProfileDTO,
    UpdateUsernameDTO,
    UserResponseDTO,
)
from api.dependencies import get_current_user, get_user_service

router = APIRouter(
    prefix="/users",
    tags=["用户管理"]
)


@router.get("/me", summary="获取当前用户信息", response_model=ApiResponse[CurrentUserDTO])
async def get_current_user_info(
    current_user: UserResponseDTO = Depends(get_current_user)
):
    return success_response(data=CurrentUserDTO(user=current_user))


@router.patch("/me/username", summary="修改用户名", response_model=ApiResponse[ProfileUpdateResultDTO])
async def update_username(
    payload: UpdateUsernameDTO,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: UserApplicationService = Depends(get_user_service)
):
    """
    修改当前用户的用户名

    - **username**: 3-24 个字符，仅字母、数字、点、下划线、连字符

    成功后返回新的认证令牌，客户端应通过 `sync_username` 同步到聊天连接。
    """
    result = await service.update_username(current_user.id, payload.username)
    return success_response(data=result, message="Username updated")


@router.patch("/me/profile", summary="修改资料", response_model=ApiResponse[ProfileUpdateResultDTO])
async def update_profile(
    payload: UpdateProfileDTO,
    current_user: UserResponseDTO = Depends(get_current_user),
    service: UserApplicationService = Depends(get_user_service)
):
    """
    修改用户名和/或角色（influencer | brand），至少提供一项
    """
    result = await service.update_profile(current_user.id, username=payload.username, role=payload.role)
    return success_response(data=result, message="Profile updated")
