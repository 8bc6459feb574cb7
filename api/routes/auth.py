"""
认证路由 - Google OAuth 登录
"""
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from application.dto import CurrentUserDTO, UserResponseDTO
from application.services.user_service import UserApplicationService
from api.dependencies import get_current_user, get_google_client, get_user_service
from core.config import settings
from core.exceptions import OAuthNotConfiguredException
from core.logging_config import get_logger
from core.response import success_response, Response as ApiResponse
from domain.common.exceptions import BusinessException
from domain.user.service import GoogleProfile
from infrastructure.external.google_oauth import GoogleOAuthClient, GoogleOAuthError


logger = get_logger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["认证"]
)


def _login_error(message: str) -> RedirectResponse:
    return RedirectResponse(f"{settings.FRONTEND_URL}/login?error={quote(message, safe='')}")


@router.get("/google/start", summary="跳转 Google 授权")
async def google_start(client: GoogleOAuthClient = Depends(get_google_client)):
    if not client.configured:
        raise OAuthNotConfiguredException()
    return RedirectResponse(client.authorization_url())


@router.get("/google/callback", summary="Google 授权回调")
async def google_callback(
    code: str = "",
    client: GoogleOAuthClient = Depends(get_google_client),
    service: UserApplicationService = Depends(get_user_service),
):
    """
    用授权码完成登录，签发令牌后重定向回前端

    任何失败都重定向到前端登录页并附带 `error` 参数。
    """
    if not client.configured:
        return _login_error("Google OAuth is not configured on server.")
    if not code:
        return _login_error("Missing Google authorization code.")

    try:
        id_token = await client.exchange_code(code)
        claims = await client.verify_id_token(id_token)
        if not claims.get("sub") or not claims.get("email"):
            return _login_error("Unable to verify Google account.")
        token = await service.login_with_google(GoogleProfile(
            sub=str(claims["sub"]),
            email=str(claims["email"]),
            name=str(claims.get("name") or ""),
            picture=str(claims.get("picture") or ""),
        ))
    except (GoogleOAuthError, BusinessException) as exc:
        logger.warning("google_login_failed", error=str(exc))
        return _login_error("Google login failed. Try again.")
    except Exception as exc:
        logger.error("google_login_error", error=str(exc), exc_info=True)
        return _login_error("Google login failed. Try again.")

    return RedirectResponse(f"{settings.FRONTEND_URL}/auth/callback?token={quote(token, safe='')}")


@router.get("/me", summary="获取当前登录用户", response_model=ApiResponse[CurrentUserDTO])
async def auth_me(current_user: UserResponseDTO = Depends(get_current_user)):
    return success_response(data=CurrentUserDTO(user=current_user))
