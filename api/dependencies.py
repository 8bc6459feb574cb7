"""
API依赖项 - 认证和服务注入
"""
from fastapi import Depends, Request, WebSocket
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from application.services.user_service import UserApplicationService, to_response_dto
from application.services.realtime_service import RealtimeService
from application.dto import UserResponseDTO
from core.exceptions import UnauthorizedException
from infrastructure.external.google_oauth import GoogleOAuthClient
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)
) -> str:
    """从 Bearer 头中提取 token"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise UnauthorizedException()


async def get_user_service() -> UserApplicationService:
    return UserApplicationService(uow_factory=SQLAlchemyUnitOfWork)


async def get_current_user(
    token: str = Depends(get_token),
    service: UserApplicationService = Depends(get_user_service)
) -> UserResponseDTO:
    """获取当前登录用户"""
    user = await service.authenticate(token)
    if user is None:
        raise UnauthorizedException()
    return to_response_dto(user)


def get_google_client(request: Request) -> GoogleOAuthClient:
    client = getattr(request.app.state, "google_oauth", None)
    if client is None:
        client = GoogleOAuthClient()
        request.app.state.google_oauth = client
    return client


def get_realtime_service(ws: WebSocket) -> RealtimeService:
    svc = getattr(ws.app.state, "realtime_service", None)
    if svc is None:
        raise RuntimeError("Realtime service not initialized. Ensure lifespan sets app.state.realtime_service.")
    return svc
