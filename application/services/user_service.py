"""
用户应用服务（application/services）- 编排领域服务和处理应用逻辑
"""
from typing import Any, Callable, Dict, Optional

from domain.user.entity import User, normalize_email
from domain.user.repository import UserRepository
from domain.user.service import GoogleProfile, UserDomainService
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.common.exceptions import UserNotFoundException
from application.dto import UserResponseDTO, ProfileUpdateResultDTO
from application.services.token_service import TokenService
from core.logging_config import get_logger


logger = get_logger(__name__)


async def find_user_from_claims(repo: UserRepository, claims: Optional[Dict[str, Any]]) -> Optional[User]:
    """Locate the user a token was issued for: by id, then Google id, then email."""
    if not claims:
        return None

    sub = claims.get("sub")
    if sub is not None:
        try:
            user = await repo.get_by_id(int(sub))
        except (TypeError, ValueError):
            user = None
        if user:
            return user

    google_id = claims.get("google_id")
    if google_id:
        user = await repo.get_by_google_id(str(google_id))
        if user:
            return user

    email = claims.get("email")
    if email:
        return await repo.get_by_email(normalize_email(email))
    return None


def to_response_dto(user: User) -> UserResponseDTO:
    """将领域实体转换为响应DTO（安全字段）"""
    return UserResponseDTO(
        id=user.id,
        email=user.email,
        username=user.username,
        role=user.role,
        display_name=user.display_name or "",
        picture=user.picture or "",
    )


class UserApplicationService:
    """用户应用服务 - 处理应用层逻辑"""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork],
                 token_service: Optional[TokenService] = None):
        self._uow_factory = uow_factory
        self._token_service = token_service or TokenService()

    async def get_user(self, user_id: int) -> UserResponseDTO:
        """获取用户信息"""
        async with self._uow_factory(readonly=True) as uow:
            user = await uow.user_repository.get_by_id(user_id)
            if not user:
                raise UserNotFoundException(str(user_id))
            return to_response_dto(user)

    async def authenticate(self, token: str) -> Optional[User]:
        """校验令牌并返回对应用户；令牌无效或用户不存在时返回 None"""
        claims = self._token_service.verify_auth_token(token)
        if claims is None:
            return None
        async with self._uow_factory(readonly=True) as uow:
            return await find_user_from_claims(uow.user_repository, claims)

    async def login_with_google(self, profile: GoogleProfile) -> str:
        """Upsert the Google account's user and issue an auth token."""
        async with self._uow_factory() as uow:
            domain_service = UserDomainService(uow.user_repository)
            user = await domain_service.upsert_google_user(profile)
            self._log_events(domain_service)
        logger.info("google_login", user_id=user.id, username=user.username)
        return self._token_service.create_auth_token(user)

    async def update_username(self, user_id: int, username: Optional[str]) -> ProfileUpdateResultDTO:
        async with self._uow_factory() as uow:
            user = await self._require_user(uow, user_id)
            domain_service = UserDomainService(uow.user_repository)
            user = await domain_service.update_username(user, username)
            self._log_events(domain_service)
        return self._profile_result(user)

    async def update_profile(self, user_id: int, *, username: Optional[str] = None,
                             role: Optional[str] = None) -> ProfileUpdateResultDTO:
        async with self._uow_factory() as uow:
            user = await self._require_user(uow, user_id)
            domain_service = UserDomainService(uow.user_repository)
            user = await domain_service.update_profile(user, username=username, role=role)
            self._log_events(domain_service)
        return self._profile_result(user)

    async def _require_user(self, uow: AbstractUnitOfWork, user_id: int) -> User:
        user = await uow.user_repository.get_by_id(user_id)
        if not user:
            raise UserNotFoundException(str(user_id))
        return user

    def _profile_result(self, user: User) -> ProfileUpdateResultDTO:
        # 资料变化后重新签发令牌，客户端据此发送 sync_username
        return ProfileUpdateResultDTO(
            token=self._token_service.create_auth_token(user),
            user=to_response_dto(user),
        )

    @staticmethod
    def _log_events(domain_service: UserDomainService) -> None:
        for event in domain_service.get_domain_events():
            logger.info("user_domain_event", event=type(event).__name__, user_id=event.user_id)
