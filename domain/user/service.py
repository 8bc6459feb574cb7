"""
用户领域服务 - 处理复杂的业务逻辑

Usernames are unique and allocated from a seed (Google display name or the
local part of the email); roles are restricted to the fixed chat roles.
"""
from dataclasses import dataclass
from typing import Optional, List
import re
import secrets
import string

from shared.constants import DEFAULT_ROLE, UserRole
from domain.common.exceptions import (
    DomainValidationException,
    InvalidRoleException,
    InvalidUsernameException,
    ProfileUpdateEmptyException,
    UsernameAlreadyExistsException,
)
from .entity import (
    User,
    USERNAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
    is_valid_username,
    normalize_email,
    normalize_username,
)
from .events import UserCreated, UserProfileUpdated
from .repository import UserRepository


_DISALLOWED_USERNAME_CHARS = re.compile(r"[^a-z0-9._-]")
_RANDOM_ALPHABET = string.ascii_lowercase + string.digits


@dataclass
class GoogleProfile:
    """Verified claims of a Google ID token."""
    sub: str
    email: str
    name: str = ""
    picture: str = ""


def build_base_username(seed: Optional[str]) -> str:
    """Derive a username candidate from free text.

    Keeps lower-case letters, digits, dot, underscore and hyphen; seeds that
    are too short after cleaning fall back to a random `userXXXXXX` name.
    """
    cleaned = _DISALLOWED_USERNAME_CHARS.sub("", f"{seed or ''}".strip().lower())
    if len(cleaned) >= USERNAME_MIN_LENGTH:
        return cleaned[:USERNAME_MAX_LENGTH]
    return "user" + "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(6))


class UserDomainService:
    """用户领域服务 - 编排复杂的业务流程"""

    def __init__(self, user_repository: UserRepository):
        self.user_repository = user_repository
        self.events: List = []  # 领域事件收集

    async def allocate_unique_username(self, seed: Optional[str],
                                       exclude_user_id: Optional[int] = None) -> str:
        """Return the first free candidate among base, base-1, base-2, ...

        The base is trimmed so that `base-N` never exceeds the length limit.
        """
        base = build_base_username(seed)
        candidate = base
        counter = 1
        while await self.user_repository.exists_by_username(candidate, exclude_user_id):
            suffix = str(counter)
            max_base = max(USERNAME_MIN_LENGTH, USERNAME_MAX_LENGTH - len(suffix) - 1)
            candidate = f"{base[:max_base]}-{suffix}"
            counter += 1
        return candidate

    async def upsert_google_user(self, profile: GoogleProfile) -> User:
        """Create or refresh the local user for a verified Google account."""
        google_id = f"{profile.sub or ''}".strip()
        email = normalize_email(profile.email)
        display_name = f"{profile.name or ''}".strip()
        picture = f"{profile.picture or ''}".strip()

        if not google_id or not email:
            raise DomainValidationException("Invalid Google payload.", field="sub")

        user = await self.user_repository.get_by_google_id(google_id)
        if user is None:
            user = await self.user_repository.get_by_email(email)

        if user is None:
            seed = display_name or email.split("@")[0] or "user"
            username = await self.allocate_unique_username(seed)
            user = await self.user_repository.create(User(
                id=None,
                google_id=google_id,
                email=email,
                username=username,
                role=DEFAULT_ROLE.value,
                display_name=display_name or seed,
                picture=picture,
            ))
            self.events.append(UserCreated(user_id=user.id, username=user.username, email=user.email))
            return user

        user.refresh_google_profile(
            google_id=google_id,
            email=email,
            display_name=display_name,
            picture=picture,
        )
        # 历史数据中角色可能缺失或非法，登录时修复为默认角色
        if user.chat_role is None:
            user.assign_role(DEFAULT_ROLE)
        return await self.user_repository.update(user)

    async def update_username(self, user: User, username_raw: Optional[str]) -> User:
        # 缺失的用户名按空串处理，走格式校验而不是“未提供字段”
        return await self.update_profile(user, username=username_raw if isinstance(username_raw, str) else "")

    async def update_profile(self, user: User, *,
                             username: Optional[str] = None,
                             role: Optional[str] = None) -> User:
        """业务规则：更新用户名和/或角色，至少提供一项"""
        if not isinstance(username, str) and not isinstance(role, str):
            raise ProfileUpdateEmptyException()

        updated_fields = []
        if isinstance(username, str):
            new_username = normalize_username(username)
            if not is_valid_username(new_username):
                raise InvalidUsernameException(new_username)
            if await self.user_repository.exists_by_username(new_username, user.id):
                raise UsernameAlreadyExistsException(new_username)
            if new_username != user.username:
                user.rename(new_username)
                updated_fields.append("username")

        if isinstance(role, str):
            new_role = UserRole.parse(role)
            if new_role is None:
                raise InvalidRoleException(role)
            if new_role.value != user.role:
                user.assign_role(new_role)
                updated_fields.append("role")

        user = await self.user_repository.update(user)
        if updated_fields:
            self.events.append(UserProfileUpdated(user_id=user.id, updated_fields=updated_fields))
        return user

    def get_domain_events(self) -> List:
        """获取并清空领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
