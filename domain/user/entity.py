"""
用户领域实体 - 包含核心业务规则
"""
from datetime import datetime, timezone
from typing import Optional
from dataclasses import dataclass
import re

from shared.constants import UserRole


USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9._-]{3,24}$")
USERNAME_MAX_LENGTH = 24
USERNAME_MIN_LENGTH = 3

_EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def normalize_email(email: Optional[str]) -> str:
    return f"{email or ''}".strip().lower()


def normalize_username(username: Optional[str]) -> str:
    return f"{username or ''}".strip()


def is_valid_username(username: str) -> bool:
    return bool(USERNAME_PATTERN.match(username or ""))


@dataclass
class User:
    """用户实体 - 领域核心

    `role` is kept as the raw stored string: a user row may predate role
    assignment, and the chat core decides eligibility via `chat_role`.
    """

    id: Optional[int]
    google_id: str
    email: str
    username: str
    role: Optional[str] = UserRole.INFLUENCER.value
    display_name: Optional[str] = None
    picture: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """初始化后的业务规则验证"""
        self.email = normalize_email(self.email)
        self.validate_email()
        self.validate_username()

    def validate_email(self) -> None:
        if not _EMAIL_PATTERN.match(self.email):
            raise ValueError(f"Invalid email: {self.email}")

    def validate_username(self) -> None:
        if not is_valid_username(self.username):
            raise ValueError(f"Invalid username: {self.username}")

    @property
    def chat_role(self) -> Optional[UserRole]:
        """Role usable for joining a room, or None if missing/invalid."""
        return UserRole.parse(self.role)

    def rename(self, username: str) -> None:
        """业务规则：修改用户名（唯一性由领域服务检查）"""
        self.username = username
        self.validate_username()
        self.touch()

    def assign_role(self, role: UserRole) -> None:
        self.role = role.value
        self.touch()

    def refresh_google_profile(self, *, google_id: str, email: str,
                               display_name: str, picture: str) -> None:
        """Sync fields owned by the identity provider after a login."""
        self.google_id = google_id
        self.email = normalize_email(email)
        self.validate_email()
        self.display_name = display_name or self.display_name or self.username
        self.picture = picture or self.picture or ""
        self.touch()

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)
