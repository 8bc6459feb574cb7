"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
from pydantic import BaseModel, Field, model_serializer, ConfigDict
from typing import Optional
from datetime import datetime, timezone


def to_utc_z(value: Optional[datetime] = None) -> str:
    """Render a datetime (naive = UTC, default now) as ISO8601 ending in Z."""
    ts = value or datetime.now(timezone.utc)
    ts = ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    model_config = ConfigDict(populate_by_name=True)

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                return to_utc_z(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class UserResponseDTO(DTOBase):
    """用户响应DTO（对外安全字段，不含 google_id）"""
    id: int
    email: str
    username: str
    role: Optional[str] = None
    display_name: str = Field(default="", serialization_alias="displayName")
    picture: str = ""


class UpdateUsernameDTO(DTOBase):
    """修改用户名请求"""
    username: Optional[str] = Field(None, description="新用户名，3-24 个字符")


class UpdateProfileDTO(DTOBase):
    """修改资料请求，至少提供一项"""
    username: Optional[str] = Field(None, description="新用户名")
    role: Optional[str] = Field(None, description="influencer 或 brand")


class ProfileUpdateResultDTO(DTOBase):
    """资料更新结果：新的认证令牌 + 最新资料"""
    token: Optional[str] = None
    user: UserResponseDTO


class CurrentUserDTO(DTOBase):
    user: UserResponseDTO
