"""
用户领域事件 - 记录重要的业务事件
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class UserCreated:
    """用户创建事件（首次 Google 登录）"""
    user_id: int
    username: str
    email: str
    event_id: Optional[str] = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class UserProfileUpdated:
    """用户资料更新事件"""
    user_id: int
    updated_fields: list
    event_id: Optional[str] = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
