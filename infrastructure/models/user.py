"""
用户数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime, timezone

from .base import Base


class UserModel(Base):
    """
    用户数据库模型

    所有业务规则都在 domain.user.entity.User 中
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    # 身份信息（Google 账号）
    google_id = Column(String(64), unique=True, index=True, nullable=False, comment="Google 账号 ID")
    email = Column(String(254), unique=True, index=True, nullable=False, comment="邮箱")

    # 资料
    username = Column(String(24), unique=True, index=True, nullable=False, comment="用户名")
    role = Column(String(20), nullable=True, comment="聊天角色 influencer/brand")
    display_name = Column(String(100), nullable=True, comment="显示名")
    picture = Column(String(512), nullable=True, comment="头像 URL")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    def __repr__(self):
        return f"<UserModel(id={self.id}, username='{self.username}', role='{self.role}')>"
