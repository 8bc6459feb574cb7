"""
用户仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from domain.user.entity import User
from domain.user.repository import UserRepository
from infrastructure.models.user import UserModel
from core.logging_config import get_logger
from domain.common.exceptions import (
    UsernameAlreadyExistsException,
    UserAlreadyExistsException,
    UserNotFoundException,
)


logger = get_logger(__name__)


class SQLAlchemyUserRepository(UserRepository):
    """用户仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: UserModel) -> User:
        """将数据库模型转换为领域实体"""
        return User(
            id=model.id,
            google_id=model.google_id,
            email=model.email,
            username=model.username,
            role=model.role,
            display_name=model.display_name,
            picture=model.picture,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: User) -> UserModel:
        """将领域实体转换为数据库模型"""
        model = UserModel(
            id=entity.id,
            google_id=entity.google_id,
            email=entity.email,
            username=entity.username,
            role=entity.role,
            display_name=entity.display_name,
            picture=entity.picture,
        )
        # 未设置的时间戳交给列默认值
        if entity.created_at is not None:
            model.created_at = entity.created_at
        if entity.updated_at is not None:
            model.updated_at = entity.updated_at
        return model

    def _raise_conflict(self, exc: IntegrityError, user: User, op: str) -> None:
        msg = str(exc).lower()
        if "username" in msg:
            logger.warning(f"{op}_user_conflict", field="username", username=user.username)
            raise UsernameAlreadyExistsException(user.username)
        if "email" in msg or "google_id" in msg:
            logger.warning(f"{op}_user_conflict", field="email", email=user.email)
            raise UserAlreadyExistsException(user.email)

    async def create(self, user: User) -> User:
        """创建用户"""
        try:
            db_user = self._to_model(user)
            self.session.add(db_user)
            await self.session.flush()  # 获取生成的ID
            await self.session.refresh(db_user)
            return self._to_entity(db_user)
        except IntegrityError as e:
            await self.session.rollback()
            self._raise_conflict(e, user, "create")
            raise

    async def _get_one(self, *criteria) -> Optional[User]:
        result = await self.session.execute(select(UserModel).where(*criteria))
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    async def get_by_id(self, user_id: int) -> Optional[User]:
        """根据ID获取用户"""
        return await self._get_one(UserModel.id == user_id)

    async def get_by_google_id(self, google_id: str) -> Optional[User]:
        return await self._get_one(UserModel.google_id == google_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        """根据邮箱获取用户"""
        return await self._get_one(UserModel.email == email)

    async def update(self, user: User) -> User:
        """更新用户"""
        result = await self.session.execute(
            select(UserModel).where(UserModel.id == user.id)
        )
        db_user = result.scalar_one_or_none()

        if not db_user:
            raise UserNotFoundException(str(user.id))

        db_user.google_id = user.google_id
        db_user.email = user.email
        db_user.username = user.username
        db_user.role = user.role
        db_user.display_name = user.display_name
        db_user.picture = user.picture
        if user.updated_at is not None:
            db_user.updated_at = user.updated_at

        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            self._raise_conflict(e, user, "update")
            raise
        await self.session.refresh(db_user)
        return self._to_entity(db_user)

    async def exists_by_username(self, username: str,
                                 exclude_user_id: Optional[int] = None) -> bool:
        """检查用户名是否被（其他用户）占用"""
        query = (
            select(func.count()).select_from(UserModel)
            .where(UserModel.username == username)
        )
        if exclude_user_id is not None:
            query = query.where(UserModel.id != exclude_user_id)
        result = await self.session.execute(query)
        return (result.scalar() or 0) > 0
