"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.constants import USER_ROLES


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class UserNotFoundException(BusinessException):
    def __init__(self, user_id: Optional[str] = None):
        details = {"user_id": user_id} if user_id else None
        super().__init__(
            code=BusinessCode.USER_NOT_FOUND,
            message="User not found",
            error_type="UserNotFound",
            details=details,
        )


class UsernameAlreadyExistsException(BusinessException):
    def __init__(self, username: str):
        super().__init__(
            code=BusinessCode.USER_ALREADY_EXISTS,
            message="Username is already taken.",
            error_type="UsernameAlreadyExists",
            details={"username": username},
            field="username",
        )


class UserAlreadyExistsException(BusinessException):
    def __init__(self, email: str):
        super().__init__(
            code=BusinessCode.USER_ALREADY_EXISTS,
            message=f"Email {email} already registered",
            error_type="UserAlreadyExists",
            details={"email": email},
            field="email",
        )


class InvalidUsernameException(BusinessException):
    def __init__(self, username: str):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=(
                "Username must be 3-24 chars and only contain letters, numbers, "
                "dot, underscore, or hyphen."
            ),
            error_type="InvalidUsername",
            details={"username": username},
            field="username",
        )


class InvalidRoleException(BusinessException):
    def __init__(self, role: str):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message="Role must be either influencer or brand.",
            error_type="InvalidRole",
            details={"role": role, "allowed": list(USER_ROLES)},
            field="role",
        )


class ProfileUpdateEmptyException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.PARAM_MISSING,
            message="Provide username or role to update profile.",
            error_type="ProfileUpdateEmpty",
        )


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )
