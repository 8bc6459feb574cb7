"""
Auth gate for the chat socket: bearer credential -> chat identity.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from domain.chat.entity import ChatIdentity
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.user.entity import User
from application.services.token_service import TokenService
from application.services.user_service import find_user_from_claims


class AuthFailure(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    INVALID_OR_EXPIRED_CREDENTIAL = "invalid_or_expired_credential"
    USER_NOT_FOUND = "user_not_found"
    ROLE_NOT_ASSIGNED = "role_not_assigned"


@dataclass(frozen=True)
class AuthOutcome:
    identity: Optional[ChatIdentity] = None
    user: Optional[User] = None
    failure: Optional[AuthFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None and self.identity is not None


class AuthGate:
    """Resolve a credential against the user store. Read-only, never raises
    for bad input: every rejection comes back as a classified outcome.
    """

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork],
                 token_service: Optional[TokenService] = None) -> None:
        self._uow_factory = uow_factory
        self._tokens = token_service or TokenService()

    async def resolve(self, credential: Optional[str]) -> AuthOutcome:
        token = credential.strip() if isinstance(credential, str) else ""
        if not token:
            return AuthOutcome(failure=AuthFailure.MISSING_CREDENTIAL)

        claims = self._tokens.verify_auth_token(token)
        if claims is None:
            return AuthOutcome(failure=AuthFailure.INVALID_OR_EXPIRED_CREDENTIAL)

        async with self._uow_factory(readonly=True) as uow:
            user = await find_user_from_claims(uow.user_repository, claims)
        if user is None:
            return AuthOutcome(failure=AuthFailure.USER_NOT_FOUND)

        role = user.chat_role
        if role is None:
            return AuthOutcome(user=user, failure=AuthFailure.ROLE_NOT_ASSIGNED)

        return AuthOutcome(
            identity=ChatIdentity(user_id=user.id, username=user.username, role=role),
            user=user,
        )
