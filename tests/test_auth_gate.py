from datetime import datetime, timedelta, timezone

import jwt
import pytest

from application.services.auth_gate import AuthFailure
from shared.constants import UserRole


TEST_SECRET = "test-secret-key"

pytestmark = pytest.mark.asyncio


async def test_valid_token_resolves_identity(chat):
    user, token = await chat.user("alice", role="brand")

    outcome = await chat.auth.resolve(f" {token}\n")

    assert outcome.ok
    assert outcome.identity.user_id == user.id
    assert outcome.identity.username == "alice"
    assert outcome.identity.role is UserRole.BRAND
    assert outcome.user is user


@pytest.mark.parametrize("credential", [None, "", "   "])
async def test_missing_credential(chat, credential):
    outcome = await chat.auth.resolve(credential)
    assert not outcome.ok
    assert outcome.failure is AuthFailure.MISSING_CREDENTIAL


async def test_garbage_and_foreign_tokens_are_invalid(chat):
    user, _ = await chat.user("alice")
    forged = jwt.encode({"sub": str(user.id), "type": "access"}, "other-secret", algorithm="HS256")

    for credential in ("not-a-jwt", forged):
        outcome = await chat.auth.resolve(credential)
        assert outcome.failure is AuthFailure.INVALID_OR_EXPIRED_CREDENTIAL


async def test_expired_token_is_invalid(chat):
    user, _ = await chat.user("alice")
    expired = jwt.encode(
        {"sub": str(user.id), "type": "access", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        TEST_SECRET,
        algorithm="HS256",
    )
    outcome = await chat.auth.resolve(expired)
    assert outcome.failure is AuthFailure.INVALID_OR_EXPIRED_CREDENTIAL


async def test_user_is_found_by_email_when_id_is_stale(chat):
    user, _ = await chat.user("alice")
    token = jwt.encode(
        {"sub": "999", "email": "ALICE@example.com", "type": "access",
         "exp": datetime.now(timezone.utc) + timedelta(days=1)},
        TEST_SECRET,
        algorithm="HS256",
    )
    outcome = await chat.auth.resolve(token)
    assert outcome.ok and outcome.identity.user_id == user.id


async def test_unknown_user(chat):
    user, token = await chat.user("alice")
    chat.store.users.rows.clear()

    outcome = await chat.auth.resolve(token)

    assert outcome.failure is AuthFailure.USER_NOT_FOUND
    assert outcome.user is None


@pytest.mark.parametrize("role, expected", [
    (None, None),
    ("", None),
    ("admin", None),
    (" Brand ", UserRole.BRAND),
])
async def test_role_is_normalized_before_validation(chat, role, expected):
    _, token = await chat.user("alice", role=role)

    outcome = await chat.auth.resolve(token)

    if expected is None:
        assert outcome.failure is AuthFailure.ROLE_NOT_ASSIGNED
        assert outcome.user is not None
    else:
        assert outcome.identity.role is expected


async def test_resolution_is_read_only(chat):
    _, token = await chat.user("alice")
    await chat.auth.resolve(token)
    assert chat.store.commits == 0
