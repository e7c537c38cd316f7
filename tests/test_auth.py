from datetime import datetime, timedelta, timezone

import pytest

from waiverdesk.auth import (
    authenticate_admin,
    create_admin_user,
    hash_password,
    is_authenticated,
    issue_token,
    require_principal,
    verify_password,
)
from waiverdesk.config import Settings
from waiverdesk.errors import AuthError, ConflictError, ValidationError
from waiverdesk.store import WaiverStore


def test_password_hashing_round_trip():
    hashed = hash_password("correct-horse")
    assert hashed != "correct-horse"
    assert verify_password("correct-horse", hashed) is True
    assert verify_password("wrong", hashed) is False
    assert verify_password("correct-horse", "not-a-bcrypt-hash") is False


def test_tokens_identify_the_admin():
    settings = Settings(jwt_secret="test-secret")
    token = issue_token("alice", settings)

    principal = require_principal(token, settings)
    assert principal.username == "alice"


def test_rejected_tokens():
    settings = Settings(jwt_secret="test-secret")
    other = Settings(jwt_secret="another-secret")
    expired = issue_token(
        "alice", settings, now=datetime.now(timezone.utc) - timedelta(days=30)
    )

    assert is_authenticated(None, settings) is None
    assert is_authenticated(issue_token("alice", other), settings) is None
    assert is_authenticated(expired, settings) is None

    with pytest.raises(AuthError, match="Unauthorized"):
        require_principal("", settings)
    with pytest.raises(AuthError, match="Invalid token"):
        require_principal(expired, settings)


@pytest.mark.asyncio
async def test_admin_creation_and_login(tmp_path):
    settings = Settings(jwt_secret="test-secret")
    store = WaiverStore(tmp_path / "waivers.db")
    await store.open()
    try:
        with pytest.raises(ValidationError, match="required"):
            await create_admin_user(store, "  ", "correct-horse", settings)
        with pytest.raises(ValidationError, match="at least 8"):
            await create_admin_user(store, "alice", "short", settings)

        user_id = await create_admin_user(store, " alice ", "correct-horse", settings)
        assert user_id > 0

        with pytest.raises(ConflictError):
            await create_admin_user(store, "alice", "another-pass", settings)

        assert await authenticate_admin(store, "alice", "correct-horse") is True
        assert await authenticate_admin(store, "alice", "wrong-pass") is False
        assert await authenticate_admin(store, "mallory", "correct-horse") is False

        admin = await store.get_admin_by_id(user_id)
        assert admin.username == "alice"
    finally:
        await store.close()
