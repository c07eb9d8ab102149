import asyncio

import pytest

from auth_service import AuthService
from errors import AuthError, ConflictError, NotFoundError, ValidationError
from security import create_access_token


def test_register_returns_user_without_hash(auth) -> None:
    user = asyncio.run(auth.register("alice", "alice@example.com", "SecurePass123!"))

    assert user["username"] == "alice"
    assert user["email"] == "alice@example.com"
    assert user["role"] == "user"
    assert "password_hash" not in user


def test_register_rejects_missing_fields_and_bad_role(auth) -> None:
    with pytest.raises(ValidationError):
        asyncio.run(auth.register("alice", "", "SecurePass123!"))
    with pytest.raises(ValidationError):
        asyncio.run(auth.register("alice", "alice@example.com", "pw1234", role="owner"))


def test_register_rejects_duplicate_username_and_email(auth) -> None:
    asyncio.run(auth.register("alice", "alice@example.com", "SecurePass123!"))

    with pytest.raises(ConflictError, match="Username"):
        asyncio.run(auth.register("alice", "other@example.com", "SecurePass123!"))
    with pytest.raises(ConflictError, match="Email"):
        asyncio.run(auth.register("alice2", "alice@example.com", "SecurePass123!"))


def test_login_by_username_or_email_issues_token(auth, users) -> None:
    by_name = asyncio.run(auth.login("alice", "SecurePass123!"))
    by_email = asyncio.run(auth.login("alice@example.com", "SecurePass123!"))

    claims = auth.validate_token(by_name["token"])
    assert claims["userId"] == users["alice"]
    assert claims["username"] == "alice"
    assert claims["email"] == "alice@example.com"
    assert claims["role"] == "user"
    assert by_email["user"]["id"] == users["alice"]
    assert "password_hash" not in by_name["user"]


def test_login_failures_share_one_message(auth, users) -> None:
    with pytest.raises(AuthError) as wrong_password:
        asyncio.run(auth.login("alice", "not-the-password"))
    with pytest.raises(AuthError) as unknown_user:
        asyncio.run(auth.login("mallory", "SecurePass123!"))

    assert wrong_password.value.message == unknown_user.value.message == "Invalid credentials"


def test_validate_token_rejects_tampered_and_expired_tokens(auth, db) -> None:
    claims = {"userId": 1, "username": "alice", "email": "a@example.com", "role": "user"}
    foreign = create_access_token(claims, "another-secret", "HS256", 1)
    expired = create_access_token(claims, auth.secret_key, "HS256", -1)
    incomplete = create_access_token({"userId": 1}, auth.secret_key, "HS256", 1)

    for token in (foreign, expired, incomplete, "garbage", ""):
        with pytest.raises(AuthError):
            auth.validate_token(token)


def test_change_password(auth, users) -> None:
    with pytest.raises(AuthError):
        asyncio.run(auth.change_password(users["alice"], "wrong", "BrandNew456"))

    asyncio.run(auth.change_password(users["alice"], "SecurePass123!", "BrandNew456"))

    with pytest.raises(AuthError):
        asyncio.run(auth.login("alice", "SecurePass123!"))
    assert asyncio.run(auth.login("alice", "BrandNew456"))["user"]["username"] == "alice"


def test_change_password_for_unknown_user(auth) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(auth.change_password(404, "old-password", "new-password"))


def test_profile_image_and_user_listing(auth, users) -> None:
    user = asyncio.run(auth.update_profile_image(users["bob"], "/uploads/profile-1.png"))
    everyone = asyncio.run(auth.list_users())

    assert user["profile_image"] == "/uploads/profile-1.png"
    assert [u["username"] for u in everyone] == ["alice", "bob", "root"]
    assert all("password_hash" not in u for u in everyone)
    with pytest.raises(NotFoundError):
        asyncio.run(auth.get_user(404))


def test_token_lifetime_follows_configuration(db) -> None:
    short_lived = AuthService(db, "secret", expires_hours=-1)
    asyncio.run(short_lived.register("carol", "carol@example.com", "SecurePass123!"))
    token = asyncio.run(short_lived.login("carol", "SecurePass123!"))["token"]

    with pytest.raises(AuthError):
        short_lived.validate_token(token)


def test_registration_that_slips_past_the_lookups_still_conflicts(auth, users, monkeypatch) -> None:
    async def nobody(_value):
        return None

    # Both lookups miss, as they would for two registrations racing each other
    monkeypatch.setattr(auth, "_find_by_username", nobody)
    monkeypatch.setattr(auth, "_find_by_email", nobody)

    with pytest.raises(ConflictError):
        asyncio.run(auth.register("alice", "alice@example.com", "SecurePass123!"))
    assert [u["username"] for u in asyncio.run(auth.list_users())] == ["alice", "bob", "root"]
