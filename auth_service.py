# auth_service.py
import logging
from typing import Optional

from database import Database
from errors import AuthError, ConflictError, NotFoundError, ValidationError
from models import Role
from security import create_access_token, decode_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

# Never includes password_hash
USER_COLUMNS = "id, username, email, profile_image, role, created_at, updated_at"

TOKEN_CLAIMS = ("userId", "username", "email", "role")


def _public(user: dict) -> dict:
    return {key: value for key, value in user.items() if key != "password_hash"}


class AuthService:
    """Registration, login, tokens and profile maintenance."""

    def __init__(
        self,
        db: Database,
        secret_key: str,
        algorithm: str = "HS256",
        expires_hours: int = 24,
    ) -> None:
        self.db = db
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expires_hours = expires_hours

    async def _find_by_username(self, username: str) -> Optional[dict]:
        return await self.db.fetch_one("SELECT * FROM users WHERE username = ?", (username,))

    async def _find_by_email(self, email: str) -> Optional[dict]:
        return await self.db.fetch_one("SELECT * FROM users WHERE email = ?", (email,))

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        role: str = "user",
        profile_image: Optional[str] = None,
    ) -> dict:
        """
        Create a user and return it without the password hash.

        Uniqueness is checked with two separate lookups before the insert, so
        two concurrent registrations for the same name can both pass the
        check. The UNIQUE columns then reject the loser with ConflictError.
        """
        if not username or not email or not password:
            raise ValidationError("Username, email, and password are required")
        try:
            role = Role(role)
        except ValueError:
            raise ValidationError("Role must be admin or user") from None

        if await self._find_by_username(username):
            raise ConflictError("Username already exists")
        if await self._find_by_email(email):
            raise ConflictError("Email already exists")

        result = await self.db.execute(
            """INSERT INTO users (username, email, password_hash, role, profile_image)
               VALUES (?, ?, ?, ?, ?)""",
            (username, email, hash_password(password), role.value, profile_image),
        )
        logger.info("Registered user %s (id=%s, role=%s)", username, result.lastrowid, role.value)
        return await self.get_user(result.lastrowid)

    async def login(self, username_or_email: str, password: str) -> dict:
        """
        Check credentials and issue a token.

        Unknown users and wrong passwords produce the same error so the
        response does not reveal which accounts exist.
        """
        if not username_or_email or not password:
            raise ValidationError("Username and password are required")

        if "@" in username_or_email:
            user = await self._find_by_email(username_or_email)
        else:
            user = await self._find_by_username(username_or_email)

        if user is None or not verify_password(password, user["password_hash"]):
            logger.warning("Failed login attempt for %s", username_or_email)
            raise AuthError("Invalid credentials")

        token = create_access_token(
            {
                "userId": user["id"],
                "username": user["username"],
                "email": user["email"],
                "role": user["role"],
            },
            self.secret_key,
            self.algorithm,
            self.expires_hours,
        )
        logger.info("User %s logged in", user["username"])
        return {"token": token, "user": _public(user)}

    def validate_token(self, token: str) -> dict:
        if not token:
            raise AuthError("Invalid token")
        claims = decode_access_token(token, self.secret_key, self.algorithm)
        if any(claims.get(name) is None for name in TOKEN_CLAIMS):
            raise AuthError("Invalid token")
        return claims

    async def get_user(self, user_id: int) -> dict:
        user = await self.db.fetch_one(f"SELECT {USER_COLUMNS} FROM users WHERE id = ?", (user_id,))
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def list_users(self) -> list[dict]:
        return await self.db.fetch_all(f"SELECT {USER_COLUMNS} FROM users ORDER BY id")

    async def change_password(self, user_id: int, current_password: str, new_password: str) -> dict:
        if not user_id or not current_password or not new_password:
            raise ValidationError("User ID, current password, and new password are required")

        user = await self.db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
        if user is None:
            raise NotFoundError("User not found")
        if not verify_password(current_password, user["password_hash"]):
            raise AuthError("Current password is incorrect")

        await self.db.execute(
            "UPDATE users SET password_hash = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (hash_password(new_password), user_id),
        )
        logger.info("Password changed for user id=%s", user_id)
        return await self.get_user(user_id)

    async def update_profile_image(self, user_id: int, profile_image: str) -> dict:
        if not user_id or not profile_image:
            raise ValidationError("User ID and profile image are required")
        await self.get_user(user_id)
        await self.db.execute(
            "UPDATE users SET profile_image = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (profile_image, user_id),
        )
        return await self.get_user(user_id)
