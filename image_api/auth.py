"""
Identity service: register, login, JWT issue/verify
"""

import base64
import hashlib
import hmac
import logging
import os
from datetime import datetime, timedelta, timezone

import jwt

from .config import ImageApiConfig, get_config
from .errors import InvalidCredentialsError, InvalidTokenError, ValidationError
from .models import AuthIdentity
from .storage import UserStorage, normalize_email

logger = logging.getLogger(__name__)

HASH_SCHEME = "pbkdf2_sha256"


def hash_password(password: str, iterations: int, salt: bytes = None) -> str:
    """Salted PBKDF2-SHA256: scheme$iterations$salt$hash"""
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return "$".join([
        HASH_SCHEME,
        str(iterations),
        base64.b64encode(salt).decode("ascii"),
        base64.b64encode(digest).decode("ascii"),
    ])


def check_password(password: str, encoded: str) -> bool:
    try:
        scheme, iterations, salt, expected = encoded.split("$")
    except ValueError:
        return False
    if scheme != HASH_SCHEME:
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), base64.b64decode(salt), int(iterations)
    )
    return hmac.compare_digest(base64.b64encode(digest).decode("ascii"), expected)


class IdentityService:
    """Registration, credential checks and token handling"""

    def __init__(self, storage: UserStorage, config: ImageApiConfig = None):
        self.storage = storage
        self.config = config or get_config()

    @staticmethod
    def _require_credentials(email: str, password: str):
        if not email or not email.strip() or not password:
            raise ValidationError("Email and password are required", field="email" if not email else "password")

    async def register(self, email: str, password: str) -> AuthIdentity:
        """
        Tạo user mới

        Raises:
            ValidationError: If email or password is missing
            UserAlreadyExistsError: If the email is already registered
            StorageError: If the storage backend fails
        """
        self._require_credentials(email, password)
        password_hash = hash_password(password, self.config.password_iterations)
        record = await self.storage.create_user(email, password_hash)
        return AuthIdentity(user_id=record.user_id, email=record.email)

    async def verify_credentials(self, email: str, password: str) -> AuthIdentity:
        """
        Check email/password

        Raises:
            InvalidCredentialsError: If the user is unknown or the password does not match
        """
        self._require_credentials(email, password)
        record = await self.storage.find_user_by_email(normalize_email(email))
        if record is None or not check_password(password, record.password_hash):
            raise InvalidCredentialsError()
        return AuthIdentity(user_id=record.user_id, email=record.email)

    def issue_token(self, identity: AuthIdentity) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": identity.user_id,
            "email": identity.email,
            "iat": now,
            "exp": now + timedelta(seconds=self.config.jwt_expires_in),
        }
        return jwt.encode(payload, self.config.jwt_secret, algorithm=self.config.jwt_algorithm)

    async def verify_token(self, token: str) -> AuthIdentity:
        """
        Decode và verify JWT

        Raises:
            InvalidTokenError: If the token is malformed, expired or wrongly signed
        """
        try:
            payload = jwt.decode(
                token,
                self.config.jwt_secret,
                algorithms=[self.config.jwt_algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.PyJWTError as e:
            raise InvalidTokenError(f"invalid token: {e}")

        email = payload.get("email")
        if not isinstance(email, str):
            raise InvalidTokenError("invalid token: missing email claim")
        return AuthIdentity(user_id=str(payload["sub"]), email=email)

    async def login(self, email: str, password: str) -> str:
        identity = await self.verify_credentials(email, password)
        logger.info(f"User logged in: {identity.user_id}")
        return self.issue_token(identity)
