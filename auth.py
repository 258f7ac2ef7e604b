import base64
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import errors
from config import Settings
from models import AuthResult, Identity, PublicUser, User
from stores import UserStore

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _prehash(password: str) -> bytes:
    # bcrypt only reads 72 bytes; digest first so long passwords still count in full
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


def hash_password(password: str, rounds: int = 10) -> str:
    return bcrypt.hashpw(_prehash(password), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_prehash(password), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


class AuthService:
    def __init__(self, users: UserStore, settings: Settings):
        self.users = users
        self.settings = settings

    def issue_token(self, user: User) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "userId": user.id,
            "username": user.username,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self.settings.token_ttl_seconds)).timestamp()),
        }
        return jwt.encode(payload, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm)

    def verify_token(self, token: Optional[str]) -> Identity:
        if not token:
            raise errors.Unauthenticated()
        try:
            payload = jwt.decode(
                token,
                self.settings.jwt_secret,
                algorithms=[self.settings.jwt_algorithm],
                options={"require": ["exp"]},
            )
            return Identity(user_id=payload["userId"], username=payload["username"])
        except jwt.ExpiredSignatureError:
            logger.info("Rejected expired token")
            raise errors.InvalidToken()
        except (jwt.InvalidTokenError, KeyError, ValueError):
            raise errors.InvalidToken()

    def register(self, username: str, email: str, password: str) -> AuthResult:
        if self.users.find_by_email_or_username(email, username) is not None:
            logger.info("Registration refused, identity taken: %s / %s", username, email)
            raise errors.Conflict("User already exists")

        password_hash = hash_password(password, rounds=self.settings.bcrypt_rounds)
        user = self.users.insert(username, email, password_hash)
        logger.info("Registered user %s (id=%s)", user.username, user.id)
        return AuthResult(
            message="User created successfully",
            token=self.issue_token(user),
            user=PublicUser.from_user(user),
        )

    def login(self, email: str, password: str) -> AuthResult:
        user = self.users.find_by_email(email)
        # one message for both failures so callers cannot probe for accounts
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed login for %s", email)
            raise errors.InvalidCredentials("Invalid credentials")

        return AuthResult(
            message="Login successful",
            token=self.issue_token(user),
            user=PublicUser.from_user(user),
        )


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth


def current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth: AuthService = Depends(get_auth_service),
) -> Identity:
    token = credentials.credentials if credentials is not None else None
    return auth.verify_token(token)
