"""
Password hashing, session tokens and the session cookie jar.

Two token namespaces exist side by side: admin sessions (24h, ``isAdmin``
flag, ``adminToken`` cookie) and user sessions (7 days, ``isUser`` flag,
``userToken`` cookie). The flag only says which login minted the token;
the role of a request is decided by auth.resolve_principal.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Request, Response
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from config import settings
from errors import ExpiredToken, InvalidToken, MalformedInput, ValidationError

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_USER = "user"

_ROLE_FLAGS = {ROLE_ADMIN: "isAdmin", ROLE_USER: "isUser"}
_PLACEHOLDERS = ("null", "undefined")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)


def verify_password_policy(password: str) -> None:
    if not password or len(password) < 6:
        raise ValidationError("Password must be at least 6 characters long")


def hash_password(password: str) -> str:
    verify_password_policy(password)
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    try:
        return pwd_context.verify(password, hashed)
    except ValueError:
        return False


@dataclass(frozen=True)
class TokenClaims:
    identity: str
    role_flag: str
    expires_at: datetime


def admin_ttl() -> timedelta:
    return timedelta(hours=settings.ADMIN_TOKEN_TTL_HOURS)


def user_ttl() -> timedelta:
    return timedelta(hours=settings.USER_TOKEN_TTL_HOURS)


def issue_token(identity: str, role_flag: str, ttl: timedelta, secret: Optional[str] = None) -> str:
    if role_flag not in _ROLE_FLAGS:
        raise ValueError(f"unknown role flag: {role_flag}")
    issued = datetime.now(timezone.utc)
    to_encode: Dict[str, Any] = {
        "id": str(identity),
        _ROLE_FLAGS[role_flag]: True,
        "iat": int(issued.timestamp()),
        "exp": int((issued + ttl).timestamp()),
    }
    return jwt.encode(to_encode, secret or settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def issue_admin_token(identity: str) -> str:
    return issue_token(identity, ROLE_ADMIN, admin_ttl())


def issue_user_token(identity: str) -> str:
    return issue_token(identity, ROLE_USER, user_ttl())


def is_placeholder(token: Optional[str]) -> bool:
    if token is None:
        return True
    value = str(token).strip()
    return not value or value.lower() in _PLACEHOLDERS


def verify_token(token: Optional[str], secret: Optional[str] = None) -> TokenClaims:
    if is_placeholder(token):
        raise MalformedInput()
    try:
        payload = jwt.decode(str(token).strip(), secret or settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise ExpiredToken()
    except JWTError:
        raise InvalidToken()

    identity = payload.get("id")
    if not identity:
        raise InvalidToken()
    if payload.get("isAdmin"):
        role_flag = ROLE_ADMIN
    elif payload.get("isUser"):
        role_flag = ROLE_USER
    else:
        raise InvalidToken()
    return TokenClaims(
        identity=str(identity),
        role_flag=role_flag,
        expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
    )


class SessionCookies:
    """Both session cookies behind one interface, keyed by slot (admin/user)."""

    NAMES = {ROLE_ADMIN: "adminToken", ROLE_USER: "userToken"}
    # admin cookie wins when a request is read without a namespace
    PRECEDENCE = (ROLE_ADMIN, ROLE_USER)

    def __init__(self, production: Optional[bool] = None):
        self.production = settings.is_production if production is None else production

    def name(self, slot: str) -> str:
        try:
            return self.NAMES[slot]
        except KeyError:
            raise ValueError(f"unknown cookie slot: {slot}")

    def max_age(self, slot: str) -> int:
        ttl = admin_ttl() if slot == ROLE_ADMIN else user_ttl()
        return int(ttl.total_seconds())

    def options(self) -> Dict[str, Any]:
        return {
            "httponly": True,
            "secure": self.production,
            "samesite": "none" if self.production else "lax",
            "path": "/",
        }

    def read(self, request: Request, slot: str) -> Optional[str]:
        token = request.cookies.get(self.name(slot))
        return None if is_placeholder(token) else token

    def read_any(self, request: Request) -> Optional[str]:
        for slot in self.PRECEDENCE:
            token = self.read(request, slot)
            if token:
                return token
        return None

    def store(self, response: Response, slot: str, token: str) -> None:
        response.set_cookie(self.name(slot), token, max_age=self.max_age(slot), **self.options())

    def clear(self, response: Response, slot: str) -> None:
        response.set_cookie(
            self.name(slot),
            "",
            max_age=0,
            expires=datetime(1970, 1, 1, tzinfo=timezone.utc),
            **self.options(),
        )


cookies = SessionCookies()
