from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.db.models.auth import User

bearer = HTTPBearer(auto_error=False)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALG = os.getenv("JWT_ALG", "HS256")
JWT_TTL_MIN = int(os.getenv("JWT_TTL_MIN", "480"))  # one working day

JWT_ISSUER = os.getenv("JWT_ISSUER", "demand-supply")


@dataclass
class Principal:
    user_id: int | None = None
    username: str = "anonymous"
    role: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def has_role(self, role: str) -> bool:
        return self.role == role


ANONYMOUS = Principal()


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        return False


def create_access_token(user: User) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "iss": JWT_ISSUER,
        "jti": secrets.token_urlsafe(16),
        "sub": str(user.id),
        "username": user.username,
        "role": user.role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=JWT_TTL_MIN)).timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def get_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> Principal:
    if not creds or not creds.credentials:
        return ANONYMOUS

    try:
        payload = jwt.decode(creds.credentials, JWT_SECRET, algorithms=[JWT_ALG], issuer=JWT_ISSUER)
    except JWTError:
        return ANONYMOUS

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return ANONYMOUS

    # Role changes and deactivation take effect before the token expires
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        return ANONYMOUS
    return Principal(user_id=user.id, username=user.username, role=user.role)


def require_user(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_authenticated:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return principal


def require_roles(required: Iterable[str]) -> Callable:
    required_set = set(required)

    def _dep(principal: Principal = Depends(require_user)) -> Principal:
        if principal.role not in required_set:
            detail = {
                "error": "missing_roles",
                "missing": sorted(required_set),
            }
            raise HTTPException(status_code=403, detail=detail)
        return principal

    return _dep
