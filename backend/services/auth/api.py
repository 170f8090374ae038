from __future__ import annotations

import logging
import os

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.db.models.auth import ROLE_ADMIN, ROLES, User
from app.core.security import (
    hash_password,
    verify_password,
    create_access_token,
    require_user,
    require_roles,
    Principal,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "Admin@123")


class LoginIn(BaseModel):
    username: str
    password: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    username: str
    role: str
    full_name: str = ""


class UserIn(BaseModel):
    username: str = Field(..., min_length=3, max_length=128)
    password: str = Field(..., min_length=8)
    full_name: str = ""
    role: str = "construction"


def ensure_admin(db: Session) -> None:
    """Create the bootstrap admin on a fresh database."""
    if db.query(User).count() > 0:
        return
    db.add(
        User(
            username=ADMIN_USERNAME,
            full_name="Administrator",
            password_hash=hash_password(ADMIN_PASSWORD),
            role=ROLE_ADMIN,
        )
    )
    db.commit()
    logger.info("Bootstrap admin user %r created", ADMIN_USERNAME)


@router.post("/login", response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.username == payload.username.strip()).first()
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid username or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User is inactive")
    return TokenOut(access_token=create_access_token(user), username=user.username, role=user.role, full_name=user.full_name)


@router.get("/me")
def me(principal: Principal = Depends(require_user)):
    return {"user_id": principal.user_id, "username": principal.username, "role": principal.role}


@router.post("/users", dependencies=[Depends(require_roles([ROLE_ADMIN]))])
def create_user(payload: UserIn, db: Session = Depends(get_db)):
    if payload.role not in ROLES:
        raise HTTPException(status_code=400, detail=f"role must be one of {list(ROLES)}")
    if db.query(User).filter(User.username == payload.username).first():
        raise HTTPException(status_code=409, detail="Username already registered")
    user = User(
        username=payload.username,
        full_name=payload.full_name,
        password_hash=hash_password(payload.password),
        role=payload.role,
    )
    db.add(user)
    db.commit()
    return {"ok": True, "id": user.id, "username": user.username, "role": user.role}
